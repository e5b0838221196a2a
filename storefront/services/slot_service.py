import logging
from datetime import datetime, time, timedelta, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from storefront.core.config import settings
from storefront.core.exceptions import SlotUnavailable
from storefront.models.database import ProductionSchedule, ScheduleDelivery, ScheduleStatus

logger = logging.getLogger(__name__)


def start_of_next_day(now: datetime, tz_name: Optional[str] = None) -> datetime:
    """
    Midnight starting the day after ``now`` in the store's timezone.

    ``now`` and the result are naive UTC, like every timestamp in the database.
    """
    tz = ZoneInfo(tz_name or settings.store_timezone)
    local_today = now.replace(tzinfo=timezone.utc).astimezone(tz).date()
    midnight = datetime.combine(local_today + timedelta(days=1), time.min, tzinfo=tz)
    return midnight.astimezone(timezone.utc).replace(tzinfo=None)


class SlotService:
    """Decides which delivery slots accept orders right now"""

    def __init__(self, db: Session, tz_name: Optional[str] = None):
        self.db = db
        self.tz_name = tz_name

    def list_orderable_slots(self, now: Optional[datetime] = None) -> List[ScheduleDelivery]:
        now = now or datetime.utcnow()
        # No same-day orders: that production run is already underway
        tomorrow = start_of_next_day(now, self.tz_name)
        return (
            self.db.query(ScheduleDelivery)
            .join(ProductionSchedule, ProductionSchedule.id == ScheduleDelivery.schedule_id)
            .options(joinedload(ScheduleDelivery.delivery_option))
            .filter(
                ProductionSchedule.status == ScheduleStatus.PUBLISHED,
                ScheduleDelivery.delivery_time > tomorrow,
                or_(ScheduleDelivery.cutoff_time.is_(None), ScheduleDelivery.cutoff_time > now),
            )
            .order_by(ScheduleDelivery.delivery_time)
            .all()
        )

    def validate_slot(self, slot_id: int, now: Optional[datetime] = None) -> ScheduleDelivery:
        now = now or datetime.utcnow()
        slot = self.db.query(ScheduleDelivery).filter(ScheduleDelivery.id == slot_id).first()
        if slot is None:
            raise SlotUnavailable(SlotUnavailable.NOT_FOUND, slot_id)
        if slot.schedule.status != ScheduleStatus.PUBLISHED:
            raise SlotUnavailable(SlotUnavailable.NOT_PUBLISHED, slot_id)
        if slot.cutoff_time is not None and slot.cutoff_time <= now:
            raise SlotUnavailable(SlotUnavailable.EXPIRED_CUTOFF, slot_id)
        if slot.delivery_time <= start_of_next_day(now, self.tz_name):
            raise SlotUnavailable(SlotUnavailable.EXPIRED_CUTOFF, slot_id)
        return slot
