import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from storefront.core.exceptions import (
    DeliveryOptionNotFound,
    InvalidRequest,
    NotFound,
    ResourceInUse,
    ScheduleNotFound,
)
from storefront.models.database import (
    DeliveryOption,
    Order,
    Product,
    ProductionSchedule,
    ScheduleDelivery,
    ScheduleProduct,
)
from storefront.models.schemas import (
    DeliveryOptionCreate,
    ScheduleDeliveryIn,
    ScheduleProductIn,
    ScheduleUpsert,
)

logger = logging.getLogger(__name__)


def to_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class ScheduleService:
    """Admin maintenance of production schedules and delivery options"""

    def __init__(self, db: Session):
        self.db = db

    # --- Production schedules ---

    def list_schedules(self) -> List[ProductionSchedule]:
        return (
            self.db.query(ProductionSchedule)
            .options(
                selectinload(ProductionSchedule.products),
                selectinload(ProductionSchedule.deliveries).selectinload(ScheduleDelivery.delivery_option),
            )
            .order_by(ProductionSchedule.created_at.desc(), ProductionSchedule.id.desc())
            .all()
        )

    def get_schedule(self, schedule_id: int) -> ProductionSchedule:
        schedule = self.db.query(ProductionSchedule).filter(ProductionSchedule.id == schedule_id).first()
        if schedule is None:
            raise ScheduleNotFound()
        return schedule

    def upsert_schedule(self, data: ScheduleUpsert, schedule_id: Optional[int] = None) -> ProductionSchedule:
        """
        Create or replace a schedule in one transaction.

        Production lines are diffed against the stored ones (added, removed,
        changed) instead of being deleted and re-inserted, so readers never see
        a schedule without lines. Slots missing from ``data`` are deleted, which
        fails with ResourceInUse if an order already uses them.
        """
        self._validate_schedule(data)
        try:
            if schedule_id is None:
                schedule = ProductionSchedule()
                self.db.add(schedule)
            else:
                schedule = self.get_schedule(schedule_id)
            schedule.status = data.status
            schedule.notes = data.notes

            self._sync_products(schedule, data.products)
            self._sync_deliveries(schedule, data.deliveries)

            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Schedule {schedule_id} update violated a constraint: {e}")
            raise ResourceInUse("Schedule update conflicts with existing orders") from e
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(schedule)
        logger.info(
            f"Schedule {schedule.id} saved ({schedule.status.value}): "
            f"{len(schedule.products)} products, {len(schedule.deliveries)} slots"
        )
        return schedule

    def _validate_schedule(self, data: ScheduleUpsert):
        errors = {}

        product_ids = [line.product_id for line in data.products]
        if len(set(product_ids)) != len(product_ids):
            errors["products"] = "Each product may appear only once"
        known_products = {
            row.id for row in self.db.query(Product.id).filter(Product.id.in_(product_ids))
        }
        for i, product_id in enumerate(product_ids):
            if product_id not in known_products:
                errors[f"products[{i}].product_id"] = f"Unknown product {product_id}"

        option_ids = {d.delivery_option_id for d in data.deliveries}
        known_options = {
            row.id for row in self.db.query(DeliveryOption.id).filter(DeliveryOption.id.in_(option_ids))
        }
        for i, delivery in enumerate(data.deliveries):
            if delivery.delivery_option_id not in known_options:
                errors[f"deliveries[{i}].delivery_option_id"] = "Unknown delivery option"
            cutoff = to_utc_naive(delivery.cutoff_time)
            if cutoff is not None and cutoff > to_utc_naive(delivery.delivery_time):
                errors[f"deliveries[{i}].cutoff_time"] = "Cutoff must not be after the delivery time"

        if errors:
            raise InvalidRequest(errors)

    def _sync_products(self, schedule: ProductionSchedule, lines: List[ScheduleProductIn]):
        current: Dict[str, ScheduleProduct] = {line.product_id: line for line in schedule.products}
        wanted = {line.product_id: line.quantity for line in lines}

        for product_id, line in current.items():
            if product_id not in wanted:
                schedule.products.remove(line)
            elif line.quantity != wanted[product_id]:
                line.quantity = wanted[product_id]
                # In-flight admissions on this line must re-check stock
                line.version = ScheduleProduct.version + 1

        for product_id, quantity in wanted.items():
            if product_id not in current:
                schedule.products.append(ScheduleProduct(product_id=product_id, quantity=quantity))

    def _sync_deliveries(self, schedule: ProductionSchedule, deliveries: List[ScheduleDeliveryIn]):
        current: Dict[int, ScheduleDelivery] = {slot.id: slot for slot in schedule.deliveries}
        keep_ids = {d.id for d in deliveries if d.id is not None}

        foreign = keep_ids - set(current)
        if foreign:
            raise InvalidRequest({"deliveries": f"Slots {sorted(foreign)} do not belong to this schedule"})

        for slot_id, slot in current.items():
            if slot_id not in keep_ids:
                self._ensure_slot_unused(slot_id)
                schedule.deliveries.remove(slot)

        for delivery in deliveries:
            values = {
                "delivery_option_id": delivery.delivery_option_id,
                "delivery_time": to_utc_naive(delivery.delivery_time),
                "cutoff_time": to_utc_naive(delivery.cutoff_time),
            }
            if delivery.id is None:
                schedule.deliveries.append(ScheduleDelivery(**values))
            else:
                for field, value in values.items():
                    setattr(current[delivery.id], field, value)

    def _ensure_slot_unused(self, slot_id: int):
        used = self.db.query(Order.id).filter(Order.schedule_delivery_id == slot_id).first()
        if used is not None:
            raise ResourceInUse(f"Delivery slot {slot_id} already has orders")

    def delete_schedule(self, schedule_id: int) -> None:
        schedule = self.get_schedule(schedule_id)
        slot_ids = [slot.id for slot in schedule.deliveries]
        if slot_ids and self.db.query(Order.id).filter(Order.schedule_delivery_id.in_(slot_ids)).first():
            raise ResourceInUse("Schedule has orders and cannot be deleted")
        try:
            self.db.delete(schedule)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ResourceInUse("Schedule has orders and cannot be deleted") from e
        logger.info(f"Schedule {schedule_id} deleted")

    def delete_schedule_delivery(self, slot_id: int) -> None:
        slot = self.db.query(ScheduleDelivery).filter(ScheduleDelivery.id == slot_id).first()
        if slot is None:
            raise NotFound("Delivery slot not found")
        self._ensure_slot_unused(slot_id)
        try:
            self.db.delete(slot)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ResourceInUse(f"Delivery slot {slot_id} already has orders") from e
        logger.info(f"Delivery slot {slot_id} deleted")

    # --- Delivery options ---

    def list_delivery_options(self) -> List[DeliveryOption]:
        return self.db.query(DeliveryOption).order_by(
            DeliveryOption.created_at.desc(), DeliveryOption.id.desc()
        ).all()

    def get_delivery_option(self, option_id: int) -> DeliveryOption:
        option = self.db.query(DeliveryOption).filter(DeliveryOption.id == option_id).first()
        if option is None:
            raise DeliveryOptionNotFound()
        return option

    def upsert_delivery_option(self, data: DeliveryOptionCreate, option_id: Optional[int] = None) -> DeliveryOption:
        if not data.label.strip():
            raise InvalidRequest({"label": "Label is required"})
        if option_id is None:
            option = DeliveryOption()
            self.db.add(option)
        else:
            option = self.get_delivery_option(option_id)
        for field, value in data.model_dump().items():
            setattr(option, field, value)
        self.db.commit()
        self.db.refresh(option)
        return option

    def delete_delivery_option(self, option_id: int) -> None:
        option = self.get_delivery_option(option_id)
        if self.db.query(ScheduleDelivery.id).filter(ScheduleDelivery.delivery_option_id == option_id).first():
            raise ResourceInUse("Delivery option is used by a schedule")
        try:
            self.db.delete(option)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ResourceInUse("Delivery option is used by a schedule") from e
        logger.info(f"Delivery option {option_id} deleted")
