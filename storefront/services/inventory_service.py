"""
Remaining stock per production schedule.

Stock is never stored: it is the produced quantity of a schedule line minus
what non-cancelled orders on that schedule's slots have already claimed.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from storefront.core.exceptions import InventoryUnavailable
from storefront.models.database import (
    Order,
    OrderItem,
    OrderStatus,
    ProductionSchedule,
    ScheduleDelivery,
    ScheduleProduct,
    ScheduleStatus,
)

logger = logging.getLogger(__name__)

# Waitlist and cancelled orders hold no stock
CONSUMING_STATUSES = (OrderStatus.PENDING, OrderStatus.PAID, OrderStatus.COMPLETED)

# Orders still to be produced or handed over
UNFULFILLED_STATUSES = (OrderStatus.PENDING, OrderStatus.PAID)


@dataclass
class ProductStock:
    product_id: str
    produced: int
    consumed: int
    remaining: int
    version: int = 0


class InventoryService:

    def __init__(self, db: Session):
        self.db = db

    def remaining_for_schedule(self, schedule_id: int) -> Dict[str, ProductStock]:
        try:
            return self._remaining_for_schedule(schedule_id)
        except OperationalError as e:
            logger.warning(f"Inventory read failed for schedule {schedule_id}: {e}")
            raise InventoryUnavailable() from e

    def _remaining_for_schedule(self, schedule_id: int) -> Dict[str, ProductStock]:
        # Versions must be read before consumption, otherwise an admission
        # committing in between could go unnoticed by the caller's version check
        lines = self.db.query(ScheduleProduct).filter(
            ScheduleProduct.schedule_id == schedule_id
        ).all()
        if not lines:
            return {}

        slot_ids = [
            row.id for row in self.db.query(ScheduleDelivery.id).filter(
                ScheduleDelivery.schedule_id == schedule_id
            )
        ]
        consumed = self._consumed_by_product(slot_ids)

        stock = {}
        for line in lines:
            used = consumed.get(line.product_id, 0)
            stock[line.product_id] = ProductStock(
                product_id=line.product_id,
                produced=line.quantity,
                consumed=used,
                remaining=max(0, line.quantity - used),
                version=line.version,
            )
        return stock

    def _consumed_by_product(self, slot_ids: List[int]) -> Dict[str, int]:
        if not slot_ids:
            return {}
        rows = (
            self.db.query(OrderItem.product_id, func.sum(OrderItem.quantity))
            .join(Order, Order.id == OrderItem.order_id)
            .filter(
                Order.schedule_delivery_id.in_(slot_ids),
                Order.status.in_(CONSUMING_STATUSES),
            )
            .group_by(OrderItem.product_id)
            .all()
        )
        return {product_id: int(total or 0) for product_id, total in rows}

    def remaining_across_published_future(self, now: Optional[datetime] = None) -> Dict[str, ProductStock]:
        """
        Stock summed over every published schedule that still has a future slot.

        Advisory only (dashboard, low-stock display); admission always works
        per schedule.
        """
        now = now or datetime.utcnow()
        try:
            schedule_ids = [
                row.id
                for row in self.db.query(ProductionSchedule.id)
                .join(ScheduleDelivery, ScheduleDelivery.schedule_id == ProductionSchedule.id)
                .filter(
                    ProductionSchedule.status == ScheduleStatus.PUBLISHED,
                    ScheduleDelivery.delivery_time > now,
                )
                .distinct()
            ]
            totals: Dict[str, ProductStock] = {}
            for schedule_id in schedule_ids:
                for product_id, stock in self._remaining_for_schedule(schedule_id).items():
                    total = totals.setdefault(product_id, ProductStock(product_id, 0, 0, 0))
                    total.produced += stock.produced
                    total.consumed += stock.consumed
                    total.remaining += stock.remaining
            return totals
        except OperationalError as e:
            logger.warning(f"Inventory read failed for published schedules: {e}")
            raise InventoryUnavailable() from e

    def unfulfilled_requirements(self) -> List[dict]:
        """Quantities still owed to customers, per product name"""
        rows = (
            self.db.query(OrderItem.name, func.sum(OrderItem.quantity))
            .join(Order, Order.id == OrderItem.order_id)
            .filter(Order.status.in_(UNFULFILLED_STATUSES))
            .group_by(OrderItem.name)
            .order_by(OrderItem.name)
            .all()
        )
        return [{"name": name, "quantity": int(total or 0)} for name, total in rows]
