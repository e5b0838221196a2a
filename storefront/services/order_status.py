"""
Order status rules.

Paid and completed orders are frozen: no status edits, no deletion. Among the
remaining statuses an admin may move an order anywhere. Every write re-checks
the current status in the database itself, so a stale admin view can never
overwrite a payment that landed in the meantime.
"""
import logging
from typing import List, Union

from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from storefront.core.exceptions import ImmutableOrder, InvalidRequest, OrderNotFound
from storefront.models.database import Order, OrderStatus

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.WAITLIST, OrderStatus.CANCELLED)
IMMUTABLE_STATUSES = (OrderStatus.PAID, OrderStatus.COMPLETED)


def parse_status(value: Union[str, OrderStatus]) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise InvalidRequest({"status": f"must be one of {allowed}"})


def is_mutable(status: OrderStatus) -> bool:
    return status in EDITABLE_STATUSES


def allowed_statuses(current: OrderStatus) -> List[OrderStatus]:
    """Statuses an admin may pick for an order currently in ``current``"""
    if not is_mutable(current):
        return []
    return list(OrderStatus)


class OrderStatusService:

    def __init__(self, db: Session):
        self.db = db

    def _blocked(self, order_id: int) -> Exception:
        # Called after a guarded write touched no row: tell apart missing vs frozen
        current = self.db.query(Order.status).filter(Order.id == order_id).scalar()
        if current is None:
            return OrderNotFound()
        return ImmutableOrder(order_id, current.value)

    def update_status(self, order_id: int, new_status: Union[str, OrderStatus]) -> Order:
        target = parse_status(new_status)

        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status.not_in(IMMUTABLE_STATUSES))
            .values(status=target)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            self.db.rollback()
            raise self._blocked(order_id)

        self.db.commit()
        order = self.db.query(Order).filter(Order.id == order_id).first()
        logger.info(f"Order {order.reference_number} status set to {target.value}")
        return order

    def mark_paid(self, order_id: int) -> Order:
        return self.update_status(order_id, OrderStatus.PAID)

    def delete_order(self, order_id: int) -> None:
        result = self.db.execute(
            delete(Order)
            .where(Order.id == order_id, Order.status.not_in(IMMUTABLE_STATUSES))
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            self.db.rollback()
            raise self._blocked(order_id)

        self.db.commit()
        logger.info(f"Order {order_id} deleted")
