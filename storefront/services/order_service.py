import asyncio
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.exceptions import (
    InsufficientStock,
    InvalidRequest,
    InventoryUnavailable,
    ReferenceCollision,
    Unauthenticated,
)
from storefront.core.security import Principal
from storefront.models.database import Order, OrderItem, OrderStatus, Product
from storefront.models.schemas import OrderCreate
from storefront.services.inventory_service import InventoryService
from storefront.services.slot_service import SlotService

logger = logging.getLogger(__name__)

# A-Z and 2-9 without the look-alikes I, O, Q, 0 and 1
REFERENCE_ALPHABET = "ABCDEFGHJKLMNPRSTUVWXYZ23456789"
REFERENCE_LENGTH = 6


def generate_reference_number(prefix: Optional[str] = None) -> str:
    prefix = settings.reference_prefix if prefix is None else prefix
    return prefix + "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(REFERENCE_LENGTH))


class ConcurrencyConflictError(Exception):
    """Raised when a schedule line changed between the stock check and the write"""
    pass


@dataclass
class RequestedLine:
    product_id: str
    name: Optional[str]
    quantity: int


class OrderAdmissionService:
    """
    Admits customer orders against the stock of the chosen slot's schedule.

    The stock check and the write are tied together with optimistic locking:
    the order, its items and a version bump of every consumed schedule line are
    written in one transaction, and the bump only matches if the line version
    is still the one seen during the stock check. A mismatch means a concurrent
    admission (or an admin edit) got there first; the attempt is rolled back
    and re-evaluated against fresh stock.
    """

    def __init__(
        self,
        db: Session,
        max_retries: Optional[int] = None,
        reference_factory: Callable[[], str] = generate_reference_number,
        tz_name: Optional[str] = None,
    ):
        self.db = db
        self.max_retries = max_retries if max_retries is not None else settings.admission_max_retries
        self.reference_factory = reference_factory
        self.slots = SlotService(db, tz_name=tz_name)
        self.inventory = InventoryService(db)

    async def submit_order(
        self,
        principal: Optional[Principal],
        order_data: OrderCreate,
        now: Optional[datetime] = None,
    ) -> Order:
        if principal is None:
            raise Unauthenticated()

        requested = self._validate(order_data)

        conflicts = 0
        collisions = 0
        while True:
            try:
                logger.info(
                    f"Processing order for user {principal.id} on slot {order_data.schedule_delivery_id} "
                    f"(attempt {conflicts + collisions + 1})"
                )
                return self._admit(principal, order_data, requested, now)
            except ReferenceCollision:
                collisions += 1
                if collisions > 1:
                    logger.error("Reference number collided twice, giving up")
                    raise
                logger.warning("Reference number collision, regenerating")
            except ConcurrencyConflictError as e:
                conflicts += 1
                if conflicts >= self.max_retries:
                    logger.error(f"Unable to process order after {conflicts} attempts: {e}")
                    raise InventoryUnavailable() from e
                logger.warning(f"Concurrency conflict on attempt {conflicts}, retrying...")
                await asyncio.sleep(0.01 * conflicts)

    def _validate(self, order_data: OrderCreate) -> Dict[str, RequestedLine]:
        errors = {}
        if not (order_data.customer_name or "").strip():
            errors["customer_name"] = "Customer name is required"
        if not (order_data.phone_number or "").strip():
            errors["phone_number"] = "Phone number is required"
        if order_data.schedule_delivery_id is None:
            errors["schedule_delivery_id"] = "Please choose a delivery slot"
        if not order_data.items:
            errors["items"] = "Order must contain at least one item"

        # Same product twice in a cart counts as one line
        requested: Dict[str, RequestedLine] = {}
        for i, item in enumerate(order_data.items):
            if not item.product_id:
                errors[f"items[{i}].product_id"] = "Product is required"
                continue
            if item.quantity is None or item.quantity < 1:
                errors[f"items[{i}].quantity"] = "Quantity must be at least 1"
                continue
            line = requested.get(item.product_id)
            if line is None:
                requested[item.product_id] = RequestedLine(item.product_id, item.name, item.quantity)
            else:
                line.quantity += item.quantity

        if errors:
            raise InvalidRequest(errors)
        return requested

    def _admit(
        self,
        principal: Principal,
        order_data: OrderCreate,
        requested: Dict[str, RequestedLine],
        now: Optional[datetime],
    ) -> Order:
        reference_number = self.reference_factory()
        try:
            slot = self.slots.validate_slot(order_data.schedule_delivery_id, now)

            # Slots of one schedule share the production run's stock
            stock = self.inventory.remaining_for_schedule(slot.schedule_id)
            catalog = {
                p.id: p for p in self.db.query(Product).filter(Product.id.in_(list(requested)))
            }

            for product_id, line in requested.items():
                remaining = stock[product_id].remaining if product_id in stock else 0
                if line.quantity > remaining:
                    product = catalog.get(product_id)
                    name = line.name or (product.display_name() if product else product_id)
                    raise InsufficientStock(product_id, name, line.quantity, remaining)

            items = []
            total_amount = Decimal("0")
            for product_id, line in requested.items():
                product = catalog[product_id]
                price = Decimal(product.price)
                total_amount += price * line.quantity
                items.append(OrderItem(
                    product_id=product_id,
                    name=line.name or product.display_name(),
                    quantity=line.quantity,
                    price=price,
                ))

            order = Order(
                reference_number=reference_number,
                customer_name=order_data.customer_name.strip(),
                phone_number=order_data.phone_number.strip(),
                schedule_delivery_id=slot.id,
                total_amount=total_amount,
                notes=order_data.notes or None,
                status=OrderStatus.PENDING,
                user_id=principal.id,
                items=items,
            )
            self.db.add(order)
            try:
                self.db.flush()
            except IntegrityError as e:
                self.db.rollback()
                if self._reference_taken(reference_number):
                    raise ReferenceCollision() from e
                raise

            for product_id in requested:
                seen = stock[product_id]
                update_count = self.db.execute(
                    text("""
                        UPDATE schedule_products
                        SET version = :new_version
                        WHERE schedule_id = :schedule_id
                          AND product_id = :product_id
                          AND version = :expected_version
                    """),
                    {
                        "new_version": seen.version + 1,
                        "schedule_id": slot.schedule_id,
                        "product_id": product_id,
                        "expected_version": seen.version,
                    },
                ).rowcount
                if update_count == 0:
                    raise ConcurrencyConflictError(
                        f"Stock of {product_id} on schedule {slot.schedule_id} was modified by another transaction"
                    )

            self.db.commit()
            self.db.refresh(order)
            logger.info(
                f"Order {order.reference_number} admitted: {len(items)} lines, total {order.total_amount}"
            )
            return order

        except Exception:
            # Nothing of a failed attempt may persist
            self.db.rollback()
            raise

    def _reference_taken(self, reference_number: str) -> bool:
        return self.db.query(Order.id).filter(Order.reference_number == reference_number).first() is not None

    def list_orders_for_user(self, user_id: str) -> List[Order]:
        return (
            self.db.query(Order)
            .filter(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )
