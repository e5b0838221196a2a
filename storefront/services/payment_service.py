import enum
import hmac
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.exceptions import (
    AmountMismatch,
    AmountUnparseable,
    ImmutableOrder,
    NoReferenceFound,
    OrderNotFound,
    Unauthorized,
)
from storefront.models.database import Order, OrderStatus
from storefront.services import transfer_parser
from storefront.services.order_status import IMMUTABLE_STATUSES, OrderStatusService

logger = logging.getLogger(__name__)


class MatchOutcome(str, enum.Enum):
    PAID = "paid"
    ALREADY_PAID = "already_paid"


@dataclass
class MatchResult:
    outcome: MatchOutcome
    order_id: int
    reference_number: str
    status: OrderStatus

    @property
    def message(self) -> str:
        if self.outcome == MatchOutcome.ALREADY_PAID:
            return "Order already paid"
        return "Order verified and updated"


class PaymentReconciliationService:
    """Marks orders paid from e-Transfer deposit notifications"""

    def __init__(self, db: Session, verify_token: Optional[str] = None,
                 tolerance: Optional[Decimal] = None):
        self.db = db
        self.verify_token = verify_token if verify_token is not None else settings.etransfer_verify_token
        self.tolerance = tolerance if tolerance is not None else settings.amount_tolerance

    def authorize(self, auth_token: Optional[str]) -> None:
        if not auth_token or not hmac.compare_digest(auth_token.encode(), self.verify_token.encode()):
            logger.warning("Rejected transfer notification: bad token")
            raise Unauthorized()

    def handle_transfer_notification(
        self, auth_token: Optional[str], sender: Optional[str], body_plain: str
    ) -> MatchResult:
        self.authorize(auth_token)

        try:
            reference = transfer_parser.extract_reference(body_plain)
        except NoReferenceFound:
            logger.info(f"No reference number found in notification from {sender}")
            raise
        logger.info(f"Found reference number {reference} from sender {sender}")

        order = self.db.query(Order).filter(Order.reference_number == reference).first()
        if order is None:
            logger.info(f"Order not found for ref {reference}")
            raise OrderNotFound()

        # A re-delivered email must not change anything
        if order.status in IMMUTABLE_STATUSES:
            logger.info(f"Order {reference} already {order.status.value}, nothing to do")
            return MatchResult(MatchOutcome.ALREADY_PAID, order.id, reference, order.status)

        try:
            amount = transfer_parser.extract_amount(body_plain)
        except AmountUnparseable:
            logger.warning(f"Could not parse amount for {reference} from {sender}")
            raise

        expected = Decimal(order.total_amount)
        if abs(expected - amount) >= self.tolerance:
            logger.warning(f"Amount mismatch for {reference}. Order: {expected}, Email: {amount}")
            raise AmountMismatch(details={"expected": str(expected), "received": str(amount)})

        order_id = order.id
        try:
            order = OrderStatusService(self.db).mark_paid(order_id)
        except ImmutableOrder as e:
            # Settled by a concurrent request after our read
            logger.info(f"Order {reference} became {e.status} meanwhile, nothing to do")
            return MatchResult(MatchOutcome.ALREADY_PAID, order_id, reference, OrderStatus(e.status))
        logger.info(f"Order {reference} marked paid ({amount})")
        return MatchResult(MatchOutcome.PAID, order.id, reference, order.status)
