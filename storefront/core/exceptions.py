"""
Error taxonomy shared by the services and the HTTP layer.

Services raise these; the exception handlers in main.py turn them into the
``{"success": false, "error": ...}`` envelope using ``status_code``.
"""
from typing import Any, Dict, Optional


class StorefrontError(Exception):
    """Base class for expected failures of a storefront operation"""

    code = "error"
    status_code = 400
    retryable = False
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {"success": False, "error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        if self.retryable:
            body["retryable"] = True
        return body


class Unauthenticated(StorefrontError):
    code = "unauthenticated"
    status_code = 401
    default_message = "Authentication required. Please sign in to place an order."


class Unauthorized(StorefrontError):
    code = "unauthorized"
    status_code = 403
    default_message = "Unauthorized"


class InvalidRequest(StorefrontError):
    code = "invalid_request"
    status_code = 422
    default_message = "Invalid request"

    def __init__(self, fields: Dict[str, str], message: Optional[str] = None):
        self.fields = fields
        super().__init__(message or "; ".join(f"{k}: {v}" for k, v in fields.items()), {"fields": fields})


class AdmissionError(StorefrontError):
    """Base for reasons an order is refused at admission"""
    code = "admission_error"
    status_code = 409


class SlotUnavailable(AdmissionError):
    code = "slot_unavailable"

    NOT_FOUND = "not_found"
    NOT_PUBLISHED = "not_published"
    EXPIRED_CUTOFF = "expired_cutoff"

    _messages = {
        NOT_FOUND: "Delivery slot not found",
        NOT_PUBLISHED: "Delivery slot is not open for ordering",
        EXPIRED_CUTOFF: "Ordering for this delivery slot has closed",
    }

    def __init__(self, reason: str, slot_id: Any = None):
        self.reason = reason
        super().__init__(self._messages.get(reason, "Delivery slot unavailable"), {"reason": reason, "slot_id": slot_id})


class InsufficientStock(AdmissionError):
    code = "insufficient_stock"

    def __init__(self, product_id: str, product_name: str, requested: int, remaining: int):
        self.product_id = product_id
        self.product_name = product_name
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Insufficient stock for {product_name}. Available: {remaining}, Requested: {requested}",
            {"product_id": product_id, "requested": requested, "remaining": remaining},
        )


class ReferenceCollision(AdmissionError):
    code = "reference_collision"
    retryable = True
    default_message = "Could not allocate an order reference, please retry"


class ImmutableOrder(StorefrontError):
    code = "immutable_order"
    status_code = 409

    def __init__(self, order_id: Any, status: str):
        self.order_id = order_id
        self.status = status
        super().__init__(f"Order {order_id} is {status} and can no longer be changed", {"status": status})


class ResourceInUse(StorefrontError):
    code = "resource_in_use"
    status_code = 409
    default_message = "Resource is referenced by existing orders"


class NotFound(StorefrontError):
    code = "not_found"
    status_code = 404
    default_message = "Not found"


class OrderNotFound(NotFound):
    code = "order_not_found"
    default_message = "Order not found"


class ScheduleNotFound(NotFound):
    code = "schedule_not_found"
    default_message = "Production schedule not found"


class DeliveryOptionNotFound(NotFound):
    code = "delivery_option_not_found"
    default_message = "Delivery option not found"


class NoReferenceFound(StorefrontError):
    code = "no_reference_found"
    default_message = "No reference number found"


class AmountUnparseable(StorefrontError):
    code = "amount_unparseable"
    default_message = "Could not parse amount from email"


class AmountMismatch(StorefrontError):
    code = "amount_mismatch"
    default_message = "Order amount does not match deposited amount"


class InventoryUnavailable(StorefrontError):
    code = "inventory_unavailable"
    status_code = 503
    retryable = True
    default_message = "Inventory is temporarily unavailable, please retry"


class InternalError(StorefrontError):
    code = "internal_error"
    status_code = 500
    default_message = "Internal server error"
