from datetime import datetime
from typing import Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

from storefront.models.database import DeliveryMethod, OrderStatus, ScheduleStatus

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope returned by every JSON endpoint except the transfer webhook"""
    success: bool = True
    data: Optional[T] = None


class Product(BaseModel):
    id: str
    name: Dict[str, str]
    description: Optional[Dict[str, str]] = None
    tag: Optional[Dict[str, str]] = None
    price: float
    image: Optional[str] = None

    class Config:
        from_attributes = True


class DeliveryOptionBase(BaseModel):
    label: str
    address: Optional[str] = None
    description: Optional[str] = None
    map_url: Optional[str] = None
    delivery_method: DeliveryMethod = DeliveryMethod.PICKUP


class DeliveryOptionCreate(DeliveryOptionBase):
    pass


class DeliveryOption(DeliveryOptionBase):
    id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ScheduleProductIn(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=0)


class ScheduleProduct(BaseModel):
    product_id: str
    quantity: int

    class Config:
        from_attributes = True


class ScheduleDeliveryIn(BaseModel):
    id: Optional[int] = None  # None creates a new slot
    delivery_option_id: int
    delivery_time: datetime
    cutoff_time: Optional[datetime] = None


class ScheduleDelivery(BaseModel):
    id: int
    schedule_id: int
    delivery_option_id: int
    delivery_time: datetime
    cutoff_time: Optional[datetime] = None
    delivery_option: Optional[DeliveryOption] = None

    class Config:
        from_attributes = True


class ScheduleUpsert(BaseModel):
    status: ScheduleStatus = ScheduleStatus.DRAFT
    notes: Optional[str] = None
    products: List[ScheduleProductIn] = []
    deliveries: List[ScheduleDeliveryIn] = []


class ProductionSchedule(BaseModel):
    id: int
    status: ScheduleStatus
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    products: List[ScheduleProduct] = []
    deliveries: List[ScheduleDelivery] = []

    class Config:
        from_attributes = True


class OrderItemCreate(BaseModel):
    product_id: Optional[str] = None
    name: Optional[str] = None
    quantity: Optional[int] = None
    price: Optional[float] = None  # informational, the catalog price is charged


class OrderCreate(BaseModel):
    # Fields are optional here so that missing values are reported per field
    customer_name: Optional[str] = None
    phone_number: Optional[str] = None
    schedule_delivery_id: Optional[int] = None
    items: List[OrderItemCreate] = []
    notes: Optional[str] = None


class OrderItem(BaseModel):
    id: int
    product_id: str
    name: str
    quantity: int
    price: float

    class Config:
        from_attributes = True


class Order(BaseModel):
    id: int
    reference_number: str
    customer_name: str
    phone_number: str
    schedule_delivery_id: Optional[int] = None
    total_amount: float
    notes: Optional[str] = None
    status: OrderStatus
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    items: List[OrderItem] = []
    schedule_delivery: Optional[ScheduleDelivery] = None

    class Config:
        from_attributes = True


class OrderDetail(Order):
    """Order as seen by the admin console"""
    allowed_statuses: List[OrderStatus] = []


class OrderStatusUpdate(BaseModel):
    status: str


class ProductStock(BaseModel):
    product_id: str
    produced: int
    remaining: int


class Requirement(BaseModel):
    name: str
    quantity: int


class TransferNotification(BaseModel):
    gmail_message_id: Optional[str] = None
    sender: Optional[str] = None
    subject: Optional[str] = None
    date: Optional[str] = None
    body_plain: str = ""


class TransferVerifyResponse(BaseModel):
    success: bool = True
    message: str
    order_id: int
    new_status: OrderStatus
