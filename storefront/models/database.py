import enum
from datetime import datetime

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from storefront.core.database import Base


def _values(enum_cls):
    return [member.value for member in enum_cls]


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    COMPLETED = "completed"
    WAITLIST = "waitlist"
    CANCELLED = "cancelled"


class ScheduleStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    COMPLETED = "completed"


class DeliveryMethod(str, enum.Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


class Product(Base):
    """Catalog entry; name, description and tag are keyed by locale"""
    __tablename__ = "products"

    id = Column(String(64), primary_key=True)
    name = Column(JSON, nullable=False)
    description = Column(JSON)
    tag = Column(JSON)
    price = Column(Numeric(10, 2), nullable=False)
    image = Column(String)
    created_at = Column(DateTime, default=datetime.utcnow)

    def display_name(self, locale: str = "en") -> str:
        names = self.name or {}
        return names.get(locale) or next(iter(names.values()), self.id)


class DeliveryOption(Base):
    """Pickup location or delivery method offered by a schedule slot"""
    __tablename__ = "delivery_options"

    id = Column(Integer, primary_key=True, index=True)
    label = Column(String, nullable=False)
    address = Column(String)
    description = Column(Text)
    map_url = Column(String)
    delivery_method = Column(
        Enum(DeliveryMethod, native_enum=False, values_callable=_values, length=20),
        nullable=False,
        default=DeliveryMethod.PICKUP,
    )
    created_at = Column(DateTime, default=datetime.utcnow)

    deliveries = relationship("ScheduleDelivery", back_populates="delivery_option")


class ProductionSchedule(Base):
    """A production batch: what gets made and when it can be handed over"""
    __tablename__ = "production_schedules"

    id = Column(Integer, primary_key=True, index=True)
    status = Column(
        Enum(ScheduleStatus, native_enum=False, values_callable=_values, length=20),
        nullable=False,
        default=ScheduleStatus.DRAFT,
    )
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    products = relationship(
        "ScheduleProduct", back_populates="schedule", cascade="all, delete-orphan"
    )
    deliveries = relationship(
        "ScheduleDelivery",
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="ScheduleDelivery.delivery_time",
    )


class ScheduleProduct(Base):
    """Produced quantity of one product for one schedule"""
    __tablename__ = "schedule_products"

    schedule_id = Column(
        Integer, ForeignKey("production_schedules.id", ondelete="CASCADE"), primary_key=True
    )
    product_id = Column(String(64), ForeignKey("products.id"), primary_key=True)
    quantity = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)  # For optimistic locking

    schedule = relationship("ProductionSchedule", back_populates="products")
    product = relationship("Product")


class ScheduleDelivery(Base):
    """One pickup/delivery window of a schedule"""
    __tablename__ = "schedule_deliveries"

    id = Column(Integer, primary_key=True, index=True)
    schedule_id = Column(
        Integer, ForeignKey("production_schedules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    delivery_option_id = Column(
        Integer, ForeignKey("delivery_options.id", ondelete="RESTRICT"), nullable=False
    )
    delivery_time = Column(DateTime, nullable=False)
    cutoff_time = Column(DateTime)

    schedule = relationship("ProductionSchedule", back_populates="deliveries")
    delivery_option = relationship("DeliveryOption", back_populates="deliveries")
    orders = relationship("Order", back_populates="schedule_delivery", passive_deletes="all")


class Order(Base):
    """Customer pre-order"""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    reference_number = Column(String(32), unique=True, index=True, nullable=False)
    customer_name = Column(String, nullable=False)
    phone_number = Column(String, nullable=False)
    # NULL means the order was arranged out of band (private chat)
    schedule_delivery_id = Column(
        Integer, ForeignKey("schedule_deliveries.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    total_amount = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text)
    status = Column(
        Enum(OrderStatus, native_enum=False, values_callable=_values, length=20),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
    )
    user_id = Column(String, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    schedule_delivery = relationship("ScheduleDelivery", back_populates="orders")
    items = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan", passive_deletes=True
    )


class OrderItem(Base):
    """Line of an order; name and price are snapshots taken at order time"""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(64), nullable=False, index=True)
    name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")
