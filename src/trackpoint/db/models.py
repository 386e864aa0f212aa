"""Database models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, Float, ForeignKey, Numeric, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class RawStatus(str, Enum):
    """Fine-grained order status as written by the order-management system."""

    PENDING = "pending"  # Checkout complete, not yet accepted
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY_FOR_PICKUP = "ready_for_pickup"
    PICKED_UP = "picked_up"  # Courier has the order
    IN_TRANSIT = "in_transit"
    NEARBY = "nearby"  # Courier close to the drop-off
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"  # Anything the order system added that we don't know yet

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalised = value.strip().lower()
            for member in cls:
                if member.value == normalised:
                    return member
        return cls.UNKNOWN

    @classmethod
    def parse(cls, value: str | None) -> "RawStatus":
        """Parse a stored status; a missing status counts as pending."""
        if not value:
            return cls.PENDING
        return cls(value)


ACTIVE_STATUSES = frozenset({
    RawStatus.CONFIRMED,
    RawStatus.PREPARING,
    RawStatus.READY_FOR_PICKUP,
    RawStatus.PICKED_UP,
    RawStatus.IN_TRANSIT,
    RawStatus.NEARBY,
})

TERMINAL_STATUSES = frozenset({RawStatus.DELIVERED, RawStatus.CANCELLED})


class Tenant(Base):
    """A store running on the platform."""

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    business_name: Mapped[str] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    orders: Mapped[list["Order"]] = relationship(back_populates="tenant")


class Courier(Base):
    """A courier who can be assigned to deliveries."""

    __tablename__ = "couriers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id"), index=True)
    full_name: Mapped[str] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    vehicle_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Last reported position
    current_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class Order(Base):
    """An order with delivery, owned by the order-management system."""

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id"), index=True)
    tracking_code: Mapped[str] = mapped_column(String(64), unique=True, index=True)

    # Plain string so new statuses never break reads
    status: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Customer
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    delivery_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    delivery_lng: Mapped[float | None] = mapped_column(Float, nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))

    # Delivery
    courier_id: Mapped[str | None] = mapped_column(
        ForeignKey("couriers.id"), nullable=True
    )
    delivery_scheduled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    delivery_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    estimated_delivery_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    tenant: Mapped["Tenant"] = relationship(back_populates="orders")
    courier: Mapped["Courier | None"] = relationship()
