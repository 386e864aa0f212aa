"""Read-only delivery records handed out by record stores."""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from trackpoint.db.models import Order, RawStatus


@dataclass(frozen=True)
class CourierInfo:
    """Courier currently assigned to a delivery."""

    name: str
    phone: str | None = None
    vehicle_type: str | None = None
    current_lat: float | None = None
    current_lng: float | None = None
    location_updated_at: datetime | None = None


@dataclass(frozen=True)
class DeliveryRecord:
    """Snapshot of an order as seen by the tracking page."""

    id: str
    tracking_code: str
    raw_status: RawStatus
    tenant_id: str
    created_at: datetime
    status_text: str = ""
    customer_name: str | None = None
    customer_phone: str | None = None
    delivery_address: str | None = None
    delivery_lat: float | None = None
    delivery_lng: float | None = None
    total_amount: Decimal = Decimal("0")
    updated_at: datetime | None = None
    scheduled_at: datetime | None = None
    completed_at: datetime | None = None
    estimated_delivery_at: datetime | None = None
    store_name: str | None = None
    courier: CourierInfo | None = None

    @property
    def last_updated(self) -> datetime:
        """Most recent change we know about, including courier pings."""
        stamps = [self.created_at, self.updated_at]
        if self.courier:
            stamps.append(self.courier.location_updated_at)
        return max(_aware(s) for s in stamps if s is not None)

    def phone_ends_with(self, digits: str) -> bool:
        """Check the customer phone, digits only, ends with the given digits."""
        if not digits:
            return False
        return digits_only(self.customer_phone).endswith(digits)

    @classmethod
    def from_order(cls, order: Order) -> "DeliveryRecord":
        """Build a record from an ORM order with courier and tenant loaded."""
        courier = None
        if order.courier is not None:
            courier = CourierInfo(
                name=order.courier.full_name,
                phone=order.courier.phone,
                vehicle_type=order.courier.vehicle_type,
                current_lat=order.courier.current_lat,
                current_lng=order.courier.current_lng,
                location_updated_at=order.courier.location_updated_at,
            )

        return cls(
            id=order.id,
            tracking_code=order.tracking_code or "",
            raw_status=RawStatus.parse(order.status),
            status_text=order.status or "",
            tenant_id=order.tenant_id,
            created_at=order.created_at,
            customer_name=order.customer_name,
            customer_phone=order.customer_phone,
            delivery_address=order.delivery_address,
            delivery_lat=order.delivery_lat,
            delivery_lng=order.delivery_lng,
            total_amount=order.total_amount or Decimal("0"),
            updated_at=order.updated_at,
            scheduled_at=order.delivery_scheduled_at,
            completed_at=order.delivery_completed_at,
            estimated_delivery_at=order.estimated_delivery_at,
            store_name=order.tenant.business_name if order.tenant else None,
            courier=courier,
        )


def _aware(stamp: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone=True columns
    if stamp.tzinfo is None:
        return stamp.replace(tzinfo=timezone.utc)
    return stamp


def digits_only(value: str | None) -> str:
    """Strip everything but digits from a phone number."""
    return re.sub(r"[^0-9]", "", value or "")
