"""Record stores the tracking core reads delivery records from."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from trackpoint.db.models import Order
from trackpoint.tracking.errors import StoreError
from trackpoint.tracking.records import DeliveryRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackingCodeCriteria:
    """Fetch by exact tracking code within a tenant."""

    tenant_id: str
    tracking_code: str


@dataclass(frozen=True)
class LookupCriteria:
    """Fetch by tracking code fragment plus phone suffix within a tenant."""

    tenant_id: str
    order_fragment: str
    phone_digits: str


Criteria = TrackingCodeCriteria | LookupCriteria


class RecordStore(ABC):
    """Read-only access to delivery records.

    Implementations must scope every read to ``criteria.tenant_id`` and
    raise ``StoreError`` when the backend can't be reached.
    """

    @abstractmethod
    async def fetch(self, criteria: Criteria) -> DeliveryRecord | None:
        """Return the matching record, or None if nothing matches."""
        pass


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlRecordStore(RecordStore):
    """Record store backed by the orders table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def fetch(self, criteria: Criteria) -> DeliveryRecord | None:
        query = (
            select(Order)
            .options(selectinload(Order.courier), selectinload(Order.tenant))
            .where(Order.tenant_id == criteria.tenant_id)
        )

        if isinstance(criteria, TrackingCodeCriteria):
            query = query.where(Order.tracking_code == criteria.tracking_code)
        else:
            pattern = f"%{_escape_like(criteria.order_fragment)}%"
            query = query.where(
                Order.tracking_code.ilike(pattern, escape="\\"),
                Order.customer_phone.is_not(None),
            ).order_by(Order.created_at.desc())

        try:
            async with self.session_factory() as db:
                result = await db.execute(query)
                orders = result.scalars().all()
                records = [DeliveryRecord.from_order(order) for order in orders]
        except SQLAlchemyError as e:
            raise StoreError(f"Order query failed: {e}") from e

        if isinstance(criteria, LookupCriteria):
            # Phone numbers are stored formatted, so compare digits here
            records = [r for r in records if r.phone_ends_with(criteria.phone_digits)]
            if len(records) > 1:
                logger.warning(
                    "Lookup in tenant %s matched %d orders, using most recent",
                    criteria.tenant_id,
                    len(records),
                )

        return records[0] if records else None
