"""Pytest configuration and fixtures."""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from trackpoint.db.models import Base, Courier, Order, RawStatus, Tenant
from trackpoint.tracking.records import DeliveryRecord
from trackpoint.tracking.store import RecordStore, SqlRecordStore

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def session_factory():
    """Create an in-memory database and return its session factory."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    """Create an in-memory database session for testing."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seeded(db_session):
    """Two tenants with a handful of orders in different states."""
    db_session.add_all([
        Tenant(id="tenant-a", business_name="Green Leaf"),
        Tenant(id="tenant-b", business_name="Other Store"),
    ])
    db_session.add(
        Courier(
            id="courier-1",
            tenant_id="tenant-a",
            full_name="Sam Runner",
            phone="5551239876",
            vehicle_type="scooter",
            current_lat=40.71,
            current_lng=-74.0,
            location_updated_at=NOW - timedelta(seconds=30),
        )
    )
    db_session.add_all([
        Order(
            id="order-1",
            tenant_id="tenant-a",
            tracking_code="ORD-7F3K9",
            status="confirmed",
            customer_name="Alex Doe",
            customer_phone="555-123-4567",
            delivery_address="12 Elm St",
            total_amount=Decimal("42.50"),
            created_at=NOW - timedelta(hours=1),
        ),
        Order(
            id="order-2",
            tenant_id="tenant-a",
            tracking_code="ORD-AB12",
            status="in_transit",
            customer_name="Jordan Poe",
            customer_phone="(555) 987-6543",
            delivery_address="5 Oak Ave",
            total_amount=Decimal("18.00"),
            courier_id="courier-1",
            created_at=NOW - timedelta(minutes=30),
        ),
        Order(
            id="order-3",
            tenant_id="tenant-a",
            tracking_code="ORD-CX99",
            status="cancelled",
            customer_phone="555-000-1111",
            created_at=NOW - timedelta(minutes=20),
        ),
        Order(
            id="order-4",
            tenant_id="tenant-b",
            tracking_code="ORD-ZZ77",
            status="picked_up",
            customer_phone="555-123-4567",
            created_at=NOW - timedelta(minutes=10),
        ),
        Order(
            id="order-5",
            tenant_id="tenant-a",
            tracking_code="ORD-NEW1",
            status="handed_to_partner",
            customer_phone="555-222-3333",
            created_at=NOW - timedelta(minutes=5),
        ),
    ])
    await db_session.commit()
    return db_session


@pytest.fixture
def sql_store(session_factory):
    return SqlRecordStore(session_factory)


@pytest.fixture
def make_record():
    """Factory for delivery records that never touched a database."""

    def make(status: RawStatus | str = RawStatus.IN_TRANSIT, **overrides) -> DeliveryRecord:
        raw = status if isinstance(status, RawStatus) else RawStatus.parse(status)
        fields = dict(
            id="order-2",
            tracking_code="ORD-AB12",
            raw_status=raw,
            status_text=raw.value,
            tenant_id="tenant-a",
            created_at=NOW,
            customer_phone="555-987-6543",
            total_amount=Decimal("18.00"),
        )
        fields.update(overrides)
        return DeliveryRecord(**fields)

    return make


class ScriptedStore(RecordStore):
    """Record store whose answers are controlled by the test.

    With ``hold`` set, each fetch parks on a future in ``pending`` until the
    test resolves it.
    """

    def __init__(self, record: DeliveryRecord | None = None):
        self.record = record
        self.error: Exception | None = None
        self.hold = False
        self.pending: list[asyncio.Future] = []
        self.calls = 0

    async def fetch(self, criteria):
        self.calls += 1
        if self.hold:
            future = asyncio.get_running_loop().create_future()
            self.pending.append(future)
            return await future
        if self.error is not None:
            raise self.error
        return self.record


@pytest.fixture
def scripted_store(make_record):
    return ScriptedStore(make_record())
