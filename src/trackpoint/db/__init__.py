"""Database package."""

from trackpoint.db.database import async_session, init_db
from trackpoint.db.models import Base, Courier, Order, RawStatus, Tenant

__all__ = ["Base", "Courier", "Order", "RawStatus", "Tenant", "async_session", "init_db"]
