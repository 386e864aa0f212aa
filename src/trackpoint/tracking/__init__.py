"""Delivery tracking core."""

from trackpoint.tracking.errors import (
    FetchFailed,
    LookupFailed,
    NotFound,
    StoreError,
    TrackingError,
    ValidationError,
)
from trackpoint.tracking.feed import ChangeFeed, InMemoryChangeFeed
from trackpoint.tracking.lookup import LookupGate
from trackpoint.tracking.records import CourierInfo, DeliveryRecord
from trackpoint.tracking.scheduler import PollScheduler
from trackpoint.tracking.session import SessionState, TrackingSession, TrackingView
from trackpoint.tracking.status import StatusPosition, TimelineStep, map_status
from trackpoint.tracking.store import (
    LookupCriteria,
    RecordStore,
    SqlRecordStore,
    TrackingCodeCriteria,
)

__all__ = [
    "ChangeFeed",
    "CourierInfo",
    "DeliveryRecord",
    "FetchFailed",
    "InMemoryChangeFeed",
    "LookupCriteria",
    "LookupFailed",
    "LookupGate",
    "NotFound",
    "PollScheduler",
    "RecordStore",
    "SessionState",
    "SqlRecordStore",
    "StatusPosition",
    "StoreError",
    "TimelineStep",
    "TrackingCodeCriteria",
    "TrackingError",
    "TrackingSession",
    "TrackingView",
    "ValidationError",
    "map_status",
]
