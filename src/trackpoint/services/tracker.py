"""Service for opening and watching tracking sessions."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from trackpoint.config import Settings, settings as default_settings
from trackpoint.tracking.display import view_payload
from trackpoint.tracking.feed import ChangeFeed
from trackpoint.tracking.lookup import LookupGate
from trackpoint.tracking.scheduler import PollScheduler, poll_delay
from trackpoint.tracking.session import TrackingSession, TrackingView
from trackpoint.tracking.store import RecordStore
from trackpoint.tracking.timeline import TimelineConfig

logger = logging.getLogger(__name__)


class TrackerService:
    """Entry point the routes use to track deliveries."""

    def __init__(
        self,
        store: RecordStore,
        feed: ChangeFeed,
        settings: Settings | None = None,
        timeline: TimelineConfig | None = None,
    ):
        self.store = store
        self.feed = feed
        self.settings = settings or default_settings
        self.timeline = timeline or TimelineConfig.from_yaml(self.settings.timeline_path)
        self.gate = LookupGate(store)

    async def open_direct(self, tenant_id: str, tracking_code: str) -> TrackingSession:
        """Open a session from a tracking link."""
        return await TrackingSession.open(
            self.store,
            self.feed,
            tracking_code,
            tenant_id=tenant_id,
            failure_threshold=self.settings.failure_notice_threshold,
        )

    async def open_lookup(self, tenant_id: str, order_number: str, phone: str) -> TrackingSession:
        """Open a session after checking order number and phone."""
        record = await self.gate.authorize(tenant_id, order_number, phone)
        logger.info("Lookup matched %s in tenant %s", record.tracking_code, tenant_id)
        return await TrackingSession.open(
            self.store,
            self.feed,
            record,
            failure_threshold=self.settings.failure_notice_threshold,
        )

    def scheduler_for(self, session: TrackingSession) -> PollScheduler:
        return PollScheduler(session, interval=self.settings.poll_interval_seconds)

    @asynccontextmanager
    async def watch(self, session: TrackingSession) -> AsyncIterator[PollScheduler]:
        """Poll ``session`` for the duration of the block, then close it."""
        scheduler = self.scheduler_for(session)
        scheduler.start()
        try:
            yield scheduler
        finally:
            scheduler.cancel()
            session.close()

    def payload(self, view: TrackingView) -> dict[str, Any]:
        poll_after = poll_delay(view, self.settings.poll_interval_seconds)
        return view_payload(view, self.timeline, poll_after=poll_after)
