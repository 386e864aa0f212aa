"""Tracking sessions: one customer's live view of one delivery."""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from trackpoint.tracking.errors import FetchFailed, NotFound, StoreError, TrackingError
from trackpoint.tracking.feed import ChangeFeed, Unsubscribe
from trackpoint.tracking.records import DeliveryRecord
from trackpoint.tracking.status import StatusPosition, TimelineStep, map_status
from trackpoint.tracking.store import RecordStore, TrackingCodeCriteria

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 3


class SessionState(str, Enum):
    """Lifecycle of a tracking session."""

    IDLE = "idle"
    FETCHING = "fetching"
    READY = "ready"
    ERROR = "error"  # Last fetch failed, previous view kept
    DONE = "done"  # Delivered or cancelled, nothing left to watch
    CLOSED = "closed"


@dataclass(frozen=True)
class TrackingView:
    """What the tracking page shows for a record."""

    record: DeliveryRecord
    position: StatusPosition
    fetched_at: datetime
    is_stale: bool = False
    consecutive_failures: int = 0
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD

    @classmethod
    def build(cls, record: DeliveryRecord, failure_threshold: int) -> "TrackingView":
        return cls(
            record=record,
            position=map_status(record.raw_status),
            fetched_at=datetime.now(timezone.utc),
            failure_threshold=failure_threshold,
        )

    @property
    def step(self) -> TimelineStep:
        return self.position.step

    @property
    def is_terminal(self) -> bool:
        return self.position.is_terminal

    @property
    def is_cancelled(self) -> bool:
        return self.position.is_cancelled

    @property
    def trouble_updating(self) -> bool:
        """Enough refreshes in a row have failed to warn the customer."""
        return self.consecutive_failures >= self.failure_threshold


class TrackingSession:
    """Holds the latest view of a delivery and keeps it fresh.

    Sessions are opened with ``TrackingSession.open`` and must be closed
    with ``close()``. Each session owns its own feed subscription and
    listeners; nothing is shared between sessions.

    Refreshes are coalesced: calling ``refresh()`` while a fetch is in
    flight awaits that fetch instead of issuing another. A push
    notification waits for the running fetch to land, then issues one
    follow-up fetch, since the change may postdate the running read. At
    most one fetch runs at a time, and results are applied in request
    order, so an older fetch never overwrites a newer one.
    """

    def __init__(
        self,
        store: RecordStore,
        feed: ChangeFeed,
        criteria: TrackingCodeCriteria,
        *,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
    ):
        self.store = store
        self.feed = feed
        self.criteria = criteria
        self.failure_threshold = failure_threshold
        self.state = SessionState.IDLE

        self._view: TrackingView | None = None
        self._failures = 0

        # Request sequence numbers; results older than _applied_seq are dropped
        self._seq = 0
        self._applied_seq = 0
        self._inflight: asyncio.Task | None = None

        self._listeners: list[Callable[[TrackingView], None]] = []
        self._push_hooks: list[Callable[[], None]] = []
        self._close_hooks: list[Callable[[], None]] = []
        self._unsubscribe_feed: Unsubscribe | None = None
        self._change_pending = False
        self._drain_task: asyncio.Task | None = None

    @classmethod
    async def open(
        cls,
        store: RecordStore,
        feed: ChangeFeed,
        identifier: str | DeliveryRecord,
        *,
        tenant_id: str | None = None,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
    ) -> "TrackingSession":
        """Open a session from a tracking code or an already authorized record.

        A tracking code is fetched straight away, so ``NotFound`` and
        ``FetchFailed`` surface here. An authorized record (from
        ``LookupGate``) seeds the view without another fetch.
        """
        if isinstance(identifier, DeliveryRecord):
            criteria = TrackingCodeCriteria(
                tenant_id=identifier.tenant_id,
                tracking_code=identifier.tracking_code,
            )
            session = cls(store, feed, criteria, failure_threshold=failure_threshold)
            session._apply(identifier)
            return session

        if not tenant_id:
            raise ValueError("tenant_id is required to open a session by tracking code")

        criteria = TrackingCodeCriteria(tenant_id=tenant_id, tracking_code=identifier.strip())
        session = cls(store, feed, criteria, failure_threshold=failure_threshold)
        try:
            await session.refresh()
        except BaseException:
            session.close()
            raise
        return session

    @property
    def is_active(self) -> bool:
        return self.state not in (SessionState.DONE, SessionState.CLOSED)

    def current_view(self) -> TrackingView | None:
        """Latest known view; None until the first fetch succeeds."""
        return self._view

    async def refresh(self) -> TrackingView | None:
        """Re-fetch the record and return the resulting view.

        Once the session is done or closed this returns the cached view
        without touching the store.

        Raises:
            FetchFailed: the store couldn't be reached.
            NotFound: the record is gone or outside the tenant.
        """
        if not self.is_active:
            return self._view

        if self._fetch_running():
            return await asyncio.shield(self._inflight)
        return await asyncio.shield(self._start_fetch())

    def subscribe(self, on_change: Callable[[TrackingView], None]) -> Unsubscribe:
        """Call ``on_change`` with every new view until unsubscribed or done."""
        if not self.is_active:
            return _noop
        self._listeners.append(on_change)
        return _remover(self._listeners, on_change)

    def add_push_hook(self, hook: Callable[[], None]) -> Unsubscribe:
        """Call ``hook`` as soon as a change notification arrives."""
        if not self.is_active:
            return _noop
        self._push_hooks.append(hook)
        return _remover(self._push_hooks, hook)

    def on_close(self, callback: Callable[[], None]) -> Unsubscribe:
        """Call ``callback`` once when the session is closed."""
        if self.state is SessionState.CLOSED:
            return _noop
        self._close_hooks.append(callback)
        return _remover(self._close_hooks, callback)

    def close(self) -> None:
        """Stop watching. Fetches still in flight finish without effect."""
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        self._teardown()

        hooks = list(self._close_hooks)
        self._close_hooks.clear()
        for hook in hooks:
            try:
                hook()
            except Exception:
                logger.exception("Close hook failed for %s", self.criteria.tracking_code)

    def _fetch_running(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def _start_fetch(self) -> asyncio.Task:
        self._seq += 1
        task = asyncio.ensure_future(self._fetch(self._seq))
        task.add_done_callback(_consume_result)
        self._inflight = task
        return task

    async def _fetch(self, seq: int) -> TrackingView | None:
        if not self.is_active:
            return self._view
        self.state = SessionState.FETCHING

        try:
            record = await self.store.fetch(self.criteria)
        except StoreError as e:
            if not self._accepts(seq):
                return self._view
            self._applied_seq = seq
            self._note_failure()
            logger.warning(
                "Refresh of %s failed (%d in a row): %s",
                self.criteria.tracking_code,
                self._failures,
                e,
            )
            raise FetchFailed("Unable to refresh delivery status") from e

        if not self._accepts(seq):
            logger.debug("Dropping stale result #%d for %s", seq, self.criteria.tracking_code)
            return self._view
        self._applied_seq = seq

        if record is None or record.tenant_id != self.criteria.tenant_id:
            self._note_failure()
            raise NotFound()

        return self._apply(record)

    def _accepts(self, seq: int) -> bool:
        return self.is_active and seq > self._applied_seq

    def _apply(self, record: DeliveryRecord) -> TrackingView:
        self._failures = 0
        view = TrackingView.build(record, self.failure_threshold)
        self._view = view

        if view.is_terminal:
            self.state = SessionState.DONE
            logger.info("Delivery %s finished as %s", record.tracking_code, record.raw_status.value)
            self._notify(view)
            self._teardown()
            return view

        self.state = SessionState.READY
        if self._unsubscribe_feed is None:
            self._unsubscribe_feed = self.feed.subscribe(record.id, self._on_record_changed)
        self._notify(view)
        return view

    def _note_failure(self) -> None:
        self._failures += 1
        self.state = SessionState.ERROR
        if self._view is not None:
            self._view = replace(self._view, is_stale=True, consecutive_failures=self._failures)
            self._notify(self._view)

    def _notify(self, view: TrackingView) -> None:
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                logger.exception("Tracking listener failed for %s", self.criteria.tracking_code)

    def _on_record_changed(self) -> None:
        if not self.is_active:
            return
        self._change_pending = True
        for hook in list(self._push_hooks):
            hook()
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.get_running_loop().create_task(self._drain_changes())

    async def _drain_changes(self) -> None:
        # Notifications arriving mid-fetch are folded into one follow-up fetch
        while self._change_pending and self.is_active:
            if self._fetch_running():
                await asyncio.wait([self._inflight])
                continue
            self._change_pending = False
            try:
                await asyncio.shield(self._start_fetch())
            except TrackingError as e:
                logger.warning("Push refresh of %s failed: %s", self.criteria.tracking_code, e)

    def _teardown(self) -> None:
        if self._unsubscribe_feed is not None:
            self._unsubscribe_feed()
            self._unsubscribe_feed = None
        self._listeners.clear()
        self._push_hooks.clear()
        self._change_pending = False
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
        self._drain_task = None


def _remover(items: list, item) -> Unsubscribe:
    def remove() -> None:
        if item in items:
            items.remove(item)

    return remove


def _noop() -> None:
    pass


def _consume_result(task: asyncio.Task) -> None:
    # Awaiters may have gone away; keep asyncio from logging unretrieved errors
    if not task.cancelled():
        task.exception()
