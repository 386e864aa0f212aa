"""Fixed-cadence polling for sessions whose push feed may be quiet."""

import asyncio
import logging

from trackpoint.db.models import ACTIVE_STATUSES
from trackpoint.tracking.errors import TrackingError
from trackpoint.tracking.session import SessionState, TrackingSession, TrackingView

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 15.0


def poll_delay(view: TrackingView | None, interval: float = DEFAULT_POLL_INTERVAL) -> float | None:
    """Delay before polling a view again; None for anything not in progress."""
    if view is None or view.is_terminal:
        return None
    if view.record.raw_status in ACTIVE_STATUSES:
        return interval
    return None


class PollScheduler:
    """Re-fetches a session on a fixed interval while the delivery is active.

    The interval is fixed rather than backing off: deliveries are short
    and customers notice lag. Terminal, pending and unrecognised statuses
    are not polled at all. A push notification cancels the pending timer;
    the refresh it triggers re-arms it from the new view. Closing the
    session cancels the scheduler.
    """

    def __init__(self, session: TrackingSession, interval: float = DEFAULT_POLL_INTERVAL):
        self.session = session
        self.interval = interval
        self._timer: asyncio.TimerHandle | None = None
        self._poll_task: asyncio.Task | None = None
        self._unsubscribers = []
        self._started = False
        self._cancelled = False

    def next_delay(self, view: TrackingView | None) -> float | None:
        """Seconds until the next poll, or None if no poll is needed."""
        return poll_delay(view, self.interval)

    @property
    def pending(self) -> bool:
        """Whether a poll is currently scheduled."""
        return self._timer is not None

    def start(self) -> None:
        if self._started or self._cancelled:
            return
        self._started = True
        self._unsubscribers = [
            self.session.subscribe(self._on_view),
            self.session.add_push_hook(self.reset),
            self.session.on_close(self.cancel),
        ]
        self._arm()

    def reset(self) -> None:
        """Drop the pending poll; a push-triggered refresh is on its way."""
        self._disarm()

    def cancel(self) -> None:
        """Stop polling for good."""
        if self._cancelled:
            return
        self._cancelled = True
        self._disarm()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None

    def _on_view(self, view: TrackingView) -> None:
        self._arm(view)

    def _arm(self, view: TrackingView | None = None) -> None:
        self._disarm()
        if self._cancelled:
            return
        if self.session.state is SessionState.CLOSED:
            self.cancel()
            return
        delay = self.next_delay(view or self.session.current_view())
        if delay is None:
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._fire)

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        if self._cancelled:
            return
        if self.session.state is SessionState.CLOSED:
            self.cancel()
            return
        self._poll_task = asyncio.get_running_loop().create_task(self._poll())

    async def _poll(self) -> None:
        try:
            await self.session.refresh()
        except TrackingError as e:
            logger.info("Scheduled poll of %s failed: %s", self.session.criteria.tracking_code, e)
        # A failed fetch still leaves the last view; retry on the next tick
        if self._timer is None:
            self._arm()
