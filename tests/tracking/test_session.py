"""Tests for tracking sessions."""

import asyncio

import pytest

from trackpoint.db.models import RawStatus
from trackpoint.tracking.errors import FetchFailed, NotFound, StoreError
from trackpoint.tracking.feed import InMemoryChangeFeed
from trackpoint.tracking.session import SessionState, TrackingSession
from trackpoint.tracking.status import TimelineStep


async def settle(rounds: int = 10) -> None:
    """Let scheduled tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def feed():
    return InMemoryChangeFeed()


@pytest.fixture
async def session(scripted_store, feed):
    session = await TrackingSession.open(scripted_store, feed, "ORD-AB12", tenant_id="tenant-a")
    yield session
    session.close()


class TestOpen:
    """Test opening sessions."""

    async def test_direct_tracking(self, session, scripted_store, feed):
        """Test a tracking code opens on the in-transit step."""
        view = session.current_view()

        assert view.step == TimelineStep.IN_TRANSIT
        assert view.step == 2
        assert view.is_terminal is False
        assert session.state is SessionState.READY
        assert scripted_store.calls == 1
        assert feed.subscriber_count("order-2") == 1

    async def test_authorized_record_skips_fetch(self, scripted_store, feed, make_record):
        """Test a record from the lookup gate seeds the view without a fetch."""
        session = await TrackingSession.open(scripted_store, feed, make_record("picked_up"))

        assert scripted_store.calls == 0
        assert session.current_view().step == TimelineStep.PICKED_UP
        assert session.criteria.tracking_code == "ORD-AB12"
        session.close()

    async def test_unknown_code(self, scripted_store, feed):
        scripted_store.record = None

        with pytest.raises(NotFound):
            await TrackingSession.open(scripted_store, feed, "ORD-NOPE", tenant_id="tenant-a")
        assert feed.subscriber_count("order-2") == 0

    async def test_store_down_on_first_load(self, scripted_store, feed):
        scripted_store.error = StoreError("timeout")

        with pytest.raises(FetchFailed):
            await TrackingSession.open(scripted_store, feed, "ORD-AB12", tenant_id="tenant-a")

    async def test_record_from_other_tenant_is_not_found(self, scripted_store, feed, make_record):
        """Test a store answer outside the session's tenant is treated as a miss."""
        scripted_store.record = make_record(tenant_id="tenant-b")

        with pytest.raises(NotFound):
            await TrackingSession.open(scripted_store, feed, "ORD-AB12", tenant_id="tenant-a")

    async def test_tenant_required_for_tracking_code(self, scripted_store, feed):
        with pytest.raises(ValueError):
            await TrackingSession.open(scripted_store, feed, "ORD-AB12")


class TestTerminal:
    """Test sessions stop once the delivery is finished."""

    async def test_cancelled_order(self, scripted_store, feed, make_record):
        """Test a cancelled order shows no step and is done straight away."""
        scripted_store.record = make_record("cancelled")
        session = await TrackingSession.open(scripted_store, feed, "ORD-AB12", tenant_id="tenant-a")
        view = session.current_view()

        assert view.step == -1
        assert view.is_terminal is True
        assert view.is_cancelled is True
        assert session.state is SessionState.DONE
        assert feed.subscriber_count("order-2") == 0

    async def test_delivered_tears_down(self, session, scripted_store, feed, make_record):
        """Test observing delivery stops change events and makes refresh a no-op."""
        views = []
        session.subscribe(views.append)

        scripted_store.record = make_record("delivered")
        await session.refresh()

        assert session.state is SessionState.DONE
        assert [v.record.raw_status for v in views] == [RawStatus.DELIVERED]
        assert feed.subscriber_count("order-2") == 0

        scripted_store.record = make_record("in_transit")
        view = await session.refresh()

        assert view.record.raw_status == RawStatus.DELIVERED
        assert scripted_store.calls == 2
        assert feed.publish("order-2") == 0
        assert len(views) == 1


class TestRefresh:
    """Test refresh ordering and coalescing."""

    async def test_concurrent_refreshes_share_one_fetch(self, session, scripted_store, make_record):
        """Test two refreshes while one is pending issue a single fetch."""
        scripted_store.hold = True
        first = asyncio.create_task(session.refresh())
        second = asyncio.create_task(session.refresh())
        await settle()

        assert len(scripted_store.pending) == 1
        scripted_store.pending[0].set_result(make_record("nearby"))
        views = await asyncio.gather(first, second)

        assert scripted_store.calls == 2
        assert all(v.step == TimelineStep.NEARBY for v in views)

    async def test_stale_result_is_discarded(self, session, scripted_store, make_record):
        """Test a result older than the last applied one doesn't overwrite it."""
        scripted_store.hold = True
        # Two requests issued back to back, bypassing coalescing
        older = session._start_fetch()
        await settle()
        newer = session._start_fetch()
        await settle()
        assert len(scripted_store.pending) == 2

        scripted_store.pending[1].set_result(make_record("nearby"))
        await newer
        scripted_store.pending[0].set_result(make_record("picked_up"))
        returned = await older

        assert session.current_view().record.raw_status == RawStatus.NEARBY
        assert returned.record.raw_status == RawStatus.NEARBY

    async def test_failure_keeps_last_view(self, session, scripted_store):
        """Test a failed refresh keeps the last good view, marked stale."""
        scripted_store.error = StoreError("connection reset")

        with pytest.raises(FetchFailed):
            await session.refresh()

        view = session.current_view()
        assert session.state is SessionState.ERROR
        assert view.step == TimelineStep.IN_TRANSIT
        assert view.is_stale is True
        assert view.trouble_updating is False

    async def test_repeated_failures_raise_notice(self, session, scripted_store):
        """Test three failures in a row flag trouble updating, success clears it."""
        scripted_store.error = StoreError("connection reset")
        for _ in range(3):
            with pytest.raises(FetchFailed):
                await session.refresh()

        assert session.current_view().consecutive_failures == 3
        assert session.current_view().trouble_updating is True

        scripted_store.error = None
        view = await session.refresh()

        assert session.state is SessionState.READY
        assert view.is_stale is False
        assert view.trouble_updating is False

    async def test_record_vanishing_is_not_found(self, session, scripted_store):
        scripted_store.record = None

        with pytest.raises(NotFound):
            await session.refresh()
        assert session.current_view().step == TimelineStep.IN_TRANSIT


class TestPushNotifications:
    """Test change notifications from the feed."""

    async def test_push_triggers_refresh(self, session, scripted_store, feed, make_record):
        hooks = []
        session.add_push_hook(lambda: hooks.append(True))
        scripted_store.record = make_record("nearby")

        feed.publish("order-2")
        await settle()

        assert hooks == [True]
        assert scripted_store.calls == 2
        assert session.current_view().step == TimelineStep.NEARBY

    async def test_burst_of_pushes_collapses(self, session, scripted_store, feed, make_record):
        """Test several pushes before the refresh starts cause one fetch."""
        scripted_store.hold = True
        for _ in range(3):
            feed.publish("order-2")
        await settle()
        assert len(scripted_store.pending) == 1

        # Arrives mid-fetch, so one follow-up fetch is queued
        feed.publish("order-2")
        scripted_store.pending[0].set_result(make_record("in_transit"))
        await settle()
        assert len(scripted_store.pending) == 2

        scripted_store.pending[1].set_result(make_record("nearby"))
        await settle()
        assert scripted_store.calls == 3
        assert session.current_view().step == TimelineStep.NEARBY

    async def test_push_during_refresh_waits_for_it(self, session, scripted_store, feed, make_record):
        """Test a push mid-refresh never runs a second fetch alongside it."""
        scripted_store.hold = True
        manual = asyncio.create_task(session.refresh())
        await settle()

        feed.publish("order-2")
        await settle()
        assert len(scripted_store.pending) == 1

        scripted_store.pending[0].set_result(make_record("in_transit"))
        assert (await manual).step == TimelineStep.IN_TRANSIT
        await settle()
        assert len(scripted_store.pending) == 2

        scripted_store.pending[1].set_result(make_record("nearby"))
        await settle()
        assert scripted_store.calls == 3
        assert session.current_view().step == TimelineStep.NEARBY

    async def test_refresh_during_push_fetch_is_coalesced(self, session, scripted_store, feed, make_record):
        scripted_store.hold = True
        feed.publish("order-2")
        await settle()

        manual = asyncio.create_task(session.refresh())
        await settle()
        assert len(scripted_store.pending) == 1

        scripted_store.pending[0].set_result(make_record("nearby"))
        assert (await manual).step == TimelineStep.NEARBY
        assert scripted_store.calls == 2


class TestClose:
    """Test closing a session."""

    async def test_close_unsubscribes(self, session, feed):
        session.close()

        assert session.state is SessionState.CLOSED
        assert feed.subscriber_count("order-2") == 0

    async def test_inflight_fetch_after_close_is_ignored(self, session, scripted_store, make_record):
        """Test a fetch finishing after close leaves the view alone."""
        views = []
        session.subscribe(views.append)
        scripted_store.hold = True
        pending = asyncio.create_task(session.refresh())
        await settle()

        session.close()
        scripted_store.pending[0].set_result(make_record("nearby"))
        view = await pending

        assert view.step == TimelineStep.IN_TRANSIT
        assert session.current_view().step == TimelineStep.IN_TRANSIT
        assert views == []

    async def test_close_hooks_run_once(self, session):
        closed = []
        session.on_close(lambda: closed.append(True))
        removed = session.on_close(lambda: closed.append(False))
        removed()

        session.close()
        session.close()

        assert closed == [True]

    async def test_refresh_after_close_does_not_fetch(self, session, scripted_store):
        session.close()
        await session.refresh()
        assert scripted_store.calls == 1

    async def test_sessions_are_independent(self, scripted_store, feed):
        """Test closing one session leaves another on the same record running."""
        first = await TrackingSession.open(scripted_store, feed, "ORD-AB12", tenant_id="tenant-a")
        second = await TrackingSession.open(scripted_store, feed, "ORD-AB12", tenant_id="tenant-a")

        first.close()

        assert feed.subscriber_count("order-2") == 1
        assert second.state is SessionState.READY
        second.close()
