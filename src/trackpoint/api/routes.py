"""API routes for delivery tracking."""

import asyncio
import json
from typing import AsyncIterator

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from trackpoint.services.tracker import TrackerService
from trackpoint.tracking.errors import NotFound, TrackingError, ValidationError
from trackpoint.tracking.feed import InMemoryChangeFeed
from trackpoint.tracking.lookup import NOT_FOUND_MESSAGE
from trackpoint.tracking.session import TrackingSession

router = APIRouter()


def get_tracker(request: Request) -> TrackerService:
    return request.app.state.tracker


def get_change_feed(request: Request) -> InMemoryChangeFeed:
    return request.app.state.change_feed


def _http_error(error: TrackingError) -> HTTPException:
    if isinstance(error, ValidationError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, NotFound):
        return HTTPException(status_code=404, detail=NOT_FOUND_MESSAGE)
    return HTTPException(status_code=503, detail="Tracking is temporarily unavailable, please try again")


def _sse(payload: dict) -> str:
    return f"event: view\ndata: {json.dumps(jsonable_encoder(payload))}\n\n"


@router.get("/api/tenants/{tenant_id}/track/{tracking_code}")
async def track(tenant_id: str, tracking_code: str, tracker: TrackerService = Depends(get_tracker)):
    """Current delivery status for a tracking link."""
    try:
        session = await tracker.open_direct(tenant_id, tracking_code)
    except TrackingError as e:
        raise _http_error(e) from e

    try:
        return tracker.payload(session.current_view())
    finally:
        session.close()


@router.post("/api/tenants/{tenant_id}/track/lookup")
async def lookup(
    tenant_id: str,
    order_number: str = Form(default=""),
    phone: str = Form(default=""),
    tracker: TrackerService = Depends(get_tracker),
):
    """Find a delivery from the order number and the customer's phone."""
    try:
        session = await tracker.open_lookup(tenant_id, order_number, phone)
    except TrackingError as e:
        raise _http_error(e) from e

    try:
        return tracker.payload(session.current_view())
    finally:
        session.close()


async def _view_events(
    request: Request,
    tracker: TrackerService,
    session: TrackingSession,
) -> AsyncIterator[str]:
    queue: asyncio.Queue = asyncio.Queue()
    session.subscribe(queue.put_nowait)

    async with tracker.watch(session):
        view = session.current_view()
        yield _sse(tracker.payload(view))

        while not view.is_terminal:
            if await request.is_disconnected():
                break
            try:
                view = await asyncio.wait_for(
                    queue.get(), timeout=tracker.settings.stream_keepalive_seconds
                )
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield _sse(tracker.payload(view))


@router.get("/api/tenants/{tenant_id}/track/{tracking_code}/events")
async def track_events(
    request: Request,
    tenant_id: str,
    tracking_code: str,
    tracker: TrackerService = Depends(get_tracker),
):
    """Server-sent events with a new view every time the delivery changes."""
    try:
        session = await tracker.open_direct(tenant_id, tracking_code)
    except TrackingError as e:
        raise _http_error(e) from e

    return StreamingResponse(
        _view_events(request, tracker, session),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
        background=BackgroundTask(session.close),
    )


@router.post("/api/deliveries/{record_id}/changed", status_code=202)
async def delivery_changed(record_id: str, feed: InMemoryChangeFeed = Depends(get_change_feed)):
    """Webhook for the order system: a delivery record was updated."""
    notified = feed.publish(record_id)
    return {"record_id": record_id, "notified": notified}
