"""Turn tracking views into the fields the tracking page renders."""

from datetime import datetime, timezone
from typing import Any

from trackpoint.tracking.records import CourierInfo, digits_only
from trackpoint.tracking.session import TrackingView
from trackpoint.tracking.status import TimelineStep, status_tone
from trackpoint.tracking.timeline import TimelineConfig


def format_phone(phone: str | None) -> str:
    """Format 10-digit numbers as (555) 123-4567; leave others alone."""
    if not phone:
        return ""
    digits = digits_only(phone)
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return phone


def timeline_entries(view: TrackingView, timeline: TimelineConfig) -> list[dict[str, str]]:
    entries = []
    for step, label in sorted(timeline.steps.items()):
        if view.step is TimelineStep.NONE or step > view.step:
            state = "upcoming"
        elif step == view.step:
            state = "current"
        else:
            state = "complete"
        entries.append({
            "key": step.name.lower(),
            "label": label.label,
            "description": label.description,
            "state": state,
        })
    return entries


def _courier_payload(courier: CourierInfo | None, now: datetime) -> dict[str, Any] | None:
    if courier is None:
        return None

    location_age = None
    if courier.location_updated_at is not None:
        updated = courier.location_updated_at
        if updated.tzinfo is None:
            updated = updated.replace(tzinfo=timezone.utc)
        location_age = max(0, int((now - updated).total_seconds()))

    return {
        "name": courier.name,
        "phone": courier.phone,
        "phone_display": format_phone(courier.phone),
        "vehicle_type": courier.vehicle_type,
        "lat": courier.current_lat,
        "lng": courier.current_lng,
        "location_updated_at": courier.location_updated_at,
        "location_age_seconds": location_age,
    }


def view_payload(
    view: TrackingView,
    timeline: TimelineConfig,
    poll_after: float | None = None,
) -> dict[str, Any]:
    """Everything the tracking page shows for a view."""
    record = view.record

    if view.is_cancelled:
        headline = timeline.cancelled
    elif view.step is TimelineStep.NONE:
        headline = timeline.pending
    else:
        headline = timeline.steps[view.step]

    return {
        "tracking_code": record.tracking_code,
        "status": record.raw_status.value,
        "status_label": headline.label,
        "status_description": headline.description,
        "tone": status_tone(record.raw_status),
        "step": int(view.step),
        "is_terminal": view.is_terminal,
        "is_cancelled": view.is_cancelled,
        "timeline": timeline_entries(view, timeline),
        "store_name": record.store_name,
        "customer_name": record.customer_name,
        "delivery_address": record.delivery_address,
        "total_amount": str(record.total_amount),
        "courier": _courier_payload(record.courier, view.fetched_at),
        "scheduled_at": record.scheduled_at,
        "estimated_delivery_at": record.estimated_delivery_at,
        "completed_at": record.completed_at,
        "last_updated": record.last_updated,
        "fetched_at": view.fetched_at,
        "is_stale": view.is_stale,
        "trouble_updating": view.trouble_updating,
        "poll_after_seconds": poll_after,
    }
