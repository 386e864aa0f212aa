"""Mapping of raw order statuses onto the public delivery timeline."""

from dataclasses import dataclass
from enum import IntEnum

from trackpoint.db.models import RawStatus, TERMINAL_STATUSES


class TimelineStep(IntEnum):
    """Position on the five-step customer timeline."""

    NONE = -1
    CONFIRMED = 0
    PICKED_UP = 1
    IN_TRANSIT = 2
    NEARBY = 3
    DELIVERED = 4


@dataclass(frozen=True)
class StatusPosition:
    """Where a raw status sits on the timeline."""

    step: TimelineStep
    is_terminal: bool = False
    is_cancelled: bool = False


STEP_FOR_STATUS: dict[RawStatus, TimelineStep] = {
    RawStatus.PENDING: TimelineStep.NONE,
    RawStatus.CONFIRMED: TimelineStep.CONFIRMED,
    RawStatus.PREPARING: TimelineStep.CONFIRMED,
    RawStatus.READY_FOR_PICKUP: TimelineStep.PICKED_UP,
    RawStatus.PICKED_UP: TimelineStep.PICKED_UP,
    RawStatus.IN_TRANSIT: TimelineStep.IN_TRANSIT,
    RawStatus.NEARBY: TimelineStep.NEARBY,
    RawStatus.DELIVERED: TimelineStep.DELIVERED,
    RawStatus.CANCELLED: TimelineStep.NONE,
}


def map_status(raw: RawStatus | str | None) -> StatusPosition:
    """Map a raw status to its timeline position.

    Accepts enum members or stored strings. Unrecognised values map to
    ``TimelineStep.NONE`` instead of raising, so new backend statuses
    degrade to "no step highlighted".
    """
    status = raw if isinstance(raw, RawStatus) else RawStatus.parse(raw)
    return StatusPosition(
        step=STEP_FOR_STATUS.get(status, TimelineStep.NONE),
        is_terminal=status in TERMINAL_STATUSES,
        is_cancelled=status is RawStatus.CANCELLED,
    )


def status_tone(raw: RawStatus | str | None) -> str:
    """Badge tone for a status."""
    status = raw if isinstance(raw, RawStatus) else RawStatus.parse(raw)
    if status is RawStatus.DELIVERED:
        return "success"
    if status in (RawStatus.IN_TRANSIT, RawStatus.NEARBY):
        return "info"
    if status is RawStatus.CANCELLED:
        return "danger"
    return "warning"
