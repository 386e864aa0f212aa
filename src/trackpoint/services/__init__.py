"""Services package."""

from trackpoint.services.tracker import TrackerService

__all__ = ["TrackerService"]
