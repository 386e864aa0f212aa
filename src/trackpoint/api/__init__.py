"""HTTP API."""

from trackpoint.api.routes import router

__all__ = ["router"]
