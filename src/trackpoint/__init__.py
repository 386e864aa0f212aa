"""Customer-facing delivery tracking."""

__version__ = "0.1.0"
