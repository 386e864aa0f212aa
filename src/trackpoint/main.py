"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from trackpoint.api import router
from trackpoint.config import settings
from trackpoint.db import async_session, init_db
from trackpoint.services.tracker import TrackerService
from trackpoint.tracking.feed import InMemoryChangeFeed
from trackpoint.tracking.store import SqlRecordStore

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting %s...", settings.app_name)
    await init_db()

    app.state.change_feed = InMemoryChangeFeed()
    app.state.tracker = TrackerService(SqlRecordStore(async_session), app.state.change_feed)
    logger.info("Polling active deliveries every %.0fs", settings.poll_interval_seconds)

    yield

    # Shutdown
    logger.info("Shutting down...")


app = FastAPI(
    title=settings.app_name,
    description="Customer-facing delivery tracking",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routes
app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "trackpoint.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
