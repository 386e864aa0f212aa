"""Application configuration."""

from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Trackpoint"
    debug: bool = False
    log_level: str = "INFO"

    # Paths
    base_dir: Path = Path(__file__).parent.parent.parent
    data_dir: Path = base_dir / "data"
    timeline_path: Path = Path(__file__).parent / "tracking" / "timeline.yaml"

    # Database
    database_url: str = f"sqlite+aiosqlite:///{data_dir / 'trackpoint.db'}"

    # Tracking
    poll_interval_seconds: float = 15.0
    failure_notice_threshold: int = 3
    stream_keepalive_seconds: float = 20.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()

# Ensure data directory exists
settings.data_dir.mkdir(parents=True, exist_ok=True)
