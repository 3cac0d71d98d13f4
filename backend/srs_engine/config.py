from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_dir: Path = Path.home() / ".srs_engine" / "data"
    sqlite_filename: str = "srs.db"
    timezone: str = "UTC"  # IANA name; calendar-day arithmetic happens here
    default_session_limit: int = 10
    max_session_limit: int = 100
    legacy_storage_key: str = "srs_cards_data"
    legacy_migrated_key: str = "srs_legacy_migrated"
    log_level: str = "warning"

    model_config = {"env_prefix": "SRS_"}


settings = Settings()


def now(tz_name: str | None = None) -> datetime:
    """Current wall-clock time, timezone-aware, in the configured zone."""
    return datetime.now(ZoneInfo(tz_name or settings.timezone))
