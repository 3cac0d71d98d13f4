from pathlib import Path

from srs_engine.config import settings
from srs_engine.db.sqlite import init_sqlite


async def init_all_databases(
    data_dir: Path, sqlite_filename: str = settings.sqlite_filename
) -> Path:
    """Prepare the data directory and schema; returns the SQLite file path."""
    data_dir.mkdir(parents=True, exist_ok=True)
    db_path = data_dir / sqlite_filename
    await init_sqlite(db_path)
    return db_path
