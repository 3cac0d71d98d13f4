"""
One-time import of the flat key/value schedule blob used by earlier versions.

The blob is a JSON object mapping card id -> record, stored under a single key in
the settings table. It is only removed after every record has been written and
the completion marker has been set, so an interrupted run is retried on the next
start instead of losing data.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from pydantic import TypeAdapter, ValidationError

from srs_engine.db.sqlite import delete_setting, get_setting, set_setting
from srs_engine.models.card import LegacyCard
from srs_engine.services.store import ScheduleStore

logger = logging.getLogger(__name__)

_LEGACY_BLOB = TypeAdapter(dict[str, LegacyCard])


@dataclass
class MigrationReport:
    status: str  # absent | already_migrated | undecodable | partial | migrated
    imported: int = 0
    failed: list[str] = field(default_factory=list)


class LegacyMigrator:
    def __init__(
        self,
        store: ScheduleStore,
        storage_key: str = "srs_cards_data",
        marker_key: str = "srs_legacy_migrated",
    ) -> None:
        self.store = store
        self.storage_key = storage_key
        self.marker_key = marker_key

    async def migrate(self) -> MigrationReport:
        """Import legacy records if present. Safe to call on every start."""
        async with self.store.connect() as db:
            blob = await get_setting(db, self.storage_key)
            if await get_setting(db, self.marker_key) == "true":
                if blob is not None:
                    # Crash between setting the marker and removing the blob
                    await delete_setting(db, self.storage_key)
                return MigrationReport(status="already_migrated")

        if blob is None:
            return MigrationReport(status="absent")

        try:
            records = _LEGACY_BLOB.validate_python(json.loads(blob))
        except (json.JSONDecodeError, ValidationError) as exc:
            # Left in place; an incompatible blob may still be recoverable by hand
            logger.warning("Legacy schedule data could not be decoded, skipping: %s", exc)
            return MigrationReport(status="undecodable")

        report = MigrationReport(status="migrated")
        for record in records.values():
            result = await self.store.upsert(record.to_review_card())
            if result.ok:
                report.imported += 1
            else:
                report.failed.append(record.card_id)

        if report.failed:
            report.status = "partial"
            logger.warning(
                "Legacy migration incomplete: %d of %d records failed; will retry",
                len(report.failed),
                len(records),
            )
            return report

        async with self.store.connect() as db:
            await set_setting(db, self.marker_key, "true")
            await delete_setting(db, self.storage_key)
        logger.info("Migrated %d legacy review cards", report.imported)
        return report
