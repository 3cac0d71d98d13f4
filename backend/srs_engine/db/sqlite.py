from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Iterable

import aiosqlite

from srs_engine.models.card import CardQuery, ReviewCard

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);
INSERT OR IGNORE INTO schema_version(version) VALUES (1);

CREATE TABLE IF NOT EXISTS settings (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""

# (version, script) applied in order when the stored version is lower
MIGRATIONS: list[tuple[int, str]] = [
    (
        2,
        """
        CREATE TABLE IF NOT EXISTS review_cards (
            card_id        TEXT PRIMARY KEY,
            ease_factor    REAL NOT NULL DEFAULT 2.5 CHECK (ease_factor >= 1.3),
            interval       INTEGER NOT NULL DEFAULT 0 CHECK (interval >= 0),
            repetitions    INTEGER NOT NULL DEFAULT 0 CHECK (repetitions >= 0),
            next_review_at TEXT NOT NULL,
            last_review_at TEXT,
            updated_at     TEXT NOT NULL DEFAULT (datetime('now'))
        );
        CREATE INDEX IF NOT EXISTS idx_review_cards_next ON review_cards(next_review_at);
        INSERT OR IGNORE INTO schema_version(version) VALUES (2);
        """,
    ),
]

# Max bound parameters per IN (...) clause
_IN_BATCH = 500

_QUERY_SQL: dict[CardQuery, str] = {
    CardQuery.ALL: "1 = 1",
    CardQuery.DUE: "next_review_at <= :now",
    CardQuery.LEARNING: "repetitions < 2",
    CardQuery.MATURE: "interval >= 21",
}


async def init_sqlite(db_path: Path) -> int:
    """Create or upgrade the schema. Returns the resulting schema version."""
    async with aiosqlite.connect(db_path) as db:
        await db.executescript(SCHEMA_SQL)
        cursor = await db.execute("SELECT MAX(version) FROM schema_version")
        current_version = (await cursor.fetchone())[0]
        for version, script in MIGRATIONS:
            if current_version < version:
                await db.executescript(script)
                current_version = version
        await db.commit()
    return current_version


@asynccontextmanager
async def connect(db_path: Path) -> AsyncIterator[aiosqlite.Connection]:
    async with aiosqlite.connect(db_path) as db:
        db.row_factory = aiosqlite.Row
        yield db


def _ts(value: datetime) -> str:
    # Fixed-width UTC text so that string order is time order
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _row_to_card(row: aiosqlite.Row) -> ReviewCard:
    last = row["last_review_at"]
    return ReviewCard(
        card_id=row["card_id"],
        ease_factor=row["ease_factor"],
        interval=row["interval"],
        repetitions=row["repetitions"],
        next_review_date=datetime.fromisoformat(row["next_review_at"]),
        last_review_date=datetime.fromisoformat(last) if last else None,
    )


# --- Review cards ---


async def get_card(db: aiosqlite.Connection, card_id: str) -> ReviewCard | None:
    cursor = await db.execute(
        "SELECT * FROM review_cards WHERE card_id = ?", (card_id,)
    )
    row = await cursor.fetchone()
    return _row_to_card(row) if row else None


async def get_cards(
    db: aiosqlite.Connection, card_ids: Iterable[str]
) -> dict[str, ReviewCard]:
    ids = list(dict.fromkeys(card_ids))
    found: dict[str, ReviewCard] = {}
    for start in range(0, len(ids), _IN_BATCH):
        batch = ids[start : start + _IN_BATCH]
        placeholders = ", ".join("?" for _ in batch)
        cursor = await db.execute(
            f"SELECT * FROM review_cards WHERE card_id IN ({placeholders})",  # noqa: S608
            batch,
        )
        for row in await cursor.fetchall():
            card = _row_to_card(row)
            found[card.card_id] = card
    return found


async def upsert_card(db: aiosqlite.Connection, card: ReviewCard) -> None:
    """Full replacement of the card's persisted state."""
    await db.execute(
        """INSERT INTO review_cards
           (card_id, ease_factor, interval, repetitions,
            next_review_at, last_review_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?)
           ON CONFLICT(card_id) DO UPDATE SET
               ease_factor = excluded.ease_factor,
               interval = excluded.interval,
               repetitions = excluded.repetitions,
               next_review_at = excluded.next_review_at,
               last_review_at = excluded.last_review_at,
               updated_at = excluded.updated_at""",
        (
            card.card_id,
            card.ease_factor,
            card.interval,
            card.repetitions,
            _ts(card.next_review_date),
            _ts(card.last_review_date) if card.last_review_date else None,
            _now(),
        ),
    )
    await db.commit()


async def insert_card_if_absent(
    db: aiosqlite.Connection, card: ReviewCard
) -> ReviewCard:
    """Insert `card` unless a row already exists; return whichever is stored."""
    await db.execute(
        """INSERT OR IGNORE INTO review_cards
           (card_id, ease_factor, interval, repetitions,
            next_review_at, last_review_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (
            card.card_id,
            card.ease_factor,
            card.interval,
            card.repetitions,
            _ts(card.next_review_date),
            _ts(card.last_review_date) if card.last_review_date else None,
            _now(),
        ),
    )
    await db.commit()
    return await get_card(db, card.card_id)  # type: ignore[return-value]


async def count_cards(
    db: aiosqlite.Connection, query: CardQuery, now: datetime
) -> int:
    cursor = await db.execute(
        f"SELECT COUNT(*) FROM review_cards WHERE {_QUERY_SQL[query]}",  # noqa: S608
        {"now": _ts(now)},
    )
    row = await cursor.fetchone()
    return row[0] if row else 0


async def list_cards(
    db: aiosqlite.Connection, query: CardQuery, now: datetime
) -> list[ReviewCard]:
    cursor = await db.execute(
        f"SELECT * FROM review_cards WHERE {_QUERY_SQL[query]} ORDER BY card_id",  # noqa: S608
        {"now": _ts(now)},
    )
    rows = await cursor.fetchall()
    return [_row_to_card(r) for r in rows]


async def delete_all_cards(db: aiosqlite.Connection) -> int:
    cursor = await db.execute("DELETE FROM review_cards")
    await db.commit()
    return cursor.rowcount or 0


# --- Settings key-value store ---


async def get_setting(db: aiosqlite.Connection, key: str) -> str | None:
    cursor = await db.execute("SELECT value FROM settings WHERE key = ?", (key,))
    row = await cursor.fetchone()
    return row[0] if row else None


async def set_setting(db: aiosqlite.Connection, key: str, value: str) -> None:
    now = _now()
    await db.execute(
        "INSERT INTO settings(key, value, updated_at) VALUES (?, ?, ?) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
        (key, value, now),
    )
    await db.commit()


async def delete_setting(db: aiosqlite.Connection, key: str) -> bool:
    cursor = await db.execute("DELETE FROM settings WHERE key = ?", (key,))
    await db.commit()
    return (cursor.rowcount or 0) > 0
