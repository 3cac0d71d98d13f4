"""
Persistence for review cards.

Writes for one card id never interleave: each goes through that id's write lock,
which hands out turns in FIFO order. Different ids write concurrently.

`submit()` is the fire-and-forget path used while a learner is answering: the new
state is visible to readers immediately via an in-memory overlay and the SQLite
write happens in a background task. If that write fails the overlay entry stays,
so the decision holds for the life of the process but not across a restart.

Read failures are logged and answered from the overlay alone. A card the overlay
does not hold reads as unknown, so callers fall back to new-card defaults.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from srs_engine.db import sqlite as db_ops
from srs_engine.models.card import CardQuery, ReviewCard

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WriteResult:
    ok: bool
    card_id: str | None = None  # None for bulk operations
    error: str | None = None


class ScheduleStore:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._key_locks: dict[str, asyncio.Lock] = {}
        self._write_locks: dict[str, asyncio.Lock] = {}
        self._pending: dict[str, ReviewCard] = {}
        self._tasks: set[asyncio.Task[WriteResult]] = set()

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        async with db_ops.connect(self.db_path) as db:
            yield db

    def key_lock(self, card_id: str) -> asyncio.Lock:
        """Lock for callers doing read-modify-write on one card."""
        return self._key_locks.setdefault(card_id, asyncio.Lock())

    @property
    def pending_writes(self) -> int:
        return len(self._tasks)

    # --- Reads ---

    async def get(self, card_id: str) -> ReviewCard | None:
        if card_id in self._pending:
            return self._pending[card_id]
        try:
            async with self.connect() as db:
                return await db_ops.get_card(db, card_id)
        except aiosqlite.Error as exc:
            logger.warning("Could not read card %s: %s", card_id, exc)
            # A submit may have landed while the read was in flight
            return self._pending.get(card_id)

    async def get_many(self, card_ids: Iterable[str]) -> dict[str, ReviewCard]:
        overlay = dict(self._pending)
        ids = list(dict.fromkeys(card_ids))
        missing = [cid for cid in ids if cid not in overlay]
        try:
            async with self.connect() as db:
                found = await db_ops.get_cards(db, missing) if missing else {}
        except aiosqlite.Error as exc:
            logger.warning("Could not read %d cards: %s", len(missing), exc)
            found = {}
        found.update((cid, overlay[cid]) for cid in ids if cid in overlay)
        return found

    async def get_or_create(self, card_id: str, now: datetime) -> ReviewCard:
        existing = await self.get(card_id)
        if existing is not None:
            return existing

        fresh = ReviewCard.new(card_id, now)
        async with self._write_lock(card_id):
            try:
                async with self.connect() as db:
                    return await db_ops.insert_card_if_absent(db, fresh)
            except aiosqlite.Error as exc:
                logger.warning("Could not persist new card %s: %s", card_id, exc)
                self._pending.setdefault(card_id, fresh)
                return self._pending[card_id]

    async def query(self, predicate: CardQuery, now: datetime) -> list[ReviewCard]:
        # Snapshot the overlay before reading so a write landing mid-read is not lost
        overlay = dict(self._pending)
        try:
            async with self.connect() as db:
                stored = await db_ops.list_cards(db, predicate, now)
        except aiosqlite.Error as exc:
            logger.warning("Could not list %s cards: %s", predicate.value, exc)
            stored = []
        merged = {c.card_id: c for c in stored if c.card_id not in overlay}
        merged.update(
            (cid, card) for cid, card in overlay.items() if predicate.matches(card, now)
        )
        return sorted(merged.values(), key=lambda c: c.card_id)

    async def count(self, predicate: CardQuery, now: datetime) -> int:
        if self._pending:
            return len(await self.query(predicate, now))
        try:
            async with self.connect() as db:
                return await db_ops.count_cards(db, predicate, now)
        except aiosqlite.Error as exc:
            logger.warning("Could not count %s cards: %s", predicate.value, exc)
            return sum(1 for c in self._pending.values() if predicate.matches(c, now))

    # --- Writes ---

    def submit(self, card: ReviewCard) -> asyncio.Task[WriteResult]:
        """Schedule a best-effort write and return without waiting for it."""
        self._pending[card.card_id] = card
        task = asyncio.create_task(self._write(card), name=f"srs-write-{card.card_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def upsert(self, card: ReviewCard) -> WriteResult:
        """Persist a full replacement of the card and wait for the outcome."""
        self._pending[card.card_id] = card
        return await self._write(card)

    async def delete_all(self) -> WriteResult:
        await self.flush()
        try:
            async with self.connect() as db:
                deleted = await db_ops.delete_all_cards(db)
        except aiosqlite.Error as exc:
            logger.warning("Bulk card delete failed: %s", exc)
            return WriteResult(ok=False, error=str(exc))
        self._pending.clear()
        self._prune_locks()
        logger.info("Deleted %d review cards", deleted)
        return WriteResult(ok=True)

    async def flush(self) -> None:
        """Wait until every submitted write has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _write_lock(self, card_id: str) -> asyncio.Lock:
        return self._write_locks.setdefault(card_id, asyncio.Lock())

    def _prune_locks(self) -> None:
        # Held locks stay so their holders and waiters keep sharing one lock
        for locks in (self._key_locks, self._write_locks):
            for card_id in [cid for cid, lock in locks.items() if not lock.locked()]:
                del locks[card_id]

    async def _write(self, card: ReviewCard) -> WriteResult:
        async with self._write_lock(card.card_id):
            try:
                async with self.connect() as db:
                    await db_ops.upsert_card(db, card)
            except aiosqlite.Error as exc:
                logger.debug("Write for card %s failed: %s", card.card_id, exc)
                return WriteResult(ok=False, card_id=card.card_id, error=str(exc))
        # A newer submission may have replaced the overlay entry meanwhile
        if self._pending.get(card.card_id) is card:
            del self._pending[card.card_id]
        return WriteResult(ok=True, card_id=card.card_id)
