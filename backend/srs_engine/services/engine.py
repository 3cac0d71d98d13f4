"""
Entry point used by the rest of the application.

Callers hand over plain card ids, response qualities and pools of eligible ids;
nothing here knows what a card stands for.
"""
from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime

from srs_engine.config import now as wall_clock
from srs_engine.models.card import ResponseQuality, ReviewCard, ReviewStats
from srs_engine.services import due
from srs_engine.services.scheduler import apply_response, preview_intervals
from srs_engine.services.session import build_session
from srs_engine.services.stats import compute_stats
from srs_engine.services.store import ScheduleStore, WriteResult

logger = logging.getLogger(__name__)


@dataclass
class ReviewOutcome:
    card: ReviewCard
    write: asyncio.Task[WriteResult]  # settles once the store has tried to persist


def _log_failed_write(task: asyncio.Task[WriteResult]) -> None:
    if task.cancelled():
        return
    result = task.result()
    if not result.ok:
        logger.warning(
            "Review for card %s not persisted, kept in memory only: %s",
            result.card_id,
            result.error,
        )


class SpacedRepetitionEngine:
    def __init__(
        self,
        store: ScheduleStore,
        clock: Callable[[], datetime] = wall_clock,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.rng = rng

    async def get_or_create(self, card_id: str) -> ReviewCard:
        return await self.store.get_or_create(card_id, self.clock())

    async def record_response(
        self, card_id: str, quality: ResponseQuality
    ) -> ReviewOutcome:
        """Apply a review and hand the new state to the store without waiting.

        Persistence failures never reach the caller; they are logged and the
        new state stays in effect for this process.
        """
        async with self.store.key_lock(card_id):
            now = self.clock()
            card = await self.store.get_or_create(card_id, now)
            updated = apply_response(card, quality, now)
            write = self.store.submit(updated)
        write.add_done_callback(_log_failed_write)
        return ReviewOutcome(card=updated, write=write)

    async def is_due(self, card_id: str) -> bool:
        return due.is_due(await self.store.get(card_id), self.clock())

    async def due_subset(self, card_ids: Sequence[str]) -> list[str]:
        return await due.due_subset(self.store, card_ids, self.clock())

    async def next_review_date(self, card_id: str) -> datetime | None:
        card = await self.store.get(card_id)
        return card.next_review_date if card else None

    async def interval_days(self, card_id: str) -> int:
        card = await self.store.get(card_id)
        return card.interval if card else 0

    async def preview(self, card_id: str) -> dict[str, int]:
        """Interval each response would give, without recording anything."""
        card = await self.store.get(card_id) or ReviewCard.new(card_id, self.clock())
        return preview_intervals(card)

    async def stats(self) -> ReviewStats:
        return await compute_stats(self.store, self.clock())

    async def build_session(self, pool: Iterable[str], limit: int) -> list[str]:
        return await build_session(self.store, pool, limit, self.clock(), self.rng)

    async def reset_all(self) -> WriteResult:
        return await self.store.delete_all()
