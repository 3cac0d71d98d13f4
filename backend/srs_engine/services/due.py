from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from srs_engine.models.card import ReviewCard
from srs_engine.services.store import ScheduleStore


def is_due(card: ReviewCard | None, now: datetime) -> bool:
    """A card with no persisted state counts as due, like a brand-new card."""
    return card is None or card.is_due(now)


async def due_subset(
    store: ScheduleStore, card_ids: Sequence[str], now: datetime
) -> list[str]:
    """Return the ids in `card_ids` that are due at `now`, in input order.

    Read-only: ids with no stored card are reported as due but not created.
    """
    cards = await store.get_many(card_ids)
    return [cid for cid in card_ids if is_due(cards.get(cid), now)]
