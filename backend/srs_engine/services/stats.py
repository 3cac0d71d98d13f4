from __future__ import annotations

from datetime import datetime

from srs_engine.models.card import CardQuery, ReviewStats
from srs_engine.services.store import ScheduleStore


async def compute_stats(store: ScheduleStore, now: datetime) -> ReviewStats:
    """Roll up card counts; mastery percentage is derived on the model."""
    return ReviewStats(
        total_cards=await store.count(CardQuery.ALL, now),
        due_today=await store.count(CardQuery.DUE, now),
        learning=await store.count(CardQuery.LEARNING, now),
        mature=await store.count(CardQuery.MATURE, now),
    )
