"""
Practice session composition.

A session is a snapshot: due/new classification happens once, against a single
`now`, and is not revisited while the learner works through the batch.
"""
from __future__ import annotations

import random
from collections.abc import Iterable
from datetime import datetime

from srs_engine.services.due import is_due
from srs_engine.services.store import ScheduleStore


async def build_session(
    store: ScheduleStore,
    pool: Iterable[str],
    limit: int,
    now: datetime,
    rng: random.Random | None = None,
) -> list[str]:
    """Pick up to `limit` ids from `pool`: cards in review first, then new ones.

    Selection is decided before shuffling; the shuffle only changes the order
    in which the selected ids are presented.
    """
    candidates = list(dict.fromkeys(pool))
    if limit <= 0 or not candidates:
        return []

    cards = await store.get_many(candidates)
    # Unknown ids have default state: interval 0, due now
    new = [cid for cid in candidates if cid not in cards or cards[cid].is_new]
    new_ids = set(new)
    in_review = [
        cid
        for cid in candidates
        if cid not in new_ids and is_due(cards.get(cid), now)
    ]

    selected = (in_review + new)[:limit]
    (rng or random).shuffle(selected)
    return selected
