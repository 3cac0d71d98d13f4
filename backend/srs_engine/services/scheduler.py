"""
SM-2 style scheduling for a single review card.

Ordering matters: the new interval is computed from the ease factor the card had
*before* this review, and only then is the ease factor adjusted.
"""
from __future__ import annotations

from datetime import datetime, timedelta

from srs_engine.models.card import MIN_EASE_FACTOR, ResponseQuality, ReviewCard


def next_interval(card: ReviewCard, quality: ResponseQuality) -> int:
    """Interval in days that `quality` would assign to `card`."""
    if quality.is_failure:
        return 1
    if card.repetitions == 0:
        return 1
    if card.repetitions == 1:
        return 6
    return int(card.interval * card.ease_factor)


def apply_response(
    card: ReviewCard, quality: ResponseQuality, now: datetime
) -> ReviewCard:
    """Return the card's state after answering it with `quality` at `now`.

    `now` must be timezone-aware; adding whole days to it is wall-clock
    arithmetic in its zone, so a DST-shortened day still counts as one day.
    """
    interval = next_interval(card, quality)
    repetitions = 0 if quality.is_failure else card.repetitions + 1
    ease_factor = max(MIN_EASE_FACTOR, card.ease_factor + quality.ease_delta)

    return card.model_copy(
        update={
            "interval": interval,
            "repetitions": repetitions,
            "ease_factor": ease_factor,
            "last_review_date": now,
            "next_review_date": now + timedelta(days=interval),
        }
    )


def preview_intervals(card: ReviewCard) -> dict[str, int]:
    """Interval per response label, without changing anything."""
    return {q.label: next_interval(card, q) for q in ResponseQuality}
