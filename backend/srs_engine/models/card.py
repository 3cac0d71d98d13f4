from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum, IntEnum

from pydantic import (
    AwareDatetime,
    BaseModel,
    Field,
    computed_field,
    field_validator,
)

MIN_EASE_FACTOR = 1.3
DEFAULT_EASE_FACTOR = 2.5
LEARNING_REPETITIONS = 2   # fewer than this = still learning
MATURE_INTERVAL_DAYS = 21  # interval at or above this = mature

# Reference date used by the legacy writer for numeric timestamps
_LEGACY_EPOCH = datetime(2001, 1, 1, tzinfo=timezone.utc)


class ResponseQuality(IntEnum):
    AGAIN = 0
    HARD = 1
    GOOD = 2
    EASY = 3

    @property
    def label(self) -> str:
        return self.name.lower()

    @property
    def is_failure(self) -> bool:
        return self < ResponseQuality.GOOD

    @property
    def ease_delta(self) -> float:
        return _EASE_DELTA[self]

    @classmethod
    def parse(cls, value: int | str) -> ResponseQuality:
        """Accept either the ordinal (0-3) or the lowercase label."""
        if isinstance(value, str) and not value.isdigit():
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"unknown response quality: {value!r}") from None
        return cls(int(value))


_EASE_DELTA = {
    ResponseQuality.AGAIN: -0.30,
    ResponseQuality.HARD: -0.15,
    ResponseQuality.GOOD: 0.0,
    ResponseQuality.EASY: 0.15,
}


class ReviewCard(BaseModel):
    card_id: str = Field(min_length=1)
    ease_factor: float = Field(default=DEFAULT_EASE_FACTOR, ge=MIN_EASE_FACTOR)
    interval: int = Field(default=0, ge=0)  # days; 0 = never successfully scheduled
    repetitions: int = Field(default=0, ge=0)
    next_review_date: AwareDatetime
    last_review_date: AwareDatetime | None = None

    model_config = {"frozen": True}

    @classmethod
    def new(cls, card_id: str, now: datetime) -> ReviewCard:
        """Default state for a card touched for the first time: due immediately."""
        return cls(card_id=card_id, next_review_date=now)

    @property
    def is_new(self) -> bool:
        return self.interval == 0

    @property
    def is_learning(self) -> bool:
        return self.repetitions < LEARNING_REPETITIONS

    @property
    def is_mature(self) -> bool:
        return self.interval >= MATURE_INTERVAL_DAYS

    def is_due(self, now: datetime) -> bool:
        return self.next_review_date <= now


class ReviewStats(BaseModel):
    total_cards: int
    due_today: int
    learning: int
    mature: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def mastery_percentage(self) -> float:
        if self.total_cards == 0:
            return 0.0
        return 100.0 * self.mature / self.total_cards


class LegacyCard(BaseModel):
    """One record of the flat key/value blob written by the previous version."""

    card_id: str = Field(alias="cardId", min_length=1)
    ease_factor: float = Field(alias="easeFactor", ge=MIN_EASE_FACTOR)
    interval: int = Field(ge=0)
    repetitions: int = Field(ge=0)
    next_review_date: datetime = Field(alias="nextReviewDate")
    last_review_date: datetime | None = Field(default=None, alias="lastReviewDate")

    @field_validator("next_review_date", "last_review_date", mode="before")
    @classmethod
    def _decode_date(cls, value: object) -> object:
        # Numeric dates are seconds since 2001-01-01 UTC, not the Unix epoch
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return _LEGACY_EPOCH + timedelta(seconds=value)
        return value

    @field_validator("next_review_date", "last_review_date")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_review_card(self) -> ReviewCard:
        return ReviewCard(
            card_id=self.card_id,
            ease_factor=self.ease_factor,
            interval=self.interval,
            repetitions=self.repetitions,
            next_review_date=self.next_review_date,
            last_review_date=self.last_review_date,
        )


class CardQuery(str, Enum):
    """Predicates the schedule store can count or list by."""

    ALL = "all"
    DUE = "due"            # next_review_date <= now
    LEARNING = "learning"  # repetitions < 2
    MATURE = "mature"      # interval >= 21

    def matches(self, card: ReviewCard, now: datetime) -> bool:
        if self is CardQuery.DUE:
            return card.is_due(now)
        if self is CardQuery.LEARNING:
            return card.is_learning
        if self is CardQuery.MATURE:
            return card.is_mature
        return True
