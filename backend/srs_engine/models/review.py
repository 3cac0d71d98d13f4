from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from srs_engine.models.card import ResponseQuality


class ReviewRequest(BaseModel):
    quality: ResponseQuality  # 0=Again, 1=Hard, 2=Good, 3=Easy, or the label

    @field_validator("quality", mode="before")
    @classmethod
    def _parse_quality(cls, value: object) -> object:
        if isinstance(value, (int, str)) and not isinstance(value, bool):
            return ResponseQuality.parse(value)
        return value


class DueStatus(BaseModel):
    card_id: str
    due: bool
    next_review_date: datetime | None
    interval_days: int


class IntervalPreview(BaseModel):
    again: int
    hard: int
    good: int
    easy: int


class IdList(BaseModel):
    ids: list[str]


class SessionRequest(BaseModel):
    pool: list[str] = Field(default_factory=list)
    limit: int | None = Field(default=None, ge=0)
    # Sampled from when `pool` is empty
    fallback: list[str] = Field(default_factory=list)
