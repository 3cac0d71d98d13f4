from srs_engine.models.card import (
    CardQuery,
    LegacyCard,
    ResponseQuality,
    ReviewCard,
    ReviewStats,
)
from srs_engine.models.review import (
    DueStatus,
    IdList,
    IntervalPreview,
    ReviewRequest,
    SessionRequest,
)

__all__ = [
    "CardQuery",
    "DueStatus",
    "IdList",
    "IntervalPreview",
    "LegacyCard",
    "ResponseQuality",
    "ReviewCard",
    "ReviewRequest",
    "ReviewStats",
    "SessionRequest",
]
