"""
Spaced repetition router.

Endpoints:
  GET  /srs/cards/{id}           - card state (created with defaults on first touch)
  POST /srs/cards/{id}/review    - record a response, returns the new state
  GET  /srs/cards/{id}/preview   - interval each response would give
  GET  /srs/cards/{id}/due       - due flag, next review date, interval
  POST /srs/due                  - due subset of a list of ids, order kept
  GET  /srs/stats                - totals and mastery percentage
  POST /srs/session              - bounded, shuffled practice batch
  POST /srs/reset                - delete all review state
"""
from __future__ import annotations

import random

from fastapi import APIRouter, Depends, HTTPException, Request

from srs_engine.config import Settings
from srs_engine.models.card import ReviewCard, ReviewStats
from srs_engine.models.review import (
    DueStatus,
    IdList,
    IntervalPreview,
    ReviewRequest,
    SessionRequest,
)
from srs_engine.services.engine import SpacedRepetitionEngine

router = APIRouter()


def get_engine(request: Request) -> SpacedRepetitionEngine:
    return request.app.state.engine


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


@router.get("/cards/{card_id}", response_model=ReviewCard)
async def get_card(
    card_id: str, engine: SpacedRepetitionEngine = Depends(get_engine)
) -> ReviewCard:
    return await engine.get_or_create(card_id)


@router.post("/cards/{card_id}/review", response_model=ReviewCard)
async def review_card(
    card_id: str,
    body: ReviewRequest,
    engine: SpacedRepetitionEngine = Depends(get_engine),
) -> ReviewCard:
    """Record a response. Returns before the write is durable."""
    outcome = await engine.record_response(card_id, body.quality)
    return outcome.card


@router.get("/cards/{card_id}/preview", response_model=IntervalPreview)
async def preview_card(
    card_id: str, engine: SpacedRepetitionEngine = Depends(get_engine)
) -> IntervalPreview:
    return IntervalPreview(**await engine.preview(card_id))


@router.get("/cards/{card_id}/due", response_model=DueStatus)
async def card_due(
    card_id: str, engine: SpacedRepetitionEngine = Depends(get_engine)
) -> DueStatus:
    return DueStatus(
        card_id=card_id,
        due=await engine.is_due(card_id),
        next_review_date=await engine.next_review_date(card_id),
        interval_days=await engine.interval_days(card_id),
    )


@router.post("/due", response_model=IdList)
async def due_cards(
    body: IdList, engine: SpacedRepetitionEngine = Depends(get_engine)
) -> IdList:
    return IdList(ids=await engine.due_subset(body.ids))


@router.get("/stats", response_model=ReviewStats)
async def review_stats(
    engine: SpacedRepetitionEngine = Depends(get_engine),
) -> ReviewStats:
    return await engine.stats()


@router.post("/session", response_model=IdList)
async def practice_session(
    body: SessionRequest,
    engine: SpacedRepetitionEngine = Depends(get_engine),
    app_settings: Settings = Depends(get_settings),
) -> IdList:
    limit = body.limit if body.limit is not None else app_settings.default_session_limit
    limit = min(limit, app_settings.max_session_limit)

    pool = body.pool
    if not pool and body.fallback:
        fallback = list(dict.fromkeys(body.fallback))
        pool = (engine.rng or random).sample(fallback, min(limit, len(fallback)))

    return IdList(ids=await engine.build_session(pool, limit))


@router.post("/reset", status_code=204)
async def reset_progress(
    engine: SpacedRepetitionEngine = Depends(get_engine),
) -> None:
    result = await engine.reset_all()
    if not result.ok:
        raise HTTPException(status_code=503, detail="Could not reset review progress")
