"""Tests for services/store.py -- persistence, predicates, write serialization."""

import asyncio
import logging
from datetime import timedelta
from zoneinfo import ZoneInfo

import aiosqlite

from srs_engine.db import sqlite as db_ops
from srs_engine.models.card import CardQuery, ResponseQuality, ReviewCard
from srs_engine.services.store import ScheduleStore

from conftest import START


def _card(card_id: str, **overrides) -> ReviewCard:
    fields = {"card_id": card_id, "next_review_date": START}
    fields.update(overrides)
    return ReviewCard(**fields)


async def _failing_upsert(db, card):
    raise aiosqlite.OperationalError("disk I/O error")


# ============================================================================
# get / get_or_create / upsert
# ============================================================================

async def test_get_unknown_returns_none(store):
    assert await store.get("nope") is None


async def test_get_or_create_persists_defaults(store, db_path):
    card = await store.get_or_create("L1", START)
    assert card.ease_factor == 2.5
    assert card.interval == 0
    assert card.repetitions == 0
    assert card.next_review_date == START
    assert card.last_review_date is None

    reopened = ScheduleStore(db_path)
    assert await reopened.get("L1") == card


async def test_get_or_create_keeps_existing_state(store):
    await store.upsert(_card("L1", interval=6, repetitions=2))
    card = await store.get_or_create("L1", START + timedelta(days=3))
    assert card.interval == 6
    assert card.next_review_date == START


async def test_upsert_is_full_replacement(store, db_path):
    await store.upsert(_card("L1", interval=6, repetitions=2, last_review_date=START))
    result = await store.upsert(_card("L1", interval=1))
    assert result.ok
    assert result.card_id == "L1"

    stored = await ScheduleStore(db_path).get("L1")
    assert stored.interval == 1
    assert stored.repetitions == 0
    assert stored.last_review_date is None


async def test_get_many_spans_batches(store):
    for i in range(510):
        await store.upsert(_card(f"c{i}"))
    found = await store.get_many([f"c{i}" for i in range(520)])
    assert len(found) == 510
    assert "c515" not in found


# ============================================================================
# Predicates
# ============================================================================

async def test_query_predicates(store):
    await store.upsert(_card("due-new", next_review_date=START - timedelta(hours=1)))
    await store.upsert(_card("due-exact", next_review_date=START))
    await store.upsert(
        _card("later-learning", interval=1, repetitions=1, next_review_date=START + timedelta(days=1))
    )
    await store.upsert(
        _card("mature", interval=21, repetitions=5, next_review_date=START + timedelta(days=21))
    )

    ids = lambda cards: [c.card_id for c in cards]  # noqa: E731
    assert ids(await store.query(CardQuery.DUE, START)) == ["due-exact", "due-new"]
    assert ids(await store.query(CardQuery.LEARNING, START)) == [
        "due-exact",
        "due-new",
        "later-learning",
    ]
    assert ids(await store.query(CardQuery.MATURE, START)) == ["mature"]
    assert await store.count(CardQuery.ALL, START) == 4
    assert await store.count(CardQuery.DUE, START) == 2


async def test_due_predicate_compares_instants_across_zones(store):
    tokyo = START.astimezone(ZoneInfo("Asia/Tokyo"))
    await store.upsert(_card("t", next_review_date=tokyo))
    assert await store.count(CardQuery.DUE, START) == 1
    assert await store.count(CardQuery.DUE, START - timedelta(seconds=1)) == 0


# ============================================================================
# Bulk delete
# ============================================================================

async def test_delete_all(store, db_path):
    for cid in ("a", "b", "c"):
        await store.get_or_create(cid, START)
    result = await store.delete_all()
    assert result.ok
    assert await store.count(CardQuery.ALL, START) == 0
    assert await ScheduleStore(db_path).get("a") is None


async def test_delete_all_waits_for_pending_writes(store):
    store.submit(_card("late", interval=3))
    await store.delete_all()
    await store.flush()
    assert await store.get("late") is None


async def test_delete_all_drops_idle_locks(engine, store):
    for cid in ("a", "b", "c"):
        await engine.record_response(cid, ResponseQuality.GOOD)
    await store.flush()
    assert store._key_locks and store._write_locks

    await store.delete_all()
    assert store._key_locks == {}
    assert store._write_locks == {}


async def test_delete_all_keeps_held_locks(store):
    lock = store.key_lock("busy")
    async with lock:
        await store.delete_all()
        assert store.key_lock("busy") is lock


# ============================================================================
# Async writes, overlay and per-key ordering
# ============================================================================

async def test_submit_visible_before_write_completes(store):
    task = store.submit(_card("L1", interval=6, repetitions=2))
    assert not task.done()
    assert (await store.get("L1")).interval == 6
    assert (await task).ok
    assert store.pending_writes == 0


async def test_same_key_writes_apply_in_submission_order(store, db_path):
    tasks = [store.submit(_card("L1", interval=i)) for i in range(1, 11)]
    results = await asyncio.gather(*tasks)
    assert all(r.ok for r in results)
    assert (await ScheduleStore(db_path).get("L1")).interval == 10


async def test_writes_to_distinct_keys_all_land(store, db_path):
    await asyncio.gather(*(store.submit(_card(f"k{i}", interval=i)) for i in range(25)))
    assert await ScheduleStore(db_path).count(CardQuery.ALL, START) == 25


async def test_failed_write_kept_in_memory_only(store, db_path, monkeypatch):
    await store.get_or_create("L1", START)
    monkeypatch.setattr(db_ops, "upsert_card", _failing_upsert)

    result = await store.submit(_card("L1", interval=6, repetitions=2))
    assert not result.ok
    assert "disk I/O error" in result.error

    # This process keeps the decision ...
    assert (await store.get("L1")).interval == 6
    assert await store.count(CardQuery.LEARNING, START) == 0
    # ... a restart does not
    assert (await ScheduleStore(db_path).get("L1")).interval == 0


async def test_upsert_reports_failure_without_raising(store, monkeypatch):
    monkeypatch.setattr(db_ops, "upsert_card", _failing_upsert)
    result = await store.upsert(_card("L1"))
    assert result.ok is False
    assert result.card_id == "L1"


async def _locked_read(db, card_id):
    raise aiosqlite.OperationalError("database is locked")


async def _failing_insert(db, card):
    raise aiosqlite.OperationalError("disk I/O error")


async def test_unreadable_store_reads_as_empty(tmp_path, caplog):
    broken = ScheduleStore(tmp_path / "missing" / "srs.db")
    with caplog.at_level(logging.WARNING, logger="srs_engine.services.store"):
        assert await broken.get("L1") is None
        assert await broken.get_many(["L1", "L2"]) == {}
        assert await broken.query(CardQuery.ALL, START) == []
        assert await broken.count(CardQuery.DUE, START) == 0
    assert "Could not read card L1" in caplog.text


async def test_unreadable_store_still_answers_from_overlay(store, monkeypatch):
    store.submit(_card("L1", interval=6, repetitions=2))
    monkeypatch.setattr(db_ops, "get_card", _locked_read)
    monkeypatch.setattr(db_ops, "get_cards", _locked_read)
    assert (await store.get("L1")).interval == 6
    assert set(await store.get_many(["L1", "L2"])) == {"L1"}
    await store.flush()


async def test_get_or_create_on_unreadable_store_gives_defaults(tmp_path):
    broken = ScheduleStore(tmp_path / "missing" / "srs.db")
    card = await broken.get_or_create("L1", START)
    assert card.is_new
    assert card.ease_factor == 2.5
    assert await broken.get("L1") is card


async def test_get_or_create_keeps_new_card_when_insert_fails(store, db_path, monkeypatch):
    monkeypatch.setattr(db_ops, "insert_card_if_absent", _failing_insert)
    card = await store.get_or_create("L1", START)
    assert card.interval == 0
    assert card.next_review_date == START
    # This process keeps the new card ...
    assert await store.get("L1") is card
    assert await store.count(CardQuery.ALL, START) == 1
    # ... a restart does not
    assert await ScheduleStore(db_path).get("L1") is None


async def test_response_recorded_while_reads_fail(engine, store, db_path, monkeypatch):
    monkeypatch.setattr(db_ops, "get_card", _locked_read)
    outcome = await engine.record_response("L1", ResponseQuality.GOOD)
    assert outcome.card.interval == 1
    assert outcome.card.repetitions == 1
    assert (await store.get("L1")).repetitions == 1

    assert (await outcome.write).ok
    monkeypatch.undo()
    assert (await ScheduleStore(db_path).get("L1")).repetitions == 1


async def test_burst_of_responses_for_one_card(engine, store, db_path):
    await asyncio.gather(
        *(engine.record_response("L1", ResponseQuality.GOOD) for _ in range(6))
    )
    await store.flush()
    card = await ScheduleStore(db_path).get("L1")
    assert card.repetitions == 6
    assert card.interval == 230  # 1, 6, 15, 37, 92, 230
