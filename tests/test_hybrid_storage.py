"""
Tests for HybridScoreStorage routing, dual writes, migration and retention.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from scoreboard.data_models.score import QueryOptions
from scoreboard.data_models.subscription import SubscriptionTier, TierLimits
from scoreboard.storage.hybrid_storage import HybridScoreStorage
from scoreboard.utils.storage_exceptions import (
    InvalidFilterKeyError, ScoreValidationError, UnknownSubscriptionTierError
)

GAME_ID = "game-1"


def ids(entries):
    return [entry.id for entry in entries]


async def test_save_then_get_returns_ranked_scores(storage, make_score):
    await storage.save_score(GAME_ID, make_score("s1", 700))
    await storage.save_score(GAME_ID, make_score("s2", 300))

    scores = await storage.get_scores(GAME_ID, QueryOptions(category="default", sort_order="desc", limit=2))

    assert ids(scores) == ["s1", "s2"]


async def test_save_writes_both_tiers(storage, hot, cold, make_score):
    entry = make_score("s1", 700, metadata={"level": 2})
    await storage.save_score(GAME_ID, entry)

    assert await hot.get_scores(GAME_ID, QueryOptions()) == [entry]
    assert await cold.get_scores(GAME_ID, QueryOptions()) == [entry]


async def test_resave_keeps_one_entry_per_tier_with_latest_score(storage, hot, cold, make_score):
    await storage.save_score(GAME_ID, make_score("s1", 100))
    await storage.save_score(GAME_ID, make_score("s1", 900))

    for tier in (hot, cold):
        scores = await tier.get_scores(GAME_ID, QueryOptions(limit=50))
        assert [(entry.id, entry.score) for entry in scores] == [("s1", 900)]


async def test_invalid_entry_touches_neither_tier(storage, hot, cold, make_score):
    with pytest.raises(ScoreValidationError):
        await storage.save_score(GAME_ID, make_score("s1", float("nan")))

    assert await hot.get_scores(GAME_ID, QueryOptions()) == []
    assert await cold.get_scores(GAME_ID, QueryOptions()) == []


async def test_cold_failure_aborts_before_hot_write(storage, hot, cold, make_score, monkeypatch):
    monkeypatch.setattr(cold, "save_score", AsyncMock(side_effect=ConnectionError("db down")))

    with pytest.raises(ConnectionError):
        await storage.save_score(GAME_ID, make_score("s1", 10))

    assert await hot.get_scores(GAME_ID, QueryOptions()) == []


async def test_hot_failure_after_cold_write_propagates(storage, hot, cold, make_score, monkeypatch):
    monkeypatch.setattr(hot, "save_score", AsyncMock(side_effect=ConnectionError("redis down")))

    with pytest.raises(ConnectionError):
        await storage.save_score(GAME_ID, make_score("s1", 10))

    # The durable write landed and reads still find it through the fallback
    assert ids(await cold.get_scores(GAME_ID, QueryOptions())) == ["s1"]
    assert ids(await storage.get_scores(GAME_ID, QueryOptions())) == ["s1"]


async def test_batch_save_uses_same_policy(storage, hot, cold, make_score, monkeypatch):
    monkeypatch.setattr(cold, "batch_save_scores", AsyncMock(side_effect=ConnectionError("db down")))

    with pytest.raises(ConnectionError):
        await storage.batch_save_scores(GAME_ID, [make_score("s1", 10), make_score("s2", 20)])

    assert await hot.get_scores(GAME_ID, QueryOptions()) == []


async def test_batch_save_writes_both_tiers(storage, hot, cold, make_score):
    await storage.batch_save_scores(GAME_ID, [make_score("s1", 10), make_score("s2", 20)])
    await storage.batch_save_scores(GAME_ID, [])

    assert ids(await hot.get_scores(GAME_ID, QueryOptions())) == ["s2", "s1"]
    assert ids(await cold.get_scores(GAME_ID, QueryOptions())) == ["s2", "s1"]


async def test_hot_error_falls_back_to_cold(storage, hot, make_score, monkeypatch, caplog):
    await storage.batch_save_scores(GAME_ID, [make_score("s1", 700), make_score("s2", 300)])
    monkeypatch.setattr(hot, "get_scores", AsyncMock(side_effect=ConnectionError("redis down")))

    scores = await storage.get_scores(GAME_ID, QueryOptions(
        start_date=datetime.now(timezone.utc) - timedelta(hours=1)
    ))

    assert ids(scores) == ["s1", "s2"]
    assert "falling back" in caplog.text


async def test_empty_hot_result_falls_back_to_cold(storage, hot, cold, make_score):
    await cold.save_score(GAME_ID, make_score("history", 50, age=timedelta(days=3)))

    scores = await storage.get_scores(GAME_ID, QueryOptions())

    assert ids(scores) == ["history"]


async def test_old_start_date_skips_hot_tier(storage, hot, cold, make_score, monkeypatch):
    await storage.save_score(GAME_ID, make_score("s1", 10))
    hot_read = AsyncMock(return_value=[])
    monkeypatch.setattr(hot, "get_scores", hot_read)

    scores = await storage.get_scores(GAME_ID, QueryOptions(
        start_date=datetime.now(timezone.utc) - timedelta(days=2)
    ))

    hot_read.assert_not_called()
    assert ids(scores) == ["s1"]


async def test_cold_reads_are_clamped_to_retention_floor(storage, cold, make_score):
    # independent tier keeps 15 days
    await cold.batch_save_scores(GAME_ID, [
        make_score("inside", 10, age=timedelta(days=10)),
        make_score("outside", 20, age=timedelta(days=20)),
    ])

    default_window = await storage.get_scores(GAME_ID, QueryOptions())
    asked_for_more = await storage.get_scores(GAME_ID, QueryOptions(
        start_date=datetime.now(timezone.utc) - timedelta(days=60)
    ))

    assert ids(default_window) == ["inside"]
    assert ids(asked_for_more) == ["inside"]


async def test_delete_removes_from_both_tiers(storage, hot, cold, make_score):
    await storage.save_score(GAME_ID, make_score("s1", 10))

    await storage.delete_score(GAME_ID, "s1")
    await storage.delete_score(GAME_ID, "never-existed")

    assert await hot.get_scores(GAME_ID, QueryOptions()) == []
    assert await cold.get_scores(GAME_ID, QueryOptions()) == []


async def test_delete_failure_surfaces(storage, cold, make_score, monkeypatch):
    monkeypatch.setattr(cold, "delete_score", AsyncMock(side_effect=ConnectionError("db down")))

    with pytest.raises(ConnectionError):
        await storage.delete_score(GAME_ID, "s1")


async def test_migrate_moves_old_entries_unchanged(storage, hot, cold, make_score):
    old = make_score("old", 500, age=timedelta(days=2), metadata={"level": 7}, verified=True)
    old_daily = make_score("old-daily", 400, age=timedelta(days=3), category="daily")
    recent = make_score("recent", 100)
    await hot.batch_save_scores(GAME_ID, [old, old_daily, recent])

    migrated = await storage.migrate_to_historical(GAME_ID)

    assert migrated == 2
    assert ids(await hot.get_scores(GAME_ID, QueryOptions())) == ["recent"]
    assert await hot.get_scores(GAME_ID, QueryOptions(category="daily")) == []
    assert await cold.get_scores(GAME_ID, QueryOptions()) == [old]
    assert await cold.get_scores(GAME_ID, QueryOptions(category="daily")) == [old_daily]


async def test_migrate_is_idempotent(storage, hot, cold, make_score):
    old = make_score("old", 500, age=timedelta(days=2))
    await storage.save_score(GAME_ID, old)

    assert await storage.migrate_to_historical(GAME_ID) == 1
    assert await storage.migrate_to_historical(GAME_ID) == 0

    # Entry already in the cold tier and back in the hot tier
    await hot.save_score(GAME_ID, old)
    assert await storage.migrate_to_historical(GAME_ID) == 1
    assert await cold.get_scores(GAME_ID, QueryOptions(limit=50)) == [old]


async def test_migrate_keeps_hot_data_when_cold_write_fails(storage, hot, cold, make_score, monkeypatch):
    await hot.save_score(GAME_ID, make_score("old", 500, age=timedelta(days=2)))
    monkeypatch.setattr(cold, "batch_save_scores", AsyncMock(side_effect=ConnectionError("db down")))

    with pytest.raises(ConnectionError):
        await storage.migrate_to_historical(GAME_ID)

    assert ids(await hot.get_scores(GAME_ID, QueryOptions())) == ["old"]


async def test_migrate_moves_at_most_one_batch(storage, hot, cold, make_score, monkeypatch):
    monkeypatch.setattr("scoreboard.constants.TieringConstants.MIGRATION_BATCH_SIZE", 3)
    await hot.batch_save_scores(GAME_ID, [make_score(f"old{i}", i, age=timedelta(days=2)) for i in range(5)])

    assert await storage.migrate_to_historical(GAME_ID) == 3
    assert len(await hot.get_scores(GAME_ID, QueryOptions(limit=50))) == 2
    assert await storage.migrate_to_historical(GAME_ID) == 2
    assert len(await cold.get_scores(GAME_ID, QueryOptions(limit=50))) == 5


async def test_enforce_retention_example_scenario(storage, hot, cold, make_score):
    await storage.save_score(GAME_ID, make_score("s1", 700))
    await storage.save_score(GAME_ID, make_score("s2", 300))
    assert ids(await storage.get_scores(GAME_ID, QueryOptions(sort_order="desc", limit=2))) == ["s1", "s2"]

    # Backdate s2 to 20 days ago in both tiers
    await storage.delete_score(GAME_ID, "s2")
    await storage.save_score(GAME_ID, make_score("s2", 300, age=timedelta(days=20)))

    cutoff = await storage.enforce_retention(GAME_ID)

    assert datetime.now(timezone.utc) - cutoff >= timedelta(days=15)
    assert ids(await storage.get_scores(GAME_ID, QueryOptions(sort_order="desc", limit=2))) == ["s1"]
    for tier in (hot, cold):
        assert ids(await tier.get_scores(GAME_ID, QueryOptions(limit=50))) == ["s1"]


async def test_retention_follows_subscription_tier(hot, cold, make_score, tier_limits):
    tier_limits["studio"] = TierLimits(retention_days=30, requests_per_minute=300, max_leaderboards=10)
    storage = HybridScoreStorage(hot, cold, SubscriptionTier.STUDIO, tier_limits=tier_limits)
    await storage.batch_save_scores(GAME_ID, [
        make_score("kept", 10, age=timedelta(days=20)),
        make_score("dropped", 20, age=timedelta(days=40)),
    ])

    await storage.enforce_retention(GAME_ID)

    assert ids(await cold.get_scores(GAME_ID, QueryOptions(limit=50))) == ["kept"]
    assert ids(await hot.get_scores(GAME_ID, QueryOptions(limit=50))) == ["kept"]


def test_unknown_tier_is_rejected(hot, cold, tier_limits):
    with pytest.raises(UnknownSubscriptionTierError):
        HybridScoreStorage(hot, cold, "platinum", tier_limits=tier_limits)


def test_retention_floor(storage):
    now = datetime(2026, 3, 20, tzinfo=timezone.utc)
    assert storage.retention_floor(now) == datetime(2026, 3, 5, tzinfo=timezone.utc)


async def test_resave_after_migration_keeps_first_identity(storage, hot, cold, make_score):
    await storage.save_score(GAME_ID, make_score("s1", 100, category="daily", age=timedelta(days=2)))
    await storage.migrate_to_historical(GAME_ID)

    stored = await storage.save_score(GAME_ID, make_score("s1", 900, category="weekly", player_name="Renamed"))

    assert (stored.category, stored.player_name, stored.score) == ("daily", "Player s1", 900)
    assert await hot.get_scores(GAME_ID, QueryOptions(category="weekly")) == []
    assert await cold.get_scores(GAME_ID, QueryOptions(category="weekly")) == []
    [hot_entry] = await hot.get_scores(GAME_ID, QueryOptions(category="daily"))
    [cold_entry] = await cold.get_scores(GAME_ID, QueryOptions(category="daily"))
    assert hot_entry == cold_entry == stored


async def test_batch_resave_after_migration_keeps_first_identity(storage, hot, make_score):
    await storage.save_score(GAME_ID, make_score("s1", 100, category="daily", age=timedelta(days=2)))
    await storage.migrate_to_historical(GAME_ID)

    await storage.batch_save_scores(GAME_ID, [make_score("s1", 900, category="weekly")])

    assert await hot.get_scores(GAME_ID, QueryOptions(category="weekly")) == []
    assert ids(await hot.get_scores(GAME_ID, QueryOptions(category="daily"))) == ["s1"]


@pytest.mark.parametrize("filters", [
    {"hardcore": True},
    {"hardcore": False},
    {"hardcore": 1},
    {"ratio": 0.5},
    {"ratio": 2},
    {"team": None},
    {"team": "red"},
])
async def test_metadata_filters_agree_across_tiers(storage, hot, cold, make_score, filters):
    await storage.batch_save_scores(GAME_ID, [
        make_score("s1", 30, metadata={"hardcore": True, "ratio": 0.5, "team": None}),
        make_score("s2", 20, metadata={"hardcore": 1, "ratio": 2.0, "team": "red"}),
        make_score("s3", 10, metadata={"hardcore": False, "ratio": "2"}),
    ])
    options = QueryOptions(filters=filters)

    hot_ids = ids(await hot.get_scores(GAME_ID, options))
    cold_ids = ids(await cold.get_scores(GAME_ID, options))

    assert hot_ids == cold_ids
    assert len(hot_ids) == 1


async def test_unsafe_filter_key_fails_whichever_tier_answers(storage, make_score):
    options = QueryOptions(filters={"a.b": 1})

    with pytest.raises(InvalidFilterKeyError):
        await storage.get_scores(GAME_ID, options)

    await storage.save_score(GAME_ID, make_score("s1", 10))
    with pytest.raises(InvalidFilterKeyError):
        await storage.get_scores(GAME_ID, options)


async def test_game_ids_with_separator_are_rejected(storage, hot, cold, make_score):
    with pytest.raises(ScoreValidationError):
        await storage.save_score("a:b", make_score("c", 1, game_id="a:b"))
    with pytest.raises(ScoreValidationError):
        await storage.enforce_retention("a:b")

    assert await cold.get_scores("a:b", QueryOptions()) == []
