"""
Shared fixtures for the score storage tests.

The hot tier runs against fakeredis, the cold tier against a throwaway
SQLite file through aiosqlite.
"""

from datetime import datetime, timedelta, timezone

import fakeredis
import pytest
import pytest_asyncio

from scoreboard.data_models.score import ScoreEntry
from scoreboard.data_models.subscription import DEFAULT_TIER_LIMITS
from scoreboard.database.database import Database
from scoreboard.storage.hybrid_storage import HybridScoreStorage
from scoreboard.storage.redis_adapter import RedisScoreStorage
from scoreboard.storage.sql_adapter import SqlScoreStorage

GAME_ID = "game-1"


def make_entry(score_id: str, score: float, age: timedelta = timedelta(0), **overrides) -> ScoreEntry:
    """Build an entry timestamped `age` ago."""
    fields = dict(
        id=score_id,
        game_id=GAME_ID,
        player_id=f"player-{score_id}",
        player_name=f"Player {score_id}",
        score=score,
        category="default",
        metadata={},
        timestamp=datetime.now(timezone.utc) - age,
        verified=False,
    )
    fields.update(overrides)
    return ScoreEntry(**fields)


@pytest.fixture
def make_score():
    return make_entry


@pytest_asyncio.fixture
async def redis_client():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    await client.flushall()
    yield client
    await client.flushall()
    await client.aclose()


@pytest_asyncio.fixture
async def hot(redis_client):
    return RedisScoreStorage(redis_client)


@pytest_asyncio.fixture
async def cold(tmp_path):
    storage = SqlScoreStorage(Database(f"sqlite+aiosqlite:///{tmp_path / 'scores.db'}"))
    await storage.initialize()
    yield storage
    await storage.close()


@pytest.fixture
def tier_limits():
    return dict(DEFAULT_TIER_LIMITS)


@pytest_asyncio.fixture
async def storage(hot, cold, tier_limits):
    return HybridScoreStorage(hot, cold, "independent", tier_limits=tier_limits)
