"""
Hot tier: ranked, low-latency score storage on Redis.

Per game and category the tier keeps a sorted set mapping entry id -> score
(`leaderboard:{game_id}:{category}`) and one hash per entry holding the full
record (`score:{game_id}:{id}`). Record and rank are always written and
removed together inside a MULTI/EXEC pipeline.
Game ids may not contain ':', which keeps every key pattern scoped to one
game.

Tie-break: Redis orders members with equal scores lexicographically by id,
ascending for ZRANGE and descending for ZREVRANGE. This does not match the
cold tier, which breaks ties by id ascending in both directions.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

import redis.asyncio as redis

from scoreboard.constants import RedisKeys, TieringConstants
from scoreboard.data_models.score import ScoreEntry, QueryOptions, ensure_utc, validate_game_id
from scoreboard.storage.interfaces import ScoreStorage
from scoreboard.utils.redis_utils import RedisUtils

logger = logging.getLogger(__name__)

GLOB_SPECIAL_CHARS = '\\*?[]'


def escape_glob(value: str) -> str:
    """Escape characters SCAN MATCH would treat as a pattern."""
    return ''.join('\\' + char if char in GLOB_SPECIAL_CHARS else char for char in value)


class RedisScoreStorage(ScoreStorage):
    """Sorted-set leaderboards backed by per-entry hashes."""

    def __init__(self, client: 'redis.Redis', owns_client: bool = False):
        """
        Args:
            client: redis.asyncio client created with decode_responses=True
            owns_client: close the client in close()
        """
        self.redis = client
        self.owns_client = owns_client

    @classmethod
    async def from_config(cls) -> 'RedisScoreStorage':
        """Connect using REDIS_URL from Config."""
        client = await RedisUtils.create_redis_client()
        return cls(client, owns_client=True)

    async def initialize(self):
        await self.redis.ping()

    async def close(self):
        if self.owns_client:
            await self.redis.aclose()

    def _score_key(self, game_id: str, score_id: str) -> str:
        return f"{RedisKeys.SCORE_PREFIX}{game_id}:{score_id}"

    def _leaderboard_key(self, game_id: str, category: str) -> str:
        return f"{RedisKeys.LEADERBOARD_PREFIX}{game_id}:{category}"

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save_score(self, game_id: str, entry: ScoreEntry) -> ScoreEntry:
        [stored] = await self._write_entries(game_id, [entry])
        return stored

    async def batch_save_scores(self, game_id: str, entries: List[ScoreEntry]) -> List[ScoreEntry]:
        validate_game_id(game_id)
        if not entries:
            return []
        return await self._write_entries(game_id, entries)

    async def _write_entries(self, game_id: str, entries: List[ScoreEntry]) -> List[ScoreEntry]:
        """Store records and ranks for entries in one MULTI/EXEC.

        The record keys are WATCHed while existing records are read, so a
        concurrent first write of the same id makes EXEC fail and the whole
        read-merge-write is retried. Ids that already exist keep their
        player, category and timestamp.
        """
        validate_game_id(game_id)
        score_ids = [entry.id for entry in entries]
        record_keys = list({self._score_key(game_id, score_id): None for score_id in score_ids})

        async def write(pipe) -> List[ScoreEntry]:
            # WATCH is set on pipe's connection, so reads may use any connection
            stored = await self._fetch_records(game_id, score_ids)
            written = []

            pipe.multi()
            for entry in entries:
                existing = stored.get(entry.id)
                if existing is not None:
                    entry = entry.with_identity_of(existing)
                elif entry.game_id != game_id:
                    entry = replace(entry, game_id=game_id)
                stored[entry.id] = entry
                written.append(entry)

                pipe.hset(self._score_key(game_id, entry.id), mapping=entry.to_redis_hash())
                pipe.zadd(self._leaderboard_key(game_id, entry.category), {entry.id: entry.score})
            return written

        return await self.redis.transaction(write, *record_keys, value_from_callable=True)

    async def delete_score(self, game_id: str, score_id: str):
        await self.batch_delete_scores(game_id, [score_id])

    async def batch_delete_scores(self, game_id: str, score_ids: List[str]):
        validate_game_id(game_id)
        if not score_ids:
            return

        async with self.redis.pipeline(transaction=False) as pipe:
            for score_id in score_ids:
                pipe.hget(self._score_key(game_id, score_id), 'category')
            categories = await pipe.execute()

        found = [(score_id, category) for score_id, category in zip(score_ids, categories) if category]
        if not found:
            return

        async with self.redis.pipeline(transaction=True) as pipe:
            for score_id, category in found:
                pipe.delete(self._score_key(game_id, score_id))
                pipe.zrem(self._leaderboard_key(game_id, category), score_id)
            await pipe.execute()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _ranked_ids(self, key: str, start: int, stop: int, descending: bool) -> List[str]:
        if descending:
            return await self.redis.zrevrange(key, start, stop)
        return await self.redis.zrange(key, start, stop)

    async def _fetch_records(self, game_id: str, score_ids: List[str]) -> Dict[str, ScoreEntry]:
        """HGETALL each id; ids without a record are absent from the result."""
        if not score_ids:
            return {}

        async with self.redis.pipeline(transaction=False) as pipe:
            for score_id in score_ids:
                pipe.hgetall(self._score_key(game_id, score_id))
            rows = await pipe.execute()

        records = {}
        for score_id, row in zip(score_ids, rows):
            if not row:
                continue
            entry = self._parse_record(game_id, score_id, row)
            if entry is not None:
                records[score_id] = entry
        return records

    def _parse_record(self, game_id: str, score_id: str, row: Dict[str, str]) -> Optional[ScoreEntry]:
        try:
            return ScoreEntry.from_redis_hash(row)
        except (KeyError, ValueError) as e:
            logger.error(f"Corrupt hot tier record {self._score_key(game_id, score_id)}: {e}")
            return None

    async def _load_ranked_entries(self, game_id: str, category: str, score_ids: List[str]) -> List[ScoreEntry]:
        """Resolve ranked ids to records, keeping rank order and dropping drift."""
        records = await self._fetch_records(game_id, score_ids)
        missing = [score_id for score_id in score_ids if score_id not in records]
        if missing:
            logger.warning(
                f"Hot tier drift in {self._leaderboard_key(game_id, category)}: "
                f"{len(missing)} ranked ids have no record: {missing[:20]}"
            )
        return [records[score_id] for score_id in score_ids if score_id in records]

    async def get_scores(self, game_id: str, options: QueryOptions) -> List[ScoreEntry]:
        options.validate()
        validate_game_id(game_id)
        key = self._leaderboard_key(game_id, options.category)

        if not (options.start_date or options.end_date or options.filters):
            score_ids = await self._ranked_ids(
                key, options.offset, options.offset + options.limit - 1, options.descending
            )
            return await self._load_ranked_entries(game_id, options.category, score_ids)

        # Date and metadata filters are applied to records, so walk the
        # ranked set page by page until the requested window is filled.
        page_size = max(options.offset + options.limit, TieringConstants.SCAN_PAGE_SIZE)
        results = []
        skipped = 0
        start = 0
        while True:
            score_ids = await self._ranked_ids(key, start, start + page_size - 1, options.descending)
            if not score_ids:
                break

            for entry in await self._load_ranked_entries(game_id, options.category, score_ids):
                if not options.matches(entry):
                    continue
                if skipped < options.offset:
                    skipped += 1
                    continue
                results.append(entry)
                if len(results) >= options.limit:
                    return results

            if len(score_ids) < page_size:
                break
            start += page_size

        return results

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def _scan_record_pages(self, game_id: str):
        """Yield pages of record keys for a game using a SCAN cursor."""
        pattern = self._score_key(escape_glob(game_id), '*')
        cursor = 0
        while True:
            cursor, keys = await self.redis.scan(
                cursor=cursor, match=pattern, count=TieringConstants.SCAN_PAGE_SIZE
            )
            if keys:
                yield keys
            if cursor == 0:
                break

    async def find_older_than(self, game_id: str, older_than: datetime, limit: int) -> List[ScoreEntry]:
        validate_game_id(game_id)
        older_than = ensure_utc(older_than)
        prefix_length = len(self._score_key(game_id, ''))
        found = []
        seen = set()

        async for keys in self._scan_record_pages(game_id):
            # SCAN may return a key more than once
            score_ids = [key[prefix_length:] for key in keys if key not in seen]
            seen.update(keys)
            records = await self._fetch_records(game_id, score_ids)
            for entry in records.values():
                # Key patterns alone do not prove ownership
                if entry.game_id == game_id and entry.timestamp < older_than:
                    found.append(entry)
                    if len(found) >= limit:
                        return found
        return found

    async def cleanup(self, game_id: str, older_than: datetime) -> int:
        """Remove records older than the cutoff and their ranks, one SCAN page at a time."""
        validate_game_id(game_id)
        older_than = ensure_utc(older_than)
        removed = 0

        async for keys in self._scan_record_pages(game_id):
            async with self.redis.pipeline(transaction=False) as pipe:
                for key in keys:
                    pipe.hmget(key, 'id', 'game_id', 'category', 'timestamp')
                rows = await pipe.execute()

            stale = []
            for key, (score_id, owner, category, timestamp) in zip(keys, rows):
                if not timestamp or owner != game_id:
                    continue
                if ensure_utc(datetime.fromisoformat(timestamp)) < older_than:
                    stale.append((key, score_id, category))

            if not stale:
                continue

            async with self.redis.pipeline(transaction=True) as pipe:
                for key, score_id, category in stale:
                    pipe.delete(key)
                    if category and score_id:
                        pipe.zrem(self._leaderboard_key(game_id, category), score_id)
                await pipe.execute()
            removed += len(stale)

        if removed:
            logger.info(f"Hot tier removed {removed} scores for game {game_id} older than {older_than.isoformat()}")
        return removed
