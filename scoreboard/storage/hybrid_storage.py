"""
Tiering orchestrator composing the hot (Redis) and cold (SQL) score tiers.

Callers only use this class; which tier answers a read and how data moves
between tiers stays internal.

Write policy: every write goes to the durable cold tier first and then to
the hot tier. A cold failure aborts before the hot tier is touched. A hot
failure after a successful cold write propagates to the caller; the entry is
durable, the hot tier simply misses it and reads fall back to the cold tier.
Any write error therefore means "uncertain state" for the caller.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Mapping, Optional

from scoreboard.config import Config
from scoreboard.constants import TieringConstants
from scoreboard.data_models.score import ScoreEntry, QueryOptions, ensure_utc, validate_game_id
from scoreboard.data_models.subscription import SubscriptionTier, TierLimits
from scoreboard.storage.interfaces import ScoreStorage
from scoreboard.utils.storage_exceptions import UnknownSubscriptionTierError

logger = logging.getLogger(__name__)


class HybridScoreStorage:
    """Routes score reads and writes across the hot and cold tiers."""

    def __init__(
        self,
        hot: ScoreStorage,
        cold: ScoreStorage,
        tier,
        tier_limits: Optional[Mapping[str, TierLimits]] = None
    ):
        """
        Args:
            hot: ranked low-latency tier
            cold: durable historical tier
            tier: SubscriptionTier or its string value
            tier_limits: tier -> limits lookup; defaults to Config.get_tier_limits()
        """
        self.hot = hot
        self.cold = cold
        self.tier = tier.value if isinstance(tier, SubscriptionTier) else str(tier)
        self.tier_limits = tier_limits if tier_limits is not None else Config.get_tier_limits()

        if self.tier not in self.tier_limits:
            raise UnknownSubscriptionTierError(self.tier)

    @property
    def retention_days(self) -> int:
        return self.tier_limits[self.tier].retention_days

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def retention_floor(self, now: Optional[datetime] = None) -> datetime:
        """Oldest timestamp the active tier is entitled to read."""
        now = now or self._now()
        return now - self.retention_days * TieringConstants.DAY

    async def initialize(self):
        await self.cold.initialize()
        await self.hot.initialize()

    async def close(self):
        await asyncio.gather(self.hot.close(), self.cold.close())

    async def save_score(self, game_id: str, entry: ScoreEntry) -> ScoreEntry:
        """Write one entry to both tiers and return it as stored.

        The hot tier receives the cold tier's row, so identity fields fixed
        by an earlier write survive even after the entry left the hot tier.
        """
        validate_game_id(game_id)
        entry.validate()
        stored = await self.cold.save_score(game_id, entry)
        try:
            await self.hot.save_score(game_id, stored)
        except Exception as e:
            logger.error(f"Score {entry.id} for game {game_id} stored in cold tier but hot tier write failed: {e}")
            raise
        return stored

    async def batch_save_scores(self, game_id: str, entries: List[ScoreEntry]) -> List[ScoreEntry]:
        validate_game_id(game_id)
        if not entries:
            return []
        for entry in entries:
            entry.validate()

        stored = await self.cold.batch_save_scores(game_id, entries)
        try:
            await self.hot.batch_save_scores(game_id, stored)
        except Exception as e:
            logger.error(f"Batch of {len(entries)} scores for game {game_id} stored in cold tier but hot tier write failed: {e}")
            raise
        return stored

    async def get_scores(self, game_id: str, options: QueryOptions) -> List[ScoreEntry]:
        """Serve recent reads from the hot tier, everything else from the cold tier.

        The hot tier is tried when no start_date is given or it falls inside
        the cutover window. An empty hot result or a hot tier error falls
        through to the cold tier, whose start_date is clamped to the
        retention floor.
        """
        options.validate()
        validate_game_id(game_id)
        now = self._now()

        if options.start_date is None or options.start_date > now - TieringConstants.HOT_WINDOW:
            try:
                hot_scores = await self.hot.get_scores(game_id, options)
                if hot_scores:
                    return hot_scores
            except Exception as e:
                logger.warning(f"Hot tier read failed for game {game_id}, falling back to cold tier: {e}")

        floor = self.retention_floor(now)
        start_date = max(options.start_date, floor) if options.start_date else floor
        return await self.cold.get_scores(game_id, options.replace(start_date=start_date))

    async def delete_score(self, game_id: str, score_id: str):
        validate_game_id(game_id)
        await asyncio.gather(
            self.hot.delete_score(game_id, score_id),
            self.cold.delete_score(game_id, score_id)
        )

    async def cleanup(self, game_id: str, older_than: datetime):
        validate_game_id(game_id)
        older_than = ensure_utc(older_than)
        await asyncio.gather(
            self.hot.cleanup(game_id, older_than),
            self.cold.cleanup(game_id, older_than)
        )

    async def migrate_to_historical(self, game_id: str) -> int:
        """Move up to one batch of hot entries older than yesterday into the cold tier.

        Entries are upserted into the cold tier before being removed from the
        hot tier, so a failed or repeated run never loses or duplicates data.
        Returns the number of entries moved.
        """
        validate_game_id(game_id)
        yesterday = self._now() - TieringConstants.HOT_WINDOW
        old_scores = await self.hot.find_older_than(
            game_id, yesterday, TieringConstants.MIGRATION_BATCH_SIZE
        )
        if not old_scores:
            return 0

        await self.cold.batch_save_scores(game_id, old_scores)
        await self.hot.batch_delete_scores(game_id, [entry.id for entry in old_scores])

        logger.info(f"Migrated {len(old_scores)} scores for game {game_id} to the cold tier")
        return len(old_scores)

    async def enforce_retention(self, game_id: str) -> datetime:
        """Delete everything older than the active tier's retention window."""
        cutoff = self.retention_floor()
        await self.cleanup(game_id, cutoff)
        logger.info(f"Enforced {self.retention_days}-day retention ({self.tier}) for game {game_id}")
        return cutoff
