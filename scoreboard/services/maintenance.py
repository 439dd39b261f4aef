"""
Maintenance Service for the tiered score storage engine

Runs the periodic hot -> cold migration and retention enforcement for a set
of games. Meant to be driven by an external scheduler (cron, a worker loop,
run_maintenance.py); every step is safe to repeat.

Key Features:
- Migration of aged hot tier scores into the cold tier
- Retention enforcement for the active subscription tier
- Per-game failure isolation so one broken game does not stop the sweep
"""

import logging
import time
from typing import Dict, Iterable

from scoreboard.storage.hybrid_storage import HybridScoreStorage

logger = logging.getLogger(__name__)

class MaintenanceService:
    """Service running migration and retention sweeps over games."""

    def __init__(self, storage: HybridScoreStorage):
        self.storage = storage

    async def run_for_game(self, game_id: str) -> Dict:
        """
        Migrate aged scores and enforce retention for one game.

        Migration runs first so entries still inside the retention window
        reach the cold tier before any cleanup.

        Returns:
            Dict with the number of migrated scores, the retention cutoff
            and the elapsed time
        """
        start_time = time.monotonic()

        migrated = await self.storage.migrate_to_historical(game_id)
        cutoff = await self.storage.enforce_retention(game_id)

        duration = time.monotonic() - start_time
        logger.info(f"Maintenance for game {game_id} finished in {duration:.2f}s: {migrated} migrated")
        return {
            'game_id': game_id,
            'migrated': migrated,
            'retention_cutoff': cutoff,
            'duration': duration
        }

    async def run(self, game_ids: Iterable[str]) -> Dict:
        """Run maintenance for every game, recording failures instead of aborting."""
        results = {'succeeded': [], 'failed': {}}

        for game_id in game_ids:
            try:
                results['succeeded'].append(await self.run_for_game(game_id))
            except Exception as e:
                logger.error(f"Maintenance failed for game {game_id}: {e}", exc_info=True)
                results['failed'][game_id] = str(e)

        logger.info(
            f"Maintenance sweep complete: {len(results['succeeded'])} succeeded, "
            f"{len(results['failed'])} failed"
        )
        return results
