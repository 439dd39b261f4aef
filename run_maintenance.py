#!/usr/bin/env python3
"""
Run hot -> cold migration and retention enforcement for a set of games.

Connects with DATABASE_URL / REDIS_URL, uses SUBSCRIPTION_TIER for retention
and sweeps the games given on the command line (or MAINTENANCE_GAME_IDS).

Usage:
    python run_maintenance.py game-1 game-2
    MAINTENANCE_GAME_IDS=game-1,game-2 python run_maintenance.py
"""

import argparse
import asyncio
import sys

from scoreboard.config import Config
from scoreboard.database.database import Database
from scoreboard.services.maintenance import MaintenanceService
from scoreboard.storage.hybrid_storage import HybridScoreStorage
from scoreboard.storage.redis_adapter import RedisScoreStorage
from scoreboard.storage.sql_adapter import SqlScoreStorage
from scoreboard.utils.logger import setup_logger

logger = setup_logger()


async def run_maintenance(game_ids) -> bool:
    """Run one maintenance sweep. Returns True when every game succeeded."""
    Config.validate()

    hot = await RedisScoreStorage.from_config()
    cold = SqlScoreStorage(Database())
    storage = HybridScoreStorage(hot, cold, Config.SUBSCRIPTION_TIER)

    try:
        await storage.initialize()
        results = await MaintenanceService(storage).run(game_ids)
    finally:
        await storage.close()

    for result in results['succeeded']:
        print(f"✅ {result['game_id']}: migrated {result['migrated']}, "
              f"retention cutoff {result['retention_cutoff'].isoformat()}")
    for game_id, error in results['failed'].items():
        print(f"❌ {game_id}: {error}")

    return not results['failed']


def main():
    parser = argparse.ArgumentParser(description='Run score storage maintenance')
    parser.add_argument('game_ids', nargs='*', help='Games to sweep (defaults to MAINTENANCE_GAME_IDS)')
    args = parser.parse_args()

    game_ids = args.game_ids or Config.get_game_ids()
    if not game_ids:
        print("❌ No games given and MAINTENANCE_GAME_IDS is empty")
        sys.exit(2)

    logger.info(f"Starting maintenance sweep for {len(game_ids)} games ({Config.SUBSCRIPTION_TIER} tier)")

    success = asyncio.run(run_maintenance(game_ids))
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
