"""
Engine-wide constants for the tiered score storage engine.

This module contains the magic numbers shared by the hot tier, the cold tier
and the orchestrator.
"""

from datetime import timedelta


class TieringConstants:
    """Constants related to tier routing and maintenance."""

    DAY = timedelta(days=1)

    # Reads starting inside this window are served by the hot tier first
    HOT_WINDOW = timedelta(hours=24)

    # Maximum entries moved per migrate_to_historical call
    MIGRATION_BATCH_SIZE = 1000

    # COUNT hint for SCAN during hot tier cleanup
    SCAN_PAGE_SIZE = 100


class QueryConstants:
    """Defaults for score queries."""

    DEFAULT_CATEGORY = "default"
    DEFAULT_LIMIT = 10

    # Metadata filter keys are interpolated into JSON paths
    MAX_FILTER_KEY_LENGTH = 64


class RedisKeys:
    """Hot tier key prefixes."""

    SCORE_PREFIX = "score:"
    LEADERBOARD_PREFIX = "leaderboard:"
