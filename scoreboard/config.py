import os
from dataclasses import replace
from typing import Dict, List

from dotenv import load_dotenv

from scoreboard.data_models.subscription import DEFAULT_TIER_LIMITS, TierLimits

load_dotenv()

class Config:
    """Score storage configuration settings"""

    # Database settings (cold tier)
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///scores.db')

    # Redis settings (hot tier)
    REDIS_URL = os.getenv('REDIS_URL')

    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'

    # Daily log files; empty disables file logging
    LOG_DIR = os.getenv('LOG_DIR', 'logs')

    # Subscription tier used for read clamping and retention
    SUBSCRIPTION_TIER = os.getenv('SUBSCRIPTION_TIER', 'independent').lower()

    # Games swept by run_maintenance.py when none are given on the command line
    MAINTENANCE_GAME_IDS = os.getenv('MAINTENANCE_GAME_IDS', '')

    @classmethod
    def get_async_database_url(cls) -> str:
        """Get DATABASE_URL rewritten for an async driver"""
        database_url = cls.DATABASE_URL
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///', 1)
        elif database_url.startswith('postgresql://'):
            database_url = database_url.replace('postgresql://', 'postgresql+asyncpg://', 1)
        elif database_url.startswith('postgres://'):
            database_url = database_url.replace('postgres://', 'postgresql+asyncpg://', 1)
        return database_url

    @classmethod
    def get_tier_limits(cls) -> Dict[str, TierLimits]:
        """Get tier limits with RETENTION_DAYS_<TIER> environment overrides applied"""
        limits = {}
        for tier, tier_limits in DEFAULT_TIER_LIMITS.items():
            override = os.getenv(f'RETENTION_DAYS_{tier.upper()}')
            if override:
                try:
                    retention_days = int(override)
                except ValueError:
                    raise ValueError(f"RETENTION_DAYS_{tier.upper()} must be an integer")
                if retention_days <= 0:
                    raise ValueError(f"RETENTION_DAYS_{tier.upper()} must be positive")
                tier_limits = replace(tier_limits, retention_days=retention_days)
            limits[tier] = tier_limits
        return limits

    @classmethod
    def get_game_ids(cls) -> List[str]:
        """Get list of game IDs for the maintenance sweep"""
        return [game_id.strip() for game_id in cls.MAINTENANCE_GAME_IDS.split(',') if game_id.strip()]

    @classmethod
    def validate(cls):
        """Validate that required configuration is present"""
        if not cls.DATABASE_URL:
            raise ValueError("DATABASE_URL is required")
        if cls.SUBSCRIPTION_TIER not in DEFAULT_TIER_LIMITS:
            raise ValueError(
                f"SUBSCRIPTION_TIER must be one of: {', '.join(DEFAULT_TIER_LIMITS)}"
            )
