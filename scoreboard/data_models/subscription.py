"""
Subscription tier data models for the tiered score storage engine.

Each tier carries the limits a game is entitled to. Only retention_days is
enforced by the storage layer; the other limits are carried for callers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict


class SubscriptionTier(Enum):
    INDEPENDENT = "independent"
    STUDIO = "studio"
    ECOSYSTEM = "ecosystem"


@dataclass(frozen=True)
class TierLimits:
    """Limits attached to one subscription tier."""
    retention_days: int
    requests_per_minute: int
    max_leaderboards: int


DEFAULT_TIER_LIMITS: Dict[str, TierLimits] = {
    SubscriptionTier.INDEPENDENT.value: TierLimits(
        retention_days=15,
        requests_per_minute=60,
        max_leaderboards=3
    ),
    SubscriptionTier.STUDIO.value: TierLimits(
        retention_days=30,
        requests_per_minute=300,
        max_leaderboards=10
    ),
    SubscriptionTier.ECOSYSTEM.value: TierLimits(
        retention_days=180,  # 6 months
        requests_per_minute=1000,
        max_leaderboards=50
    ),
}
