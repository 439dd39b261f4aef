"""
Storage package for the tiered score engine.

Both tiers implement ScoreStorage; HybridScoreStorage composes them.
"""

from .interfaces import ScoreStorage
from .redis_adapter import RedisScoreStorage
from .sql_adapter import SqlScoreStorage
from .hybrid_storage import HybridScoreStorage

__all__ = ['ScoreStorage', 'RedisScoreStorage', 'SqlScoreStorage', 'HybridScoreStorage']
