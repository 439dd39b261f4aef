"""
Storage capability interface shared by the hot and cold score tiers.

Both adapters implement ScoreStorage; the orchestrator composes one of each.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List

from scoreboard.data_models.score import ScoreEntry, QueryOptions


class ScoreStorage(ABC):
    """Operations every score tier provides. All calls are scoped to one game."""

    async def initialize(self):
        """Prepare the backing store. Safe to call more than once."""

    async def close(self):
        """Release connections owned by this adapter."""

    @abstractmethod
    async def save_score(self, game_id: str, entry: ScoreEntry) -> ScoreEntry:
        """Insert or overwrite one entry and return it as stored.

        The stored entry keeps the identity fields of an earlier write of the
        same id.
        """

    @abstractmethod
    async def get_scores(self, game_id: str, options: QueryOptions) -> List[ScoreEntry]:
        """Return one ranked page of entries for options.category."""

    @abstractmethod
    async def delete_score(self, game_id: str, score_id: str):
        """Remove one entry. Missing ids are a no-op."""

    @abstractmethod
    async def batch_save_scores(self, game_id: str, entries: List[ScoreEntry]) -> List[ScoreEntry]:
        """Insert or overwrite several entries at once; returns them as stored, in order."""

    @abstractmethod
    async def batch_delete_scores(self, game_id: str, score_ids: List[str]):
        """Remove several entries. Missing ids are skipped."""

    @abstractmethod
    async def find_older_than(self, game_id: str, older_than: datetime, limit: int) -> List[ScoreEntry]:
        """Return up to limit entries of any category with timestamp before older_than."""

    @abstractmethod
    async def cleanup(self, game_id: str, older_than: datetime) -> int:
        """Delete entries with timestamp before older_than; return the count."""
