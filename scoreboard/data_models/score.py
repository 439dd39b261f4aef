"""
Score data models for the tiered score storage engine.

ScoreEntry is the unit exchanged between the orchestrator and both storage
tiers; QueryOptions is the request shape for reads.
"""

import json
import math
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from scoreboard.constants import QueryConstants
from scoreboard.utils.storage_exceptions import InvalidFilterKeyError, ScoreValidationError

SORT_ORDERS = ("asc", "desc")

# Hot tier keys are colon separated, so ids used as key segments may not contain one
KEY_SEPARATOR = ":"

FILTER_KEY_PATTERN = re.compile(
    r'^[A-Za-z_][A-Za-z0-9_]{0,%d}$' % (QueryConstants.MAX_FILTER_KEY_LENGTH - 1)
)

# Filter values are compared as JSON scalars
FILTER_VALUE_TYPES = (str, int, float, bool, type(None))


def validate_game_id(game_id: str):
    """Raise ScoreValidationError for game ids that cannot scope storage keys."""
    if not isinstance(game_id, str) or not game_id:
        raise ScoreValidationError(game_id, "game_id must not be empty")
    if KEY_SEPARATOR in game_id:
        raise ScoreValidationError(game_id, f"game_id must not contain '{KEY_SEPARATOR}'")


def metadata_equals(stored: Any, value: Any) -> bool:
    """JSON equality for a stored metadata value and a filter value.

    Booleans only equal booleans, numbers compare numerically (3 == 3.0) and
    everything else must match type and value.
    """
    if isinstance(stored, bool) or isinstance(value, bool):
        return isinstance(stored, bool) and isinstance(value, bool) and stored == value
    if isinstance(stored, (int, float)) and isinstance(value, (int, float)):
        return stored == value
    return type(stored) is type(value) and stored == value


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalize aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class ScoreEntry:
    """One recorded result."""
    id: str
    game_id: str
    player_id: str
    player_name: str
    score: float
    category: str = QueryConstants.DEFAULT_CATEGORY
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    verified: bool = False

    def __post_init__(self):
        self.timestamp = ensure_utc(self.timestamp)
        if self.metadata is None:
            self.metadata = {}

    def validate(self):
        """Raise ScoreValidationError if the entry cannot be stored."""
        for name in ('id', 'game_id', 'player_id', 'category'):
            if not getattr(self, name):
                raise ScoreValidationError(self.id, f"{name} must not be empty")
        validate_game_id(self.game_id)
        if isinstance(self.score, bool) or not isinstance(self.score, (int, float)):
            raise ScoreValidationError(self.score, "score must be a number")
        if not math.isfinite(self.score):
            raise ScoreValidationError(self.score, "score must be finite")

    def with_identity_of(self, existing: 'ScoreEntry') -> 'ScoreEntry':
        """Copy keeping this entry's score, metadata and verified flag but
        the identity fields fixed by the first write."""
        return replace(
            self,
            game_id=existing.game_id,
            player_id=existing.player_id,
            player_name=existing.player_name,
            category=existing.category,
            timestamp=existing.timestamp
        )

    def to_redis_hash(self) -> Dict[str, str]:
        """Flatten to the string hash stored by the hot tier."""
        return {
            'id': self.id,
            'game_id': self.game_id,
            'player_id': self.player_id,
            'player_name': self.player_name,
            'score': repr(float(self.score)),
            'category': self.category,
            'metadata': json.dumps(self.metadata or {}),
            'timestamp': self.timestamp.isoformat(),
            'verified': 'true' if self.verified else 'false'
        }

    @classmethod
    def from_redis_hash(cls, data: Dict[str, str]) -> 'ScoreEntry':
        metadata = data.get('metadata')
        return cls(
            id=data['id'],
            game_id=data['game_id'],
            player_id=data['player_id'],
            player_name=data.get('player_name', ''),
            score=float(data['score']),
            category=data['category'],
            metadata=json.loads(metadata) if metadata else {},
            timestamp=datetime.fromisoformat(data['timestamp']),
            verified=data.get('verified') == 'true'
        )


@dataclass
class QueryOptions:
    """Read request for one (game, category) leaderboard."""
    category: str = QueryConstants.DEFAULT_CATEGORY
    limit: int = QueryConstants.DEFAULT_LIMIT
    offset: int = 0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    filters: Dict[str, Any] = field(default_factory=dict)
    sort_order: str = "desc"

    def __post_init__(self):
        if self.start_date is not None:
            self.start_date = ensure_utc(self.start_date)
        if self.end_date is not None:
            self.end_date = ensure_utc(self.end_date)
        if self.filters is None:
            self.filters = {}

    @property
    def descending(self) -> bool:
        return self.sort_order == "desc"

    def validate(self):
        if not isinstance(self.limit, int) or self.limit < 1:
            raise ValueError("limit must be a positive integer")
        if not isinstance(self.offset, int) or self.offset < 0:
            raise ValueError("offset must be a non-negative integer")
        if self.sort_order not in SORT_ORDERS:
            raise ValueError("sort_order must be 'asc' or 'desc'")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        for key, value in self.filters.items():
            if not isinstance(key, str) or not FILTER_KEY_PATTERN.match(key):
                raise InvalidFilterKeyError(key)
            if not isinstance(value, FILTER_VALUE_TYPES):
                raise ValueError(f"filter {key!r} must be a string, number, boolean or None")

    def replace(self, **changes) -> 'QueryOptions':
        return replace(self, **changes)

    def matches(self, entry: ScoreEntry) -> bool:
        """Check the date range and metadata filters against an entry."""
        if self.start_date and entry.timestamp < self.start_date:
            return False
        if self.end_date and entry.timestamp > self.end_date:
            return False
        for key, value in self.filters.items():
            if key not in entry.metadata:
                return False
            if not metadata_equals(entry.metadata[key], value):
                return False
        return True
