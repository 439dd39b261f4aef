"""
Cold tier: durable, query-rich score history in the `scores` table.

PostgreSQL in production, SQLite (aiosqlite) in development and tests.
Upserts are dialect specific; everything else is portable SQLAlchemy Core.

Tie-break: entries with equal scores are ordered by id ascending for both
sort orders. The hot tier does not share this rule.
"""

import json
import logging
from datetime import datetime
from typing import Any, List

from sqlalchemy import select, delete, cast, func, literal, String
from sqlalchemy.dialects import postgresql, sqlite

from scoreboard.data_models.score import ScoreEntry, QueryOptions, ensure_utc
from scoreboard.database.database import Database
from scoreboard.database.models import ScoreRecord
from scoreboard.storage.interfaces import ScoreStorage
from scoreboard.utils.storage_exceptions import ScoreValidationError

logger = logging.getLogger(__name__)


class SqlScoreStorage(ScoreStorage):
    """Relational score store with upsert-by-id semantics."""

    def __init__(self, database: Database):
        self.db = database

    async def initialize(self):
        await self.db.initialize()

    async def close(self):
        await self.db.close()

    def _upsert_statement(self, game_id: str, entry: ScoreEntry):
        """INSERT ... ON CONFLICT (id) DO UPDATE for the active dialect.

        Only score, metadata and verified change on conflict; identity
        columns keep the values from the first insert.
        """
        table = ScoreRecord.__table__
        if self.db.dialect_name == 'postgresql':
            stmt = postgresql.insert(table)
        else:
            stmt = sqlite.insert(table)

        stmt = stmt.values(
            id=entry.id,
            game_id=game_id,
            player_id=entry.player_id,
            player_name=entry.player_name,
            score=float(entry.score),
            category=entry.category,
            metadata_=entry.metadata or {},
            timestamp=entry.timestamp,
            verified=entry.verified
        )
        return stmt.on_conflict_do_update(
            index_elements=[table.c.id],
            set_={
                table.c.score: stmt.excluded.score,
                table.c.metadata_: stmt.excluded.metadata_,
                table.c.verified: stmt.excluded.verified,
            }
        )

    async def save_score(self, game_id: str, entry: ScoreEntry) -> ScoreEntry:
        """Upsert one entry and return the row as stored."""
        [stored] = await self.batch_save_scores(game_id, [entry])
        return stored

    async def batch_save_scores(self, game_id: str, entries: List[ScoreEntry]) -> List[ScoreEntry]:
        """Upsert every entry in one transaction; any failure rolls back the batch.

        Returns the stored rows in input order. Identity columns on those rows
        are the ones fixed by the first insert, which may differ from the
        entries passed in.
        """
        if not entries:
            return []

        score_ids = list({entry.id: None for entry in entries})
        async with self.db.transaction() as session:
            for entry in entries:
                await session.execute(self._upsert_statement(game_id, entry))
            result = await session.execute(
                select(ScoreRecord).where(ScoreRecord.id.in_(score_ids))
            )
            stored = {record.id: self._to_entry(record) for record in result.scalars().all()}

            foreign = [score_id for score_id, entry in stored.items() if entry.game_id != game_id]
            if foreign:
                # Raising inside the transaction rolls back the whole batch
                raise ScoreValidationError(foreign, f"ids already belong to another game than {game_id}")

        logger.debug(f"Upserted {len(entries)} scores for game {game_id}")
        return [stored[entry.id] for entry in entries]

    def _metadata_condition(self, key: str, value: Any):
        """Typed JSON equality on one metadata key.

        Booleans only match booleans, numbers match numerically and None
        matches an explicit JSON null, the rules QueryOptions.matches applies
        to hot tier records.
        """
        if self.db.dialect_name == 'postgresql':
            # jsonb equality is typed and numeric aware
            return ScoreRecord.metadata_[key] == cast(literal(json.dumps(value), String), postgresql.JSONB)

        path = f'$."{key}"'
        json_type = func.json_type(ScoreRecord.metadata_, path)
        if value is None:
            return json_type == 'null'
        if isinstance(value, bool):
            return json_type == ('true' if value else 'false')

        extracted = func.json_extract(ScoreRecord.metadata_, path)
        if isinstance(value, (int, float)):
            return json_type.in_(['integer', 'real']) & (extracted == value)
        return (json_type == 'text') & (extracted == value)

    def _build_query(self, game_id: str, options: QueryOptions):
        stmt = select(ScoreRecord).where(
            ScoreRecord.game_id == game_id,
            ScoreRecord.category == options.category
        )

        if options.start_date:
            stmt = stmt.where(ScoreRecord.timestamp >= options.start_date)
        if options.end_date:
            stmt = stmt.where(ScoreRecord.timestamp <= options.end_date)

        # Keys were checked by QueryOptions.validate; values are always bound
        for key, value in options.filters.items():
            stmt = stmt.where(self._metadata_condition(key, value))

        score_order = ScoreRecord.score.desc() if options.descending else ScoreRecord.score.asc()
        return (
            stmt.order_by(score_order, ScoreRecord.id.asc())
            .limit(options.limit)
            .offset(options.offset)
        )

    async def get_scores(self, game_id: str, options: QueryOptions) -> List[ScoreEntry]:
        options.validate()
        query = self._build_query(game_id, options)

        async with self.db.get_session() as session:
            result = await session.execute(query)
            records = result.scalars().all()

        return [self._to_entry(record) for record in records]

    async def delete_score(self, game_id: str, score_id: str):
        async with self.db.transaction() as session:
            await session.execute(
                delete(ScoreRecord).where(
                    ScoreRecord.game_id == game_id,
                    ScoreRecord.id == score_id
                )
            )

    async def batch_delete_scores(self, game_id: str, score_ids: List[str]):
        if not score_ids:
            return
        async with self.db.transaction() as session:
            await session.execute(
                delete(ScoreRecord).where(
                    ScoreRecord.game_id == game_id,
                    ScoreRecord.id.in_(score_ids)
                )
            )

    async def find_older_than(self, game_id: str, older_than: datetime, limit: int) -> List[ScoreEntry]:
        query = (
            select(ScoreRecord)
            .where(
                ScoreRecord.game_id == game_id,
                ScoreRecord.timestamp < ensure_utc(older_than)
            )
            .order_by(ScoreRecord.timestamp.asc(), ScoreRecord.id.asc())
            .limit(limit)
        )
        async with self.db.get_session() as session:
            result = await session.execute(query)
            return [self._to_entry(record) for record in result.scalars().all()]

    async def cleanup(self, game_id: str, older_than: datetime) -> int:
        older_than = ensure_utc(older_than)
        async with self.db.transaction() as session:
            result = await session.execute(
                delete(ScoreRecord).where(
                    ScoreRecord.game_id == game_id,
                    ScoreRecord.timestamp < older_than
                )
            )
        removed = result.rowcount or 0
        if removed:
            logger.info(f"Cold tier removed {removed} scores for game {game_id} older than {older_than.isoformat()}")
        return removed

    @staticmethod
    def _to_entry(record: ScoreRecord) -> ScoreEntry:
        return ScoreEntry(
            id=record.id,
            game_id=record.game_id,
            player_id=record.player_id,
            player_name=record.player_name,
            score=float(record.score),
            category=record.category,
            metadata=record.metadata_ or {},
            timestamp=record.timestamp,
            verified=bool(record.verified)
        )
