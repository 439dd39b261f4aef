from sqlalchemy import (
    Column, String, DateTime, Boolean, Float, JSON, Index
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func, false

Base = declarative_base()

# JSONB on PostgreSQL, JSON text elsewhere (SQLite in development)
MetadataType = JSON().with_variant(JSONB(), 'postgresql')

class ScoreRecord(Base):
    """
    Historical score row for the cold tier.

    id is the primary key; game_id, player_id, player_name, category and
    timestamp are fixed by the first insert. Upserts only touch score,
    metadata and verified.
    """
    __tablename__ = 'scores'

    id = Column(String, primary_key=True)
    game_id = Column(String, nullable=False)
    player_id = Column(String, nullable=False)
    player_name = Column(String, nullable=False)
    score = Column(Float, nullable=False)
    category = Column(String, nullable=False)
    # 'metadata' is reserved on declarative classes
    metadata_ = Column('metadata', MetadataType, key='metadata_', nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    verified = Column(Boolean, default=False, server_default=false())

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('idx_scores_game_timestamp', 'game_id', 'timestamp'),
        Index('idx_scores_category', 'game_id', 'category', 'score'),
    )

    def __repr__(self):
        return f"<ScoreRecord(id='{self.id}', game_id='{self.game_id}', category='{self.category}', score={self.score})>"
