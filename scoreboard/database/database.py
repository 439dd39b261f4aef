import logging
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from scoreboard.config import Config
from scoreboard.database.models import Base

class Database:
    def __init__(self, database_url: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self.database_url = database_url or Config.get_async_database_url()
        self.engine = None
        self.async_session = None

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    async def initialize(self):
        """Initialize the database connection and create tables"""
        if self.engine is not None:
            return

        self.logger.info("Initializing database...")

        self.engine = create_async_engine(
            self.database_url,
            echo=Config.DEBUG,
            future=True
        )

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        # create_all checks for existing tables and indexes first
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

    @asynccontextmanager
    async def get_session(self):
        """Get a database session"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        All statements executed on the yielded session commit together on
        success, or roll back together on failure. Exceptions must be allowed
        to propagate out of the context for rollback to occur.
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.async_session = None
