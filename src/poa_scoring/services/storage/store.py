"""Unified storage layer bundling the scoring repositories over one engine."""

from __future__ import annotations

import asyncio
import gc

import structlog
from sqlalchemy import Engine, event
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from poa_scoring.core.config import ScoringConfig

from .dirty_queue import DirtyQueue
from .event_repository import EventRepository
from .score_repository import ScoreRepository
from .stats_repository import StatsRepository

logger = structlog.get_logger()


def _create_engine(database_url: str) -> Engine:
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)

    connect_args = {"check_same_thread": False, "timeout": 30}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # In-memory databases exist per connection
        engine = create_engine(database_url, connect_args=connect_args, poolclass=StaticPool)
    else:
        engine = create_engine(database_url, connect_args=connect_args)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, _record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.close()

    return engine


class ScoringStore:
    """Persistence for statistics, the vote log, published scores and dirty flags.

    Handles:
    - NFT and user statistics with optimistic versioning
    - The append-only vote event log
    - Published scores (written only through the publish gate)
    - The dirty-NFT recompute queue
    """

    def __init__(self, config: ScoringConfig, database_url: str | None = None) -> None:
        """Initialize scoring store.

        Args:
            config: Scoring configuration.
            database_url: Override for ``config.database_url``.
        """
        self.config = config
        self.database_url = database_url or config.database_url
        self._engine: Engine | None = _create_engine(self.database_url)
        SQLModel.metadata.create_all(self._engine)
        logger.info("store_init", database_url=self.database_url)

        self.stats = StatsRepository(self._engine, config)
        self.events = EventRepository(self._engine)
        self.scores = ScoreRepository(self._engine)
        self.dirty = DirtyQueue(self._engine)

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            msg = "ScoringStore is closed"
            raise RuntimeError(msg)
        return self._engine

    async def close(self) -> None:
        """Dispose of the database engine."""

        def _close() -> None:
            if self._engine is not None:
                self._engine.dispose()
                self._engine = None
                gc.collect()

        await asyncio.to_thread(_close)
