"""Queue of NFTs whose published score may be stale."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, func, select

from poa_scoring.models import DirtyNftRow

from .repository import AsyncRepository, as_utc

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = structlog.get_logger()

PRIORITY_NORMAL = 0
PRIORITY_HIGH = 10


@dataclass(frozen=True)
class DirtyClaim:
    """A dirty NFT handed to a worker.

    Attributes:
        nft_id: NFT identifier.
        priority: Highest priority it was marked with.
        generation: Mark counter at claim time, used to detect re-marks.
        attempts: Failed recomputations so far.
        marked_at: When it was last marked.
    """

    nft_id: str
    priority: int
    generation: int
    attempts: int
    marked_at: datetime


class DirtyQueue(AsyncRepository):
    """Persisted dirty flags, drained by the recompute worker."""

    def __init__(self, engine: Engine) -> None:
        super().__init__(engine)

    async def mark(
        self, nft_id: str, priority: int = PRIORITY_NORMAL, reason: str = "vote"
    ) -> None:
        """Flag an NFT for recomputation, keeping the highest priority seen."""

        def _mark(session: Session) -> None:
            row = session.get(DirtyNftRow, nft_id)
            if row is None:
                session.add(DirtyNftRow(nft_id=nft_id, priority=priority, reason=reason))
                try:
                    session.commit()
                    return
                except IntegrityError:
                    session.rollback()
                    row = session.get(DirtyNftRow, nft_id)
                    if row is None:
                        raise
            row.priority = max(row.priority, priority)
            row.reason = reason
            row.marked_at = datetime.now(UTC)
            row.generation += 1
            session.add(row)
            session.commit()

        await self._run_session(_mark)
        logger.debug("nft_marked_dirty", nft_id=nft_id, priority=priority, reason=reason)

    async def claim(self, batch_size: int) -> list[DirtyClaim]:
        """Return up to ``batch_size`` dirty NFTs, highest priority and oldest first.

        Claims do not remove rows; ``clear`` does that once recomputation succeeded.
        """

        def _claim(session: Session) -> list[DirtyClaim]:
            statement = (
                select(DirtyNftRow)
                .order_by(col(DirtyNftRow.priority).desc(), col(DirtyNftRow.marked_at))
                .limit(batch_size)
            )
            return [
                DirtyClaim(
                    nft_id=row.nft_id,
                    priority=row.priority,
                    generation=row.generation,
                    attempts=row.attempts,
                    marked_at=as_utc(row.marked_at),
                )
                for row in session.exec(statement).all()
            ]

        return await self._run_session(_claim)

    async def clear(self, claim: DirtyClaim) -> bool:
        """Remove the flag unless the NFT was marked again after it was claimed.

        Returns:
            True if the flag was removed.
        """

        def _clear(session: Session) -> bool:
            statement = (
                delete(DirtyNftRow)
                .where(col(DirtyNftRow.nft_id) == claim.nft_id)
                .where(col(DirtyNftRow.generation) == claim.generation)
            )
            result = session.connection().execute(statement)
            session.commit()
            return result.rowcount == 1

        return await self._run_session(_clear)

    async def record_failure(self, nft_id: str) -> None:
        def _fail(session: Session) -> None:
            row = session.get(DirtyNftRow, nft_id)
            if row is None:
                return
            row.attempts += 1
            session.add(row)
            session.commit()

        await self._run_session(_fail)

    async def pending_count(self) -> int:
        def _count(session: Session) -> int:
            return session.exec(select(func.count()).select_from(DirtyNftRow)).one()

        return await self._run_session(_count)
