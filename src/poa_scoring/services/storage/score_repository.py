"""Database persistence for published scores."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from poa_scoring.core.errors import VersionConflict
from poa_scoring.models import NftStatsRow, PublishedScoreRow
from poa_scoring.ranking.collection import CollectionMember
from poa_scoring.ranking.records import ScoreRecord

from .repository import AsyncRepository, as_utc

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from poa_scoring.services.scoring.engine import ScoreCandidate
    from poa_scoring.services.scoring.gate import GateDecision


def score_from_row(row: PublishedScoreRow) -> ScoreRecord:
    return ScoreRecord(
        nft_id=row.nft_id,
        poa_value=row.poa_value,
        confidence=row.confidence,
        provisional=row.provisional,
        elo_component=row.elo_component,
        slider_component=row.slider_component,
        fire_component=row.fire_component,
        reliability_factor=row.reliability_factor,
        updated_at=as_utc(row.updated_at),
        version=row.version,
    )


class ScoreRepository(AsyncRepository):
    """Read published scores; write them only through the publish gate."""

    def __init__(self, engine: Engine) -> None:
        super().__init__(engine)

    async def get_published(self, nft_id: str) -> ScoreRecord | None:
        def _get(session: Session) -> ScoreRecord | None:
            row = session.get(PublishedScoreRow, nft_id)
            return score_from_row(row) if row else None

        return await self._run_session(_get)

    async def publish_with_gate(
        self,
        candidate: ScoreCandidate,
        decide: Callable[[ScoreRecord | None], GateDecision],
        now: datetime,
    ) -> tuple[GateDecision, ScoreRecord | None]:
        """Evaluate the gate against the committed score and publish in one transaction.

        Args:
            candidate: Freshly computed score.
            decide: Gate evaluation given the currently published score.
            now: Publication timestamp.

        Returns:
            The gate decision and the score published afterwards (the new one when the
            gate passed, otherwise the existing one or None).

        Raises:
            VersionConflict: If a concurrent publish committed between read and write.
        """
        values = {
            "poa_value": candidate.poa_value,
            "confidence": candidate.confidence,
            "provisional": candidate.provisional,
            "elo_component": candidate.elo_component,
            "slider_component": candidate.slider_component,
            "fire_component": candidate.fire_component,
            "reliability_factor": candidate.reliability_factor,
            "updated_at": now,
        }

        def _publish(session: Session) -> tuple[GateDecision, ScoreRecord | None]:
            row = session.get(PublishedScoreRow, candidate.nft_id)
            current = score_from_row(row) if row else None
            decision = decide(current)
            if not decision.publish:
                return decision, current

            if current is None:
                session.add(PublishedScoreRow(nft_id=candidate.nft_id, version=1, **values))
                try:
                    session.flush()
                except IntegrityError as e:
                    raise VersionConflict("published_score", candidate.nft_id, None) from e
                version = 1
            else:
                statement = (
                    update(PublishedScoreRow)
                    .where(col(PublishedScoreRow.nft_id) == candidate.nft_id)
                    .where(col(PublishedScoreRow.version) == current.version)
                    .values(**values, version=current.version + 1)
                )
                result = session.connection().execute(statement)
                if result.rowcount != 1:
                    raise VersionConflict("published_score", candidate.nft_id, current.version)
                version = current.version + 1
            session.commit()
            return decision, ScoreRecord(nft_id=candidate.nft_id, version=version, **values)

        return await self._run_session(_publish)

    async def leaderboard(
        self, limit: int = 20, *, include_provisional: bool = True
    ) -> list[ScoreRecord]:
        """Published scores sorted by POA value, highest first."""

        def _get(session: Session) -> list[ScoreRecord]:
            statement = select(PublishedScoreRow)
            if not include_provisional:
                statement = statement.where(col(PublishedScoreRow.provisional).is_(False))
            statement = statement.order_by(
                col(PublishedScoreRow.poa_value).desc(), col(PublishedScoreRow.nft_id)
            ).limit(limit)
            return [score_from_row(row) for row in session.exec(statement).all()]

        return await self._run_session(_get)

    async def collection_members(self, collection: str) -> list[CollectionMember]:
        """Active NFTs of a collection with their published POA and vote counts.

        NFTs without a published score are included with ``poa_value`` None.
        """

        def _get(session: Session) -> list[CollectionMember]:
            statement = (
                select(NftStatsRow, PublishedScoreRow.poa_value)
                .outerjoin(
                    PublishedScoreRow,
                    col(PublishedScoreRow.nft_id) == col(NftStatsRow.nft_id),
                )
                .where(
                    NftStatsRow.collection == collection,
                    col(NftStatsRow.active).is_(True),
                )
                .order_by(col(NftStatsRow.nft_id))
            )
            return [
                CollectionMember(
                    nft_id=row.nft_id,
                    poa_value=poa_value,
                    total_votes=row.total_h2h_votes + row.slider_count,
                )
                for row, poa_value in session.exec(statement).all()
            ]

        return await self._run_session(_get)
