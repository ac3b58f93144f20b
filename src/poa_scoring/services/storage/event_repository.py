"""Database access for the append-only vote event log."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import case, distinct
from sqlalchemy.orm import aliased
from sqlmodel import Session, col, func, or_, select

from poa_scoring.models import VoteEventRow
from poa_scoring.ranking.records import Progress

from .repository import AsyncRepository

if TYPE_CHECKING:
    from sqlalchemy import Engine

HEAD_TO_HEAD = "head_to_head"
SLIDER = "slider"
RETRACTION = "retraction"


class EventRepository(AsyncRepository):
    """Query recorded vote events. Rows are only ever written by ``commit_vote``."""

    def __init__(self, engine: Engine) -> None:
        super().__init__(engine)

    async def get(self, event_id: str) -> VoteEventRow | None:
        def _get(session: Session) -> VoteEventRow | None:
            statement = select(VoteEventRow).where(VoteEventRow.event_id == event_id)
            return session.exec(statement).first()

        return await self._run_session(_get)

    async def exists(self, event_id: str) -> bool:
        return await self.get(event_id) is not None

    async def is_retracted(self, event_id: str) -> bool:
        def _check(session: Session) -> bool:
            statement = select(VoteEventRow.event_id).where(
                VoteEventRow.retracts_event_id == event_id
            )
            return session.exec(statement).first() is not None

        return await self._run_session(_check)

    async def progress_for(self, nft_id: str) -> Progress:
        """Count matchups, opponents, slider ratings and raters for an NFT.

        Retracted slider ratings and the retraction events themselves are excluded.
        """
        opponent = case(
            (col(VoteEventRow.nft_a_id) == nft_id, col(VoteEventRow.nft_b_id)),
            else_=col(VoteEventRow.nft_a_id),
        )
        h2h_statement = (
            select(func.count(), func.count(distinct(opponent)))
            .select_from(VoteEventRow)
            .where(
                VoteEventRow.kind == HEAD_TO_HEAD,
                or_(VoteEventRow.nft_a_id == nft_id, VoteEventRow.nft_b_id == nft_id),
            )
        )
        retraction = aliased(VoteEventRow)
        retracted = select(retraction.retracts_event_id).where(
            retraction.kind == RETRACTION,
            retraction.nft_a_id == nft_id,
            retraction.retracts_event_id.is_not(None),
        )
        slider_statement = (
            select(func.count(), func.count(distinct(col(VoteEventRow.voter_id))))
            .select_from(VoteEventRow)
            .where(
                VoteEventRow.kind == SLIDER,
                VoteEventRow.nft_a_id == nft_id,
                col(VoteEventRow.event_id).not_in(retracted),
            )
        )

        def _progress(session: Session) -> Progress:
            matchups, opponents = session.exec(h2h_statement).one()
            ratings, raters = session.exec(slider_statement).one()
            return Progress(
                h2h_matchups=matchups,
                unique_opponents=opponents,
                slider_ratings=ratings,
                unique_slider_users=raters,
            )

        return await self._run_session(_progress)

    async def all_events(self) -> list[VoteEventRow]:
        """Every recorded event in commit order."""

        def _all(session: Session) -> list[VoteEventRow]:
            statement = select(VoteEventRow).order_by(col(VoteEventRow.sequence))
            return list(session.exec(statement).all())

        return await self._run_session(_all)

    async def count(self) -> int:
        def _count(session: Session) -> int:
            return session.exec(select(func.count()).select_from(VoteEventRow)).one()

        return await self._run_session(_count)
