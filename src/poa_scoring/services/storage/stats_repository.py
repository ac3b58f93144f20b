"""Database persistence for NFT and user statistics."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from poa_scoring.core.config import ScoringConfig
from poa_scoring.core.errors import NotFoundError, VersionConflict
from poa_scoring.models import NftStatsRow, UserStatsRow, VoteEventRow
from poa_scoring.ranking.records import NftRating, UserRating
from poa_scoring.ranking.sliders import RunningStats

from .repository import AsyncRepository

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from poa_scoring.services.voting.events import VoteEvent

logger = structlog.get_logger()


def nft_from_row(row: NftStatsRow) -> NftRating:
    return NftRating(
        nft_id=row.nft_id,
        elo_mean=row.elo_mean,
        elo_uncertainty=row.elo_uncertainty,
        total_h2h_votes=row.total_h2h_votes,
        wins=row.wins,
        losses=row.losses,
        sliders=RunningStats(row.slider_count, row.slider_mean, row.slider_m2),
        fire_count=row.fire_count,
        fire_weight_sum=row.fire_weight_sum,
        influence_sum=row.influence_sum,
        influence_count=row.influence_count,
        active=row.active,
        version=row.version,
    )


def user_from_row(row: UserStatsRow) -> UserRating:
    return UserRating(
        user_id=row.user_id,
        sliders=RunningStats(row.slider_count, row.slider_mean, row.slider_m2),
        reliability_score=row.reliability_score,
        reliability_count=row.reliability_count,
        version=row.version,
    )


def _nft_values(rating: NftRating) -> dict[str, Any]:
    return {
        "elo_mean": rating.elo_mean,
        "elo_uncertainty": rating.elo_uncertainty,
        "total_h2h_votes": rating.total_h2h_votes,
        "wins": rating.wins,
        "losses": rating.losses,
        "slider_count": rating.sliders.count,
        "slider_mean": rating.sliders.mean,
        "slider_m2": rating.sliders.m2,
        "fire_count": rating.fire_count,
        "fire_weight_sum": rating.fire_weight_sum,
        "influence_sum": rating.influence_sum,
        "influence_count": rating.influence_count,
        "active": rating.active,
    }


def _user_values(user: UserRating) -> dict[str, Any]:
    return {
        "slider_count": user.sliders.count,
        "slider_mean": user.sliders.mean,
        "slider_m2": user.sliders.m2,
        "reliability_score": user.reliability_score,
        "reliability_count": user.reliability_count,
    }


def _event_row(
    event: VoteEvent, normalized_slider: float | None, influence_weight: float
) -> VoteEventRow:
    return VoteEventRow(
        event_id=event.event_id,
        kind=event.kind.value,
        voter_id=event.voter_id,
        nft_a_id=event.nft_a_id,
        nft_b_id=event.nft_b_id,
        winner_id=event.winner_id,
        is_tie=event.is_tie,
        slider_value=event.slider_value,
        is_fire_vote=event.is_fire_vote,
        is_super_vote=event.is_super_vote,
        retracts_event_id=event.retracts_event_id,
        normalized_slider=normalized_slider,
        influence_weight=influence_weight,
        timestamp=event.timestamp,
    )


def _update_nft(session: Session, rating: NftRating) -> NftRating:
    """Conditionally write an NFT row; the version must still match what was read."""
    if rating.version is None:
        raise NotFoundError("nft", rating.nft_id)
    statement = (
        update(NftStatsRow)
        .where(col(NftStatsRow.nft_id) == rating.nft_id)
        .where(col(NftStatsRow.version) == rating.version)
        .values(
            **_nft_values(rating),
            version=rating.version + 1,
            updated_at=datetime.now(UTC),
        )
    )
    result = session.connection().execute(statement)
    if result.rowcount != 1:
        raise VersionConflict("nft", rating.nft_id, rating.version)
    return replace(rating, version=rating.version + 1)


def _write_user(session: Session, user: UserRating) -> UserRating:
    """Insert a new user row or conditionally update an existing one."""
    if user.version is None:
        session.add(UserStatsRow(user_id=user.user_id, version=1, **_user_values(user)))
        try:
            session.flush()
        except IntegrityError as e:
            raise VersionConflict("user", user.user_id, None) from e
        return replace(user, version=1)

    statement = (
        update(UserStatsRow)
        .where(col(UserStatsRow.user_id) == user.user_id)
        .where(col(UserStatsRow.version) == user.version)
        .values(
            **_user_values(user),
            version=user.version + 1,
            updated_at=datetime.now(UTC),
        )
    )
    result = session.connection().execute(statement)
    if result.rowcount != 1:
        raise VersionConflict("user", user.user_id, user.version)
    return replace(user, version=user.version + 1)


@dataclass(frozen=True)
class CommittedVote:
    """Statistics as written by a committed vote."""

    nfts: tuple[NftRating, ...]
    user: UserRating


class StatsRepository(AsyncRepository):
    """Persist and query per-entity rating statistics."""

    def __init__(self, engine: Engine, config: ScoringConfig) -> None:
        super().__init__(engine)
        self.config = config

    async def get_nft_stats(self, nft_id: str) -> NftRating:
        """Load an NFT's statistics.

        Raises:
            NotFoundError: If the NFT was never registered.
        """

        def _get(session: Session) -> NftRating:
            row = session.get(NftStatsRow, nft_id)
            if row is None:
                raise NotFoundError("nft", nft_id)
            return nft_from_row(row)

        return await self._run_session(_get)

    async def get_user_stats(self, user_id: str) -> UserRating:
        """Load a user's statistics.

        Raises:
            NotFoundError: If the user does not exist.
        """
        user = await self.find_user_stats(user_id)
        if user is None:
            raise NotFoundError("user", user_id)
        return user

    async def find_user_stats(self, user_id: str) -> UserRating | None:
        def _get(session: Session) -> UserRating | None:
            row = session.get(UserStatsRow, user_id)
            return user_from_row(row) if row else None

        return await self._run_session(_get)

    async def register_nft(self, nft_id: str, collection: str | None = None) -> NftRating:
        """Create an NFT at the configured baseline. Existing NFTs are returned unchanged.

        A ``collection`` given for an existing NFT that has none yet is assigned to it.
        """
        baseline = NftRating.initial(nft_id, self.config)

        def _register(session: Session) -> NftRating:
            existing = session.get(NftStatsRow, nft_id)
            if existing is not None:
                if collection is not None and existing.collection is None:
                    existing.collection = collection
                    session.add(existing)
                    session.commit()
                    session.refresh(existing)
                    logger.info("nft_collection_assigned", nft_id=nft_id, collection=collection)
                return nft_from_row(existing)
            row = NftStatsRow(
                nft_id=nft_id, version=1, collection=collection, **_nft_values(baseline)
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                existing = session.get(NftStatsRow, nft_id)
                if existing is None:
                    raise
                return nft_from_row(existing)
            logger.info("nft_registered", nft_id=nft_id, collection=collection)
            return replace(baseline, version=1)

        return await self._run_session(_register)

    async def register_user(self, user_id: str) -> UserRating:
        """Create a user with initial reliability. Existing users are returned unchanged."""
        existing = await self.find_user_stats(user_id)
        if existing is not None:
            return existing

        def _register(session: Session) -> UserRating:
            user = _write_user(session, UserRating.initial(user_id, self.config))
            session.commit()
            return user

        try:
            return await self._run_session(_register)
        except VersionConflict:
            return await self.get_user_stats(user_id)

    async def deactivate_nft(self, nft_id: str) -> NftRating:
        """Mark an NFT inactive. Its history and statistics are kept."""

        def _deactivate(session: Session) -> NftRating:
            row = session.get(NftStatsRow, nft_id)
            if row is None:
                raise NotFoundError("nft", nft_id)
            current = nft_from_row(row)
            if not current.active:
                return current
            updated = _update_nft(session, replace(current, active=False))
            session.commit()
            return updated

        rating = await self._run_session(_deactivate)
        logger.info("nft_deactivated", nft_id=nft_id)
        return rating

    async def put_nft_stats(self, rating: NftRating) -> NftRating:
        """Write NFT statistics if ``rating.version`` is still current.

        Raises:
            VersionConflict: If another writer committed first.
        """

        def _put(session: Session) -> NftRating:
            updated = _update_nft(session, rating)
            session.commit()
            return updated

        return await self._run_session(_put)

    async def put_user_stats(self, user: UserRating) -> UserRating:
        """Insert or conditionally update user statistics.

        Raises:
            VersionConflict: If another writer committed first.
        """

        def _put(session: Session) -> UserRating:
            updated = _write_user(session, user)
            session.commit()
            return updated

        return await self._run_session(_put)

    async def commit_vote(
        self,
        event: VoteEvent,
        nfts: Sequence[NftRating],
        user: UserRating,
        *,
        normalized_slider: float | None = None,
        influence_weight: float = 1.0,
    ) -> CommittedVote:
        """Record a vote event and its statistics changes in one transaction.

        Either everything is written or nothing is.

        Raises:
            VersionConflict: If any entity changed since it was read, or the event id
                was recorded concurrently.
        """

        def _commit(session: Session) -> CommittedVote:
            session.add(_event_row(event, normalized_slider, influence_weight))
            try:
                session.flush()
            except IntegrityError as e:
                raise VersionConflict("vote_event", event.event_id, None) from e
            written = tuple(_update_nft(session, nft) for nft in nfts)
            written_user = _write_user(session, user)
            session.commit()
            return CommittedVote(nfts=written, user=written_user)

        return await self._run_session(_commit)

    async def replace_all(self, nfts: Sequence[NftRating], users: Sequence[UserRating]) -> int:
        """Overwrite statistics with rebuilt values, bumping every version.

        Bumping versions makes any in-flight vote computed against the old state fail
        its version check and retry against the rebuilt one.

        Returns:
            Number of NFT rows written.
        """

        def _replace(session: Session) -> int:
            now = datetime.now(UTC)
            nft_rows = {row.nft_id: row for row in session.exec(select(NftStatsRow)).all()}
            for nft in nfts:
                row = nft_rows.get(nft.nft_id)
                if row is None:
                    session.add(NftStatsRow(nft_id=nft.nft_id, version=1, **_nft_values(nft)))
                    continue
                values = _nft_values(nft)
                values["active"] = row.active
                for key, value in values.items():
                    setattr(row, key, value)
                row.version += 1
                row.updated_at = now
                session.add(row)
            user_rows = {row.user_id: row for row in session.exec(select(UserStatsRow)).all()}
            for user in users:
                row = user_rows.get(user.user_id)
                if row is None:
                    session.add(UserStatsRow(user_id=user.user_id, version=1, **_user_values(user)))
                    continue
                for key, value in _user_values(user).items():
                    setattr(row, key, value)
                row.version += 1
                row.updated_at = now
                session.add(row)
            session.commit()
            return len(nfts)

        return await self._run_session(_replace)

    async def list_nft_ids(self, *, active_only: bool = True) -> list[str]:
        def _list(session: Session) -> list[str]:
            statement = select(NftStatsRow.nft_id)
            if active_only:
                statement = statement.where(col(NftStatsRow.active).is_(True))
            return list(session.exec(statement.order_by(col(NftStatsRow.nft_id))).all())

        return await self._run_session(_list)

    async def list_user_ids(self) -> list[str]:
        def _list(session: Session) -> list[str]:
            statement = select(UserStatsRow.user_id).order_by(col(UserStatsRow.user_id))
            return list(session.exec(statement).all())

        return await self._run_session(_list)

    async def list_collections(self) -> list[str]:
        """Distinct collections with at least one active NFT."""

        def _list(session: Session) -> list[str]:
            statement = (
                select(NftStatsRow.collection)
                .where(
                    col(NftStatsRow.collection).is_not(None),
                    col(NftStatsRow.active).is_(True),
                )
                .distinct()
                .order_by(col(NftStatsRow.collection))
            )
            return list(session.exec(statement).all())

        return await self._run_session(_list)
