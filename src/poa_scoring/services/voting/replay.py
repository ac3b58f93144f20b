"""Rebuild statistics by folding the vote event log from scratch."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import structlog

from poa_scoring.core.config import ScoringConfig
from poa_scoring.models import VoteEventRow
from poa_scoring.ranking.records import NftRating, UserRating
from poa_scoring.services.storage import PRIORITY_NORMAL, ScoringStore
from poa_scoring.services.storage.repository import as_utc
from poa_scoring.services.voting.apply import RecordedSlider, apply_vote
from poa_scoring.services.voting.events import VoteEvent, VoteKind

logger = structlog.get_logger()


@dataclass(frozen=True)
class ReplayResult:
    """Statistics produced by a replay.

    Attributes:
        nfts: Rebuilt NFT statistics keyed by NFT id.
        users: Rebuilt user statistics keyed by user id.
        applied: Events folded into the statistics.
        skipped: Retractions whose rating is not in the log, left out.
    """

    nfts: dict[str, NftRating]
    users: dict[str, UserRating]
    applied: int
    skipped: int


def event_from_row(row: VoteEventRow) -> VoteEvent:
    return VoteEvent(
        event_id=row.event_id,
        voter_id=row.voter_id,
        nft_a_id=row.nft_a_id,
        nft_b_id=row.nft_b_id,
        winner_id=row.winner_id,
        is_tie=row.is_tie,
        slider_value=row.slider_value,
        is_fire_vote=row.is_fire_vote,
        is_super_vote=row.is_super_vote,
        retracts_event_id=row.retracts_event_id,
        timestamp=as_utc(row.timestamp),
    )


def replay_events(
    rows: Sequence[VoteEventRow],
    config: ScoringConfig,
    nft_ids: Iterable[str] = (),
    user_ids: Iterable[str] = (),
) -> ReplayResult:
    """Fold recorded events, in commit order, into fresh statistics.

    A retraction is replayed as the compensating event it was live: the original
    rating is folded in when it occurs and reversed at the retraction's position,
    using the normalized value and weight this replay computed for it. Ratings cast
    in between keep the calibration they were normalized against.

    Args:
        rows: Recorded events in commit order.
        config: Scoring configuration.
        nft_ids: NFTs to include even if no event references them.
        user_ids: Users to include even if they never voted.

    Returns:
        ReplayResult with the rebuilt statistics.
    """
    nfts = {nft_id: NftRating.initial(nft_id, config) for nft_id in nft_ids}
    users = {user_id: UserRating.initial(user_id, config) for user_id in user_ids}
    recorded: dict[str, RecordedSlider] = {}
    applied = skipped = 0

    for row in rows:
        event = event_from_row(row)
        original: RecordedSlider | None = None
        if event.kind is VoteKind.RETRACTION:
            original = recorded.pop(event.retracts_event_id or "", None)
            if original is None:
                logger.warning(
                    "replay_retraction_unmatched",
                    event_id=event.event_id,
                    retracts_event_id=event.retracts_event_id,
                )
                skipped += 1
                continue
        touched = {
            nft_id: nfts.get(nft_id) or NftRating.initial(nft_id, config)
            for nft_id in event.nft_ids
        }
        user = users.get(event.voter_id) or UserRating.initial(event.voter_id, config)
        effects = apply_vote(event, touched, user, config, original)
        for rating in effects.nfts:
            nfts[rating.nft_id] = rating
        users[effects.user.user_id] = effects.user
        if event.kind is VoteKind.SLIDER:
            recorded[event.event_id] = RecordedSlider(
                event_id=event.event_id,
                voter_id=event.voter_id,
                nft_id=event.nft_a_id,
                raw_value=event.slider_value,
                normalized_value=effects.normalized_slider,
                influence_weight=effects.influence_weight,
                is_fire_vote=event.is_fire_vote,
            )
        applied += 1

    return ReplayResult(nfts=nfts, users=users, applied=applied, skipped=skipped)


class StatisticsRebuilder:
    """Replace stored statistics with a replay of the vote log.

    This is the repair path for corrupted aggregates; run it while vote intake is
    paused. In-flight votes that did race it fail their version checks and retry
    against the rebuilt state.
    """

    def __init__(self, config: ScoringConfig, store: ScoringStore) -> None:
        self.config = config
        self.store = store

    async def rebuild(self, *, mark_dirty: bool = True) -> ReplayResult:
        """Replay the log, write the results and flag every NFT for rescoring."""
        rows = await self.store.events.all_events()
        nft_ids = await self.store.stats.list_nft_ids(active_only=False)
        user_ids = await self.store.stats.list_user_ids()
        result = replay_events(rows, self.config, nft_ids, user_ids)

        await self.store.stats.replace_all(list(result.nfts.values()), list(result.users.values()))
        if mark_dirty:
            for nft_id in result.nfts:
                await self.store.dirty.mark(nft_id, PRIORITY_NORMAL, reason="rebuild")

        logger.info(
            "statistics_rebuilt",
            nfts=len(result.nfts),
            users=len(result.users),
            applied=result.applied,
            skipped=result.skipped,
        )
        return result
