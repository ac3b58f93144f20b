"""Vote processor: validate, apply and commit a vote, then trigger scoring."""

from __future__ import annotations

from dataclasses import dataclass, replace

import structlog
from sqlalchemy.exc import OperationalError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from poa_scoring.core.config import ScoringConfig
from poa_scoring.core.errors import (
    InactiveNftError,
    InvalidVoteShape,
    LockTimeoutError,
    NotFoundError,
    RetryableVoteError,
    ScoringError,
    VersionConflict,
)
from poa_scoring.core.locks import KeyedLock
from poa_scoring.ranking.records import NftRating, UserRating
from poa_scoring.services.scoring import GateReason, RecomputeResult, ScoringService
from poa_scoring.services.storage import PRIORITY_HIGH, PRIORITY_NORMAL, ScoringStore
from poa_scoring.services.voting.apply import RecordedSlider, apply_vote
from poa_scoring.services.voting.events import VoteEvent, VoteKind, validate_vote_event

logger = structlog.get_logger()


@dataclass(frozen=True)
class VoteOutcome:
    """Result of processing one vote event.

    Attributes:
        event_id: Event identifier.
        kind: Vote kind.
        duplicate: True when the event had already been applied; nothing changed.
        nfts: NFT statistics as committed.
        user: Voter statistics as committed.
        agreed: Consensus agreement of the vote, None without a consensus signal.
        recomputed: Inline recomputations triggered by the vote.
    """

    event_id: str
    kind: VoteKind
    duplicate: bool = False
    nfts: tuple[NftRating, ...] = ()
    user: UserRating | None = None
    agreed: bool | None = None
    recomputed: tuple[RecomputeResult, ...] = ()


class VoteProcessor:
    """Applies vote events to per-entity statistics.

    Each event is processed under per-entity locks (NFTs and voter) and committed in
    a single versioned transaction. Lost races are retried from a fresh read; events
    are idempotent by ``event_id``.
    """

    def __init__(
        self,
        config: ScoringConfig,
        store: ScoringStore,
        scoring: ScoringService | None = None,
    ) -> None:
        """Initialize vote processor.

        Args:
            config: Scoring configuration.
            store: Storage layer.
            scoring: Scoring service to trigger after commits.
        """
        self.config = config
        self.store = store
        self.scoring = scoring or ScoringService(config, store)
        self.locks: KeyedLock = self.scoring.locks

    async def process(self, event: VoteEvent) -> VoteOutcome:
        """Validate and apply a vote event, then trigger scoring for touched NFTs.

        Args:
            event: Vote event to apply.

        Returns:
            VoteOutcome describing the committed change.

        Raises:
            InvalidVoteShape: If the event is structurally invalid.
            NotFoundError: If a referenced NFT (or user, without lazy registration)
                does not exist or the NFT is inactive.
            RetryableVoteError: If retries or lock waits were exhausted; resubmitting
                the same event is safe.
        """
        kind = validate_vote_event(event)
        keys = [f"nft:{nft_id}" for nft_id in event.nft_ids] + [f"user:{event.voter_id}"]
        try:
            async with self.locks.acquire_many(keys, self.config.processing.lock_timeout_seconds):
                outcome = await self._apply_with_retries(event, kind)
        except LockTimeoutError as e:
            raise RetryableVoteError(event.event_id, e.reason) from e

        recomputed = await self._trigger_scoring(event)
        return replace(outcome, recomputed=recomputed)

    async def _apply_with_retries(self, event: VoteEvent, kind: VoteKind) -> VoteOutcome:
        processing = self.config.processing
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(processing.max_retries),
                wait=wait_random_exponential(
                    multiplier=processing.backoff_initial_seconds,
                    max=processing.backoff_max_seconds,
                ),
                retry=retry_if_exception_type((VersionConflict, OperationalError)),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.debug(
                            "vote_retry",
                            event_id=event.event_id,
                            attempt=attempt.retry_state.attempt_number,
                        )
                    return await self._apply_once(event, kind)
        except (VersionConflict, OperationalError) as e:
            logger.warning("vote_retries_exhausted", event_id=event.event_id, error=str(e))
            raise RetryableVoteError(event.event_id, str(e)) from e
        raise RetryableVoteError(event.event_id, "no attempt was made")

    async def _apply_once(self, event: VoteEvent, kind: VoteKind) -> VoteOutcome:
        if await self.store.events.exists(event.event_id):
            logger.info("vote_duplicate", event_id=event.event_id)
            return VoteOutcome(event_id=event.event_id, kind=kind, duplicate=True)

        nfts: dict[str, NftRating] = {}
        for nft_id in event.nft_ids:
            rating = await self.store.stats.get_nft_stats(nft_id)
            if not rating.active:
                raise InactiveNftError(nft_id)
            nfts[nft_id] = rating
        user = await self._load_user(event.voter_id)
        retracted = await self._load_retracted(event) if kind is VoteKind.RETRACTION else None

        effects = apply_vote(event, nfts, user, self.config, retracted)
        committed = await self.store.stats.commit_vote(
            event,
            effects.nfts,
            effects.user,
            normalized_slider=effects.normalized_slider,
            influence_weight=effects.influence_weight,
        )
        logger.info(
            "vote_processed",
            event_id=event.event_id,
            kind=kind.value,
            voter_id=event.voter_id,
            nfts=list(event.nft_ids),
            weight=round(effects.influence_weight, 4),
            agreed=effects.agreed,
        )
        return VoteOutcome(
            event_id=event.event_id,
            kind=kind,
            nfts=committed.nfts,
            user=committed.user,
            agreed=effects.agreed,
        )

    async def _load_user(self, user_id: str) -> UserRating:
        user = await self.store.stats.find_user_stats(user_id)
        if user is not None:
            return user
        if not self.config.processing.auto_register_users:
            raise NotFoundError("user", user_id)
        return UserRating.initial(user_id, self.config)

    async def _load_retracted(self, event: VoteEvent) -> RecordedSlider:
        target_id = event.retracts_event_id or ""
        row = await self.store.events.get(target_id)
        if row is None:
            raise NotFoundError("vote_event", target_id)
        if row.kind != VoteKind.SLIDER.value or row.slider_value is None:
            raise InvalidVoteShape("only slider ratings can be retracted")
        if row.normalized_slider is None:
            raise InvalidVoteShape(f"rating {target_id} has no recorded normalized value")
        if await self.store.events.is_retracted(target_id):
            raise InvalidVoteShape(f"rating {target_id} was already retracted")
        return RecordedSlider(
            event_id=row.event_id,
            voter_id=row.voter_id,
            nft_id=row.nft_a_id,
            raw_value=row.slider_value,
            normalized_value=row.normalized_slider,
            influence_weight=row.influence_weight,
            is_fire_vote=row.is_fire_vote,
        )

    async def _trigger_scoring(self, event: VoteEvent) -> tuple[RecomputeResult, ...]:
        """Recompute touched NFTs inline, or flag them for the background worker."""
        high = event.is_super_vote or event.is_fire_vote
        priority = PRIORITY_HIGH if high else PRIORITY_NORMAL
        reason = event.kind.value

        if not self.config.processing.recompute_inline:
            for nft_id in event.nft_ids:
                await self.store.dirty.mark(nft_id, priority, reason=reason)
            return ()

        results: list[RecomputeResult] = []
        for nft_id in event.nft_ids:
            try:
                result = await self.scoring.recompute(nft_id)
            except ScoringError as e:
                # Statistics are committed; the worker will retry the score
                logger.warning("inline_recompute_failed", nft_id=nft_id, error=str(e))
                await self.store.dirty.mark(nft_id, priority, reason=reason)
                continue
            if result.decision is not None and result.decision.reason is GateReason.GRACE_PERIOD:
                await self.store.dirty.mark(nft_id, priority, reason="grace_period")
            results.append(result)
        return tuple(results)
