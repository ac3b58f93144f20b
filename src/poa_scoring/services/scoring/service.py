"""Scoring service: recompute, gate and publish NFT scores."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from poa_scoring.core.config import ScoringConfig
from poa_scoring.core.errors import ComputationError, NotFoundError, VersionConflict
from poa_scoring.core.locks import KeyedLock
from poa_scoring.ranking.collection import CollectionIndex, compute_collection_index
from poa_scoring.ranking.records import Progress, ScoreRecord
from poa_scoring.services.scoring.engine import ScoreCandidate, compute_score
from poa_scoring.services.scoring.gate import GateDecision, evaluate_publish_gate
from poa_scoring.services.scoring.signals import ScorePublished, ScoreSignalBus
from poa_scoring.services.storage import PRIORITY_NORMAL, ScoringStore

logger = structlog.get_logger()


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Scored:
    """A published score together with the data behind it."""

    record: ScoreRecord
    progress: Progress


@dataclass(frozen=True)
class AwaitingData:
    """No score published yet; ``remaining`` lists what is still missing."""

    nft_id: str
    progress: Progress
    remaining: dict[str, int] = field(default_factory=dict)


ScoreView = Scored | AwaitingData


@dataclass(frozen=True)
class RecomputeResult:
    """What a single recomputation did.

    Attributes:
        nft_id: NFT identifier.
        candidate: Computed candidate (None on computation failure or inactive NFT).
        decision: Gate decision (None when the gate was not reached).
        published: Score published after this recomputation, if any.
        error: Computation error message, if any.
    """

    nft_id: str
    candidate: ScoreCandidate | None = None
    decision: GateDecision | None = None
    published: ScoreRecord | None = None
    error: str | None = None

    @property
    def did_publish(self) -> bool:
        return self.decision is not None and self.decision.publish


class ScoringService:
    """Orchestrates score computation, the publish gate and outbound signals.

    Always computes from the latest committed statistics, so recomputation is
    idempotent and safe to repeat from the dirty-queue worker.
    """

    def __init__(
        self,
        config: ScoringConfig,
        store: ScoringStore,
        *,
        signals: ScoreSignalBus | None = None,
        locks: KeyedLock | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize scoring service.

        Args:
            config: Scoring configuration.
            store: Storage layer.
            signals: Bus receiving "score published" notifications.
            locks: Lock registry, shared with the vote processor when given.
            clock: Source of the current time.
        """
        self.config = config
        self.store = store
        self.signals = signals or ScoreSignalBus()
        self.locks = locks or KeyedLock()
        self.clock = clock

    async def recompute(self, nft_id: str) -> RecomputeResult:
        """Recompute an NFT's score and publish it if the gate allows.

        A ComputationError leaves the published score untouched and marks the NFT dirty.

        Raises:
            NotFoundError: If the NFT does not exist.
        """
        timeout = self.config.processing.lock_timeout_seconds
        async with self.locks.acquire_many([f"score:{nft_id}"], timeout):
            stats = await self.store.stats.get_nft_stats(nft_id)
            if not stats.active:
                logger.debug("recompute_skipped_inactive", nft_id=nft_id)
                return RecomputeResult(nft_id=nft_id)

            try:
                candidate = compute_score(stats, self.config)
            except ComputationError as e:
                logger.error("score_computation_failed", nft_id=nft_id, error=e.detail)
                await self.store.dirty.mark(nft_id, PRIORITY_NORMAL, reason="computation_error")
                return RecomputeResult(nft_id=nft_id, error=str(e))

            progress = await self.store.events.progress_for(nft_id)
            decision, published, previous = await self._publish(candidate, progress)

        logger.info(
            "score_recomputed",
            nft_id=nft_id,
            poa=candidate.poa_value,
            confidence=candidate.confidence,
            state=decision.state.value,
            reason=decision.reason.value,
        )
        if decision.publish and published is not None:
            self.signals.emit(
                ScorePublished(
                    record=published,
                    previous_poa=previous.poa_value if previous else None,
                    reason=decision.reason.value,
                )
            )
        return RecomputeResult(
            nft_id=nft_id, candidate=candidate, decision=decision, published=published
        )

    async def _publish(
        self, candidate: ScoreCandidate, progress: Progress
    ) -> tuple[GateDecision, ScoreRecord | None, ScoreRecord | None]:
        """Run the gate inside the publishing transaction, retrying on write races."""
        processing = self.config.processing
        seen: list[ScoreRecord | None] = [None]

        def gate_at(now: datetime) -> Callable[[ScoreRecord | None], GateDecision]:
            def decide(current: ScoreRecord | None) -> GateDecision:
                seen[0] = current
                return evaluate_publish_gate(candidate, progress, current, now, self.config)

            return decide

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(processing.max_retries),
            wait=wait_random_exponential(
                multiplier=processing.backoff_initial_seconds, max=processing.backoff_max_seconds
            ),
            retry=retry_if_exception_type(VersionConflict),
            reraise=True,
        ):
            with attempt:
                now = self.clock()
                decision, published = await self.store.scores.publish_with_gate(
                    candidate, gate_at(now), now
                )
        return decision, published, seen[0]

    async def get_score(self, nft_id: str) -> ScoreView:
        """Return the published score, or what is still missing before one can exist.

        Raises:
            NotFoundError: If the NFT does not exist.
        """
        await self.store.stats.get_nft_stats(nft_id)
        progress = await self.store.events.progress_for(nft_id)
        published = await self.store.scores.get_published(nft_id)
        if published is not None:
            return Scored(record=published, progress=progress)
        return AwaitingData(
            nft_id=nft_id,
            progress=progress,
            remaining=progress.remaining(self.config.publish),
        )

    async def collection_index(self, collection: str) -> CollectionIndex:
        """Compute the Collection Aesthetic Index from the currently published scores.

        Raises:
            NotFoundError: If no active NFT belongs to ``collection``.
            ComputationError: If the collection cannot be indexed yet.
        """
        members = await self.store.scores.collection_members(collection)
        if not members:
            raise NotFoundError("collection", collection)
        index = compute_collection_index(collection, members, self.config.collection)
        logger.info(
            "collection_index_computed",
            collection=collection,
            cai_score=index.cai_score,
            confidence=index.confidence,
            provisional=index.provisional,
            scored=index.scored_count,
            nfts=index.nft_count,
        )
        return index
