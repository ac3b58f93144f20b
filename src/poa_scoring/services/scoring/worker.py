"""Background recomputation of NFTs flagged dirty."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import structlog

from poa_scoring.core.errors import NotFoundError, ScoringError
from poa_scoring.services.scoring.gate import GateReason
from poa_scoring.services.scoring.service import ScoringService
from poa_scoring.services.storage import DirtyClaim

logger = structlog.get_logger()


@dataclass
class BatchSummary:
    """Counts from one worker pass."""

    claimed: int = 0
    published: int = 0
    unchanged: int = 0
    failed: int = 0
    deferred: int = 0
    requeued: int = 0


class DirtyRecomputeWorker:
    """Drain the dirty queue by recomputing each NFT from its latest statistics.

    A flag is cleared only if the NFT was not marked again while it was being
    recomputed, so a vote landing mid-recompute is never lost.
    """

    def __init__(self, service: ScoringService, concurrency: int | None = None) -> None:
        self.service = service
        self.store = service.store
        self.concurrency = concurrency or service.config.processing.worker_concurrency

    async def run_once(self, batch_size: int | None = None) -> BatchSummary:
        """Process one batch of dirty NFTs.

        Args:
            batch_size: Maximum NFTs to claim (defaults to the configured batch size).

        Returns:
            BatchSummary of what happened.
        """
        size = batch_size or self.service.config.processing.worker_batch_size
        claims = await self.store.dirty.claim(size)
        summary = BatchSummary(claimed=len(claims))
        if not claims:
            return summary

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _process(claim: DirtyClaim) -> None:
            async with semaphore:
                await self._process_claim(claim, summary)

        await asyncio.gather(*[_process(claim) for claim in claims])
        logger.info(
            "dirty_batch_processed",
            claimed=summary.claimed,
            published=summary.published,
            unchanged=summary.unchanged,
            failed=summary.failed,
            deferred=summary.deferred,
            requeued=summary.requeued,
        )
        return summary

    async def _process_claim(self, claim: DirtyClaim, summary: BatchSummary) -> None:
        try:
            result = await self.service.recompute(claim.nft_id)
        except NotFoundError:
            logger.warning("dirty_nft_missing", nft_id=claim.nft_id)
            await self.store.dirty.clear(claim)
            summary.failed += 1
            return
        except ScoringError as e:
            logger.warning("dirty_recompute_failed", nft_id=claim.nft_id, error=str(e))
            await self.store.dirty.record_failure(claim.nft_id)
            summary.failed += 1
            return

        if result.error is not None:
            # The service re-marked the NFT; leave the flag for a later pass
            await self.store.dirty.record_failure(claim.nft_id)
            summary.failed += 1
            return

        if result.decision is not None and result.decision.reason is GateReason.GRACE_PERIOD:
            # Keep the flag so the change is published once the grace period ends
            summary.deferred += 1
            return

        if result.did_publish:
            summary.published += 1
        else:
            summary.unchanged += 1
        if not await self.store.dirty.clear(claim):
            summary.requeued += 1

    async def run_until_empty(self, batch_size: int | None = None, max_batches: int = 100) -> int:
        """Run batches until the queue is drained or ``max_batches`` is reached.

        Returns:
            Total NFTs processed.
        """
        total = 0
        for _ in range(max_batches):
            summary = await self.run_once(batch_size)
            total += summary.claimed
            if summary.claimed == 0 or summary.claimed == summary.failed + summary.deferred:
                break
        return total
