"""Outbound "score published" notifications."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

from poa_scoring.ranking.records import ScoreRecord

logger = structlog.get_logger()

Subscriber = Callable[["ScorePublished"], Awaitable[None]]


@dataclass(frozen=True)
class ScorePublished:
    """Emitted after a score passed the gate and was written."""

    record: ScoreRecord
    previous_poa: float | None
    reason: str


class ScoreSignalBus:
    """Fire-and-forget fan-out of publish notifications.

    Delivery runs in background tasks; a failing subscriber is logged and never affects
    the publish that triggered it.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._pending: set[asyncio.Task[None]] = set()

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def emit(self, signal: ScorePublished) -> None:
        for subscriber in self._subscribers:
            task = asyncio.create_task(self._deliver(subscriber, signal))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, subscriber: Subscriber, signal: ScorePublished) -> None:
        try:
            await subscriber(signal)
        except Exception as e:
            logger.warning(
                "score_signal_delivery_failed",
                nft_id=signal.record.nft_id,
                subscriber=getattr(subscriber, "__name__", repr(subscriber)),
                error=str(e),
            )

    async def drain(self) -> None:
        """Wait for in-flight deliveries (used on shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending))
