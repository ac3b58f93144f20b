"""Shared async repository helpers for SQLModel session work."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Generic, TypeVar

import structlog
from sqlalchemy.exc import OperationalError
from sqlmodel import Session
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = structlog.get_logger()

T = TypeVar("T")


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class AsyncRepository(Generic[T]):
    """Wrap sync SQLModel session work for async callers."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_random_exponential(multiplier=0.05, max=1),
        retry=retry_if_exception_type(OperationalError),
        reraise=True,
    )
    async def _run_session(self, fn: Callable[[Session], T]) -> T:
        """Run a sync function inside a Session on a worker thread.

        Transient driver errors (e.g. a locked SQLite file) are retried; the failed
        attempt's transaction has already been rolled back when the Session closed.
        """

        def _run() -> T:
            with Session(self._engine) as session:
                return fn(session)

        return await asyncio.to_thread(_run)
