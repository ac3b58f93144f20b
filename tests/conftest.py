"""Shared fixtures for scoring engine tests."""

from datetime import UTC, datetime, timedelta

import pytest

from poa_scoring.core.config import ScoringConfig
from poa_scoring.services.scoring import ScoringService, ScoreSignalBus
from poa_scoring.services.storage import ScoringStore
from poa_scoring.services.voting import VoteEvent, VoteProcessor


class FakeClock:
    """Controllable clock for grace period tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def fast_config(**processing) -> ScoringConfig:
    """Default config with retry backoff disabled."""
    config = ScoringConfig()
    config.processing.backoff_initial_seconds = 0.0
    config.processing.backoff_max_seconds = 0.0
    for key, value in processing.items():
        setattr(config.processing, key, value)
    return config


@pytest.fixture
def config() -> ScoringConfig:
    return fast_config()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def store(config, tmp_path):
    store = ScoringStore(config, database_url=f"sqlite:///{tmp_path / 'poa.db'}")
    yield store
    await store.close()


@pytest.fixture
def signals() -> ScoreSignalBus:
    return ScoreSignalBus()


@pytest.fixture
def service(config, store, clock, signals) -> ScoringService:
    return ScoringService(config, store, signals=signals, clock=clock)


@pytest.fixture
def processor(config, store, service) -> VoteProcessor:
    return VoteProcessor(config, store, scoring=service)


@pytest.fixture
def h2h():
    """Factory for head-to-head vote events."""

    def _make(voter: str, nft_a: str, nft_b: str, winner: str | None, **kwargs) -> VoteEvent:
        return VoteEvent(
            voter_id=voter,
            nft_a_id=nft_a,
            nft_b_id=nft_b,
            winner_id=winner,
            is_tie=winner is None,
            **kwargs,
        )

    return _make


@pytest.fixture
def slider():
    """Factory for slider vote events."""

    def _make(voter: str, nft: str, value: float, **kwargs) -> VoteEvent:
        return VoteEvent(voter_id=voter, nft_a_id=nft, slider_value=value, **kwargs)

    return _make


@pytest.fixture
def seed_publishable(store, processor, h2h, slider):
    """Register NFTs and cast just enough votes for ``hero`` to meet publish minimums."""

    async def _seed(hero: str = "hero") -> None:
        opponents = ["opp-1", "opp-2", "opp-3"]
        for nft_id in [hero, *opponents]:
            await store.stats.register_nft(nft_id)
        for i in range(5):
            await processor.process(h2h(f"voter-{i}", hero, opponents[i % 3], hero))
        await processor.process(slider("rater-1", hero, 80))
        await processor.process(slider("rater-2", hero, 70))

    return _seed


@pytest.fixture
def make_config():
    """Factory for configs with processing overrides."""
    return fast_config
