"""In-memory rating records for NFTs and users."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime

from poa_scoring.core.config import PublishConfig, ScoringConfig
from poa_scoring.ranking.sliders import RunningStats


@dataclass(frozen=True)
class Progress:
    """Data gathered for an NFT, derived from the vote log."""

    h2h_matchups: int = 0
    unique_opponents: int = 0
    slider_ratings: int = 0
    unique_slider_users: int = 0

    @property
    def has_data(self) -> bool:
        return self.h2h_matchups > 0 or self.slider_ratings > 0

    def remaining(self, publish: PublishConfig) -> dict[str, int]:
        """How much of each requirement is still missing (0 when met)."""
        return {
            "h2h_matchups": max(0, publish.min_h2h_matchups - self.h2h_matchups),
            "unique_opponents": max(0, publish.min_unique_opponents - self.unique_opponents),
            "slider_ratings": max(0, publish.min_slider_ratings - self.slider_ratings),
            "unique_slider_users": max(
                0, publish.min_unique_slider_users - self.unique_slider_users
            ),
        }

    def meets(self, publish: PublishConfig) -> bool:
        return not any(self.remaining(publish).values())


@dataclass(frozen=True)
class NftRating:
    """Statistics for a single NFT.

    Attributes:
        nft_id: NFT identifier.
        elo_mean: Elo mean.
        elo_uncertainty: Elo uncertainty (sigma).
        total_h2h_votes: Head-to-head votes including ties.
        wins: Head-to-head wins.
        losses: Head-to-head losses.
        sliders: Welford statistics over normalized slider ratings.
        fire_count: Number of fire votes credited.
        fire_weight_sum: Reliability-weighted fire votes.
        influence_sum: Sum of voter influence weights.
        influence_count: Number of votes contributing to ``influence_sum``.
        active: False once deactivated.
        version: Optimistic concurrency version (None when not yet persisted).
    """

    nft_id: str
    elo_mean: float = 1200.0
    elo_uncertainty: float = 350.0
    total_h2h_votes: int = 0
    wins: int = 0
    losses: int = 0
    sliders: RunningStats = field(default_factory=RunningStats)
    fire_count: int = 0
    fire_weight_sum: float = 0.0
    influence_sum: float = 0.0
    influence_count: int = 0
    active: bool = True
    version: int | None = None

    @classmethod
    def initial(cls, nft_id: str, config: ScoringConfig) -> NftRating:
        return cls(
            nft_id=nft_id,
            elo_mean=config.elo.initial_mean,
            elo_uncertainty=config.elo.initial_uncertainty,
        )

    @property
    def slider_count(self) -> int:
        return self.sliders.count

    @property
    def slider_mean(self) -> float | None:
        """Mean normalized slider rating, None when there are no ratings."""
        if self.sliders.count == 0:
            return None
        return self.sliders.mean

    @property
    def ties(self) -> int:
        return self.total_h2h_votes - self.wins - self.losses

    @property
    def fire_rate(self) -> float:
        """Weighted fire votes per vote received."""
        total = self.total_h2h_votes + self.sliders.count
        return self.fire_weight_sum / max(1, total)

    @property
    def reliability_factor(self) -> float:
        """Mean influence weight of the voters that touched this NFT (1.0 without votes)."""
        if self.influence_count == 0:
            return 1.0
        return self.influence_sum / self.influence_count

    def with_influence(self, weight: float) -> NftRating:
        return replace(
            self,
            influence_sum=self.influence_sum + weight,
            influence_count=self.influence_count + 1,
        )


@dataclass(frozen=True)
class UserRating:
    """Statistics for a single voter.

    Attributes:
        user_id: User identifier.
        sliders: Welford statistics over the user's raw slider values.
        reliability_score: Current reliability.
        reliability_count: Number of reliability updates applied.
        version: Optimistic concurrency version (None when not yet persisted).
    """

    user_id: str
    sliders: RunningStats = field(default_factory=RunningStats)
    reliability_score: float = 1.0
    reliability_count: int = 0
    version: int | None = None

    @classmethod
    def initial(cls, user_id: str, config: ScoringConfig) -> UserRating:
        return cls(user_id=user_id, reliability_score=config.reliability.initial)

    @property
    def slider_mean(self) -> float:
        return self.sliders.mean

    @property
    def slider_std(self) -> float:
        return self.sliders.std

    @property
    def slider_count(self) -> int:
        return self.sliders.count


@dataclass(frozen=True)
class ScoreRecord:
    """A published POA score.

    Attributes:
        nft_id: NFT identifier.
        poa_value: Composite score in [0, 100].
        confidence: Confidence in [0, 100).
        provisional: Whether the score rests on thin data.
        elo_component: Elo component (0-100).
        slider_component: Slider component (0-100).
        fire_component: Fire component (0-100).
        reliability_factor: Reliability multiplier applied.
        updated_at: When this score was published.
        version: Optimistic concurrency version.
    """

    nft_id: str
    poa_value: float
    confidence: float
    provisional: bool
    elo_component: float
    slider_component: float
    fire_component: float
    reliability_factor: float
    updated_at: datetime
    version: int = 1
