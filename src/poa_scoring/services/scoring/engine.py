"""Score computation: NFT statistics in, candidate score out."""

from __future__ import annotations

from dataclasses import dataclass

from poa_scoring.core.config import ScoringConfig
from poa_scoring.ranking.composite import calculate_fire_component, compute_poa_v2
from poa_scoring.ranking.records import NftRating


@dataclass(frozen=True)
class ScoreCandidate:
    """A freshly computed, not yet published score.

    Attributes:
        nft_id: NFT identifier.
        poa_value: Composite score in [0, 100].
        confidence: Confidence in [0, 100).
        provisional: True when the score rests on thin data.
        elo_component: Elo component (0-100).
        slider_component: Slider component (0-100).
        fire_component: Fire component (0-100).
        reliability_factor: Reliability multiplier applied.
        h2h_votes: Head-to-head votes behind the score.
        slider_count: Slider ratings behind the score.
    """

    nft_id: str
    poa_value: float
    confidence: float
    provisional: bool
    elo_component: float
    slider_component: float
    fire_component: float
    reliability_factor: float
    h2h_votes: int
    slider_count: int


def compute_score(stats: NftRating, config: ScoringConfig) -> ScoreCandidate:
    """Compute a candidate score from an NFT's statistics.

    Pure and deterministic: identical statistics always give an identical candidate.
    An NFT without slider ratings gets the neutral slider component, never zero.

    Args:
        stats: Latest committed NFT statistics.
        config: Scoring configuration.

    Returns:
        ScoreCandidate ready for the publish gate.

    Raises:
        ComputationError: If the statistics produce a non-finite score.
    """
    slider_mean = stats.slider_mean
    slider_component = slider_mean if slider_mean is not None else config.sliders.neutral_component
    fire_component = calculate_fire_component(stats.fire_rate, config.fire.saturation)
    reliability_factor = max(
        config.reliability.min,
        min(config.reliability.factor_ceiling, stats.reliability_factor),
    )

    result = compute_poa_v2(
        stats.elo_mean,
        stats.elo_uncertainty,
        slider_component,
        fire_component,
        reliability_factor,
        slider_count=stats.slider_count,
        config=config,
        nft_id=stats.nft_id,
    )
    provisional = (
        stats.slider_count == 0
        or stats.total_h2h_votes == 0
        or result.confidence < config.publish.provisional_confidence
    )

    return ScoreCandidate(
        nft_id=stats.nft_id,
        poa_value=result.poa_v2,
        confidence=result.confidence,
        provisional=provisional,
        elo_component=result.elo_component,
        slider_component=result.slider_component,
        fire_component=result.fire_component,
        reliability_factor=result.reliability_factor,
        h2h_votes=stats.total_h2h_votes,
        slider_count=stats.slider_count,
    )
