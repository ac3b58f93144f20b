"""Fire transform, confidence and the POA composite formula."""

from __future__ import annotations

import math
from dataclasses import dataclass

from poa_scoring.core.config import ScoringConfig
from poa_scoring.core.errors import ComputationError
from poa_scoring.ranking.elo import normalize_elo


@dataclass(frozen=True)
class PoaResult:
    """Output of the POA composite.

    Attributes:
        poa_v2: Composite score in [0, 100].
        confidence: Confidence in [0, 100).
        elo_component: Elo mean normalized to [0, 100].
        slider_component: Slider component used.
        fire_component: Fire component used.
        reliability_factor: Reliability multiplier used.
    """

    poa_v2: float
    confidence: float
    elo_component: float
    slider_component: float
    fire_component: float
    reliability_factor: float


def calculate_fire_component(fire_rate: float, saturation: float = 5.0) -> float:
    """Map a fire rate onto 0-100 with a saturating curve.

    100 * (1 - exp(-saturation * rate)): monotonic, 0 at a rate of 0, approaching 100.
    """
    rate = max(0.0, fire_rate)
    return 100.0 * (1.0 - math.exp(-saturation * rate))


def calculate_confidence(
    elo_uncertainty: float,
    slider_count: int,
    *,
    initial_uncertainty: float = 350.0,
    uncertainty_weight: float = 0.7,
    slider_half_count: int = 5,
) -> float:
    """Blend Elo certainty and slider sample size into a 0-100 confidence.

    Both parts are asymptotic, so the result stays below 100 while uncertainty is
    positive.
    """
    elo_part = max(0.0, min(1.0, 1.0 - elo_uncertainty / initial_uncertainty))
    n = max(0, slider_count)
    slider_part = n / (n + slider_half_count)
    return 100.0 * (uncertainty_weight * elo_part + (1.0 - uncertainty_weight) * slider_part)


def _require_finite(nft_id: str | None, **values: float) -> None:
    for name, value in values.items():
        if value is None or not math.isfinite(value):
            raise ComputationError(nft_id, f"{name} is not finite ({value!r})")


def compute_poa_v2(
    elo_mean: float,
    elo_uncertainty: float,
    slider_component: float,
    fire_component: float,
    reliability_factor: float,
    *,
    slider_count: int = 0,
    config: ScoringConfig | None = None,
    nft_id: str | None = None,
) -> PoaResult:
    """Compute the bounded POA composite and its confidence.

    poa = clamp((w_elo * elo + w_slider * slider + w_fire * fire) * reliability, 0, 100)

    Args:
        elo_mean: NFT Elo mean.
        elo_uncertainty: NFT Elo uncertainty (must be positive).
        slider_component: Normalized slider component (0-100).
        fire_component: Fire component (0-100).
        reliability_factor: Aggregate voter reliability multiplier.
        slider_count: Number of slider ratings, used for confidence.
        config: Scoring configuration (defaults when omitted).
        nft_id: NFT identifier, only used in error messages.

    Returns:
        PoaResult with values rounded to 2 decimals.

    Raises:
        ComputationError: On non-finite inputs or outputs, or non-positive uncertainty.
    """
    config = config or ScoringConfig()
    _require_finite(
        nft_id,
        elo_mean=elo_mean,
        elo_uncertainty=elo_uncertainty,
        slider_component=slider_component,
        fire_component=fire_component,
        reliability_factor=reliability_factor,
    )
    if elo_uncertainty <= 0:
        raise ComputationError(nft_id, f"elo_uncertainty must be positive ({elo_uncertainty})")

    elo_component = normalize_elo(elo_mean, config.elo.normalize_min, config.elo.normalize_max)
    weights = config.weights
    weighted = (
        weights.elo * elo_component
        + weights.slider * slider_component
        + weights.fire * fire_component
    )
    poa = max(0.0, min(100.0, weighted * reliability_factor))
    confidence = calculate_confidence(
        elo_uncertainty,
        slider_count,
        initial_uncertainty=config.elo.initial_uncertainty,
        uncertainty_weight=config.confidence.uncertainty_weight,
        slider_half_count=config.confidence.slider_half_count,
    )
    _require_finite(nft_id, poa_v2=poa, confidence=confidence)

    return PoaResult(
        poa_v2=round(poa, 2),
        confidence=round(confidence, 2),
        elo_component=round(elo_component, 2),
        slider_component=round(slider_component, 2),
        fire_component=round(fire_component, 2),
        reliability_factor=round(reliability_factor, 4),
    )
