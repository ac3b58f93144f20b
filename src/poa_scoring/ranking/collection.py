"""Collection Aesthetic Index (CAI): one score for a whole collection.

The index is driven by the trimmed mean of the members' published POA scores. High
spread across members costs a cohesion penalty, and a smaller coverage term rewards
collections where most NFTs are scored by many votes.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

from poa_scoring.core.config import CollectionConfig
from poa_scoring.core.errors import ComputationError

CAI_RANGES: list[tuple[str, float]] = [
    ("exceptional", 80.0),
    ("excellent", 70.0),
    ("good", 60.0),
    ("average", 40.0),
    ("below_average", 20.0),
    ("poor", 0.0),
]


@dataclass(frozen=True)
class CollectionMember:
    """An NFT as it contributes to its collection's index.

    Attributes:
        nft_id: NFT identifier.
        poa_value: Published POA score, None when the NFT has none yet.
        total_votes: Head-to-head votes plus slider ratings the NFT received.
    """

    nft_id: str
    poa_value: float | None
    total_votes: int = 0


@dataclass(frozen=True)
class AestheticStats:
    """Population statistics over the scored members."""

    count: int = 0
    mean: float = 0.0
    std: float = 0.0
    standard_error: float = 0.0
    trimmed_count: int = 0
    trimmed_mean: float = 0.0
    trimmed_std: float = 0.0


@dataclass(frozen=True)
class CoverageMetrics:
    """How much of the collection is scored, and how deeply."""

    coverage_factor: float = 0.0
    depth_factor: float = 0.0
    avg_votes_per_scored: float = 0.0
    coverage_score: float = 0.0


@dataclass(frozen=True)
class CollectionIndex:
    """A computed Collection Aesthetic Index.

    Attributes:
        collection: Collection name.
        cai_score: Final index in [0, 100].
        confidence: Integer confidence in [0, 100].
        provisional: Whether the index rests on thin coverage or low confidence.
        label: Named range the score falls in.
        stats: Aesthetic statistics over scored members.
        coverage: Coverage metrics.
        cohesion_penalty: Fraction taken off the trimmed mean for spread.
        effective_mean: Trimmed mean after the cohesion penalty.
        uncertainty_factor: Confidence part derived from the standard error.
        nft_count: Members in the collection.
        total_votes: Votes summed over all members.
        explanation: Human-readable summary.
    """

    collection: str
    cai_score: float
    confidence: int
    provisional: bool
    label: str
    stats: AestheticStats
    coverage: CoverageMetrics
    cohesion_penalty: float
    effective_mean: float
    uncertainty_factor: float
    nft_count: int
    total_votes: int
    explanation: str

    @property
    def scored_count(self) -> int:
        return self.stats.count


def _population(values: Sequence[float]) -> tuple[float, float]:
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return mean, math.sqrt(variance)


def calculate_aesthetic_stats(
    scores: Sequence[float], *, trim_fraction: float = 0.05, min_trim_count: int = 10
) -> AestheticStats:
    """Mean, population std and standard error, plus the same after trimming outliers.

    Trimming drops ``floor(n * trim_fraction)`` scores from each end, and only once
    there are at least ``min_trim_count`` scores. Without trimming the trimmed values
    equal the plain ones.
    """
    if not scores:
        return AestheticStats()

    mean, std = _population(scores)
    standard_error = std / math.sqrt(max(1, len(scores)))
    trimmed_mean, trimmed_std, trimmed_count = mean, std, len(scores)

    if len(scores) >= min_trim_count:
        cut = math.floor(len(scores) * trim_fraction)
        if cut > 0:
            kept = sorted(scores)[cut:-cut]
            if kept:
                trimmed_mean, trimmed_std = _population(kept)
                trimmed_count = len(kept)

    return AestheticStats(
        count=len(scores),
        mean=mean,
        std=std,
        standard_error=standard_error,
        trimmed_count=trimmed_count,
        trimmed_mean=trimmed_mean,
        trimmed_std=trimmed_std,
    )


def calculate_cohesion_penalty(
    std: float, *, full_penalty_std: float = 15.0, max_penalty: float = 0.30
) -> float:
    """Penalty growing linearly with spread, reaching ``max_penalty`` at ``full_penalty_std``."""
    return max_penalty * min(1.0, max(0.0, std) / full_penalty_std)


def calculate_coverage(
    total_nfts: int,
    scored_nfts: int,
    total_votes: int,
    *,
    target_votes_per_nft: float = 20.0,
    completeness_weight: float = 0.6,
    depth_weight: float = 0.4,
) -> CoverageMetrics:
    """Blend the scored share of the collection with vote depth into a 0-100 score."""
    if total_nfts <= 0 or scored_nfts <= 0:
        return CoverageMetrics()

    coverage_factor = scored_nfts / total_nfts
    avg_votes = total_votes / scored_nfts
    depth_factor = min(1.0, avg_votes / target_votes_per_nft)
    score = (completeness_weight * coverage_factor + depth_weight * depth_factor) * 100.0
    return CoverageMetrics(
        coverage_factor=coverage_factor,
        depth_factor=depth_factor,
        avg_votes_per_scored=avg_votes,
        coverage_score=round(score, 2),
    )


def calculate_collection_confidence(
    coverage: CoverageMetrics, standard_error: float, config: CollectionConfig
) -> tuple[int, float, bool]:
    """Return (confidence, uncertainty_factor, provisional) for a collection.

    The uncertainty part falls linearly from 1 to 0 as the standard error of the
    member scores grows to ``standard_error_scale``.
    """
    uncertainty = max(0.0, min(1.0, 1.0 - standard_error / config.standard_error_scale))
    blended = (
        config.confidence_coverage_weight * coverage.coverage_factor
        + config.confidence_depth_weight * coverage.depth_factor
        + config.confidence_uncertainty_weight * uncertainty
    )
    # Half-up, not banker's rounding.
    confidence = math.floor(100.0 * blended + 0.5)
    provisional = (
        confidence < config.provisional_confidence
        or coverage.coverage_factor < config.min_coverage
    )
    return confidence, uncertainty, provisional


def cai_label(score: float) -> str:
    for label, floor in CAI_RANGES:
        if score >= floor:
            return label
    return CAI_RANGES[-1][0]


def describe_collection_index(
    stats: AestheticStats,
    cohesion_penalty: float,
    coverage: CoverageMetrics,
    total_votes: int,
    provisional: bool,
) -> str:
    mean = stats.trimmed_mean
    if mean >= 60:
        quality = "Exceptional"
    elif mean >= 50:
        quality = "Above average"
    elif mean >= 40:
        quality = "Average"
    elif mean >= 30:
        quality = "Below average"
    else:
        quality = "Poor"

    if cohesion_penalty > 0.20:
        consistency = "low"
    elif cohesion_penalty > 0.10:
        consistency = "moderate"
    elif cohesion_penalty > 0.05:
        consistency = "good"
    else:
        consistency = "perfect"

    score = coverage.coverage_score
    if score < 40:
        depth = "poor"
    elif score < 60:
        depth = "moderate"
    elif score < 80:
        depth = "good"
    else:
        depth = "excellent"

    penalty = ""
    if cohesion_penalty > 0.01:
        penalty = f" with {round(cohesion_penalty * 100)}% cohesion penalty"
    suffix = " (provisional)" if provisional else ""
    return (
        f"{quality} aesthetic quality ({mean:.1f} mean){penalty}, {consistency} consistency, "
        f"{depth} evaluation coverage ({score:.1f}%). Based on {stats.count} scored NFTs "
        f"with {total_votes} total votes{suffix}."
    )


def compute_collection_index(
    collection: str, members: Sequence[CollectionMember], config: CollectionConfig
) -> CollectionIndex:
    """Compute the Collection Aesthetic Index for ``members``.

    Args:
        collection: Collection name, used in the result and in error messages.
        members: Every active NFT in the collection, scored or not.
        config: Collection index settings.

    Returns:
        CollectionIndex with scores rounded to 2 decimals.

    Raises:
        ComputationError: If the collection size is out of bounds, no member is
            scored, or a member score is not a finite value in [0, 100].
    """
    if not config.min_collection_size <= len(members) <= config.max_collection_size:
        raise ComputationError(
            collection,
            f"collection has {len(members)} NFTs, expected between "
            f"{config.min_collection_size} and {config.max_collection_size}",
        )
    scores = [m.poa_value for m in members if m.poa_value is not None]
    if not scores:
        raise ComputationError(collection, "no NFT in the collection has a published score")
    for member in members:
        value = member.poa_value
        if value is not None and not (math.isfinite(value) and 0.0 <= value <= 100.0):
            raise ComputationError(collection, f"{member.nft_id} has POA {value!r}")

    stats = calculate_aesthetic_stats(
        scores, trim_fraction=config.trim_fraction, min_trim_count=config.min_trim_count
    )
    penalty = calculate_cohesion_penalty(
        stats.trimmed_std,
        full_penalty_std=config.full_penalty_std,
        max_penalty=config.max_cohesion_penalty,
    )
    total_votes = sum(m.total_votes for m in members)
    coverage = calculate_coverage(
        len(members),
        stats.count,
        total_votes,
        target_votes_per_nft=config.target_votes_per_nft,
        completeness_weight=config.completeness_weight,
        depth_weight=config.depth_weight,
    )
    confidence, uncertainty, provisional = calculate_collection_confidence(
        coverage, stats.standard_error, config
    )
    effective_mean = stats.trimmed_mean * (1.0 - penalty)
    cai = config.mean_weight * effective_mean + config.coverage_weight * coverage.coverage_score
    cai = round(max(0.0, min(100.0, cai)), 2)

    return CollectionIndex(
        collection=collection,
        cai_score=cai,
        confidence=confidence,
        provisional=provisional,
        label=cai_label(cai),
        stats=stats,
        coverage=coverage,
        cohesion_penalty=round(penalty, 4),
        effective_mean=round(effective_mean, 2),
        uncertainty_factor=uncertainty,
        nft_count=len(members),
        total_votes=total_votes,
        explanation=describe_collection_index(
            stats, penalty, coverage, total_votes, provisional
        ),
    )
