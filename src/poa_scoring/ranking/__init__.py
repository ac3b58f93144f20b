"""Rating primitives for the POA scoring engine.

Provides the Bayesian Elo update, slider normalization with Welford statistics,
voter reliability, the POA composite formula and the Collection Aesthetic Index.
"""

from __future__ import annotations

from poa_scoring.ranking.collection import (
    CollectionIndex,
    CollectionMember,
    compute_collection_index,
)
from poa_scoring.ranking.composite import (
    PoaResult,
    calculate_confidence,
    calculate_fire_component,
    compute_poa_v2,
)
from poa_scoring.ranking.elo import (
    EloUpdate,
    calculate_expected_score,
    normalize_elo,
    update_elo_bayesian,
)
from poa_scoring.ranking.records import NftRating, Progress, ScoreRecord, UserRating
from poa_scoring.ranking.reliability import influence_weight, update_reliability_score
from poa_scoring.ranking.sliders import RunningStats, normalize_slider_value, user_calibration

__all__ = [
    "CollectionIndex",
    "CollectionMember",
    "EloUpdate",
    "NftRating",
    "PoaResult",
    "Progress",
    "RunningStats",
    "ScoreRecord",
    "UserRating",
    "calculate_confidence",
    "calculate_expected_score",
    "calculate_fire_component",
    "compute_collection_index",
    "compute_poa_v2",
    "influence_weight",
    "normalize_elo",
    "normalize_slider_value",
    "update_elo_bayesian",
    "update_reliability_score",
    "user_calibration",
]
