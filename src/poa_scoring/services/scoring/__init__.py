"""Score computation, publish gate and recompute orchestration."""

from poa_scoring.services.scoring.engine import ScoreCandidate, compute_score
from poa_scoring.services.scoring.gate import (
    GateDecision,
    GateReason,
    GateState,
    evaluate_publish_gate,
)
from poa_scoring.services.scoring.service import (
    AwaitingData,
    RecomputeResult,
    Scored,
    ScoreView,
    ScoringService,
)
from poa_scoring.services.scoring.signals import ScorePublished, ScoreSignalBus
from poa_scoring.services.scoring.worker import BatchSummary, DirtyRecomputeWorker

__all__ = [
    "AwaitingData",
    "BatchSummary",
    "DirtyRecomputeWorker",
    "GateDecision",
    "GateReason",
    "GateState",
    "RecomputeResult",
    "ScoreCandidate",
    "ScorePublished",
    "ScoreSignalBus",
    "ScoreView",
    "Scored",
    "ScoringService",
    "compute_score",
    "evaluate_publish_gate",
]
