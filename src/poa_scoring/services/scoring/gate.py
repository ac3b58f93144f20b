"""Publish gate: decides whether a candidate score replaces the published one."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from poa_scoring.core.config import ScoringConfig
from poa_scoring.ranking.records import Progress, ScoreRecord
from poa_scoring.services.scoring.engine import ScoreCandidate


class GateState(StrEnum):
    NO_SCORE = "no_score"
    AWAITING_DATA = "awaiting_data"
    PUBLISHED = "published"


class GateReason(StrEnum):
    NO_DATA = "no_data"
    MINIMUMS_UNMET = "minimums_unmet"
    FIRST_PUBLISH = "first_publish"
    GRACE_PERIOD = "grace_period"
    POA_CHANGED = "poa_changed"
    TIER_CHANGED = "tier_changed"
    NO_SIGNIFICANT_CHANGE = "no_significant_change"


@dataclass(frozen=True)
class GateDecision:
    """Outcome of evaluating the publish gate.

    Attributes:
        publish: Whether the candidate should be written.
        state: Gate state after this decision.
        reason: Why the gate decided as it did.
        remaining: Missing data per requirement (all zero once minimums are met).
    """

    publish: bool
    state: GateState
    reason: GateReason
    remaining: dict[str, int]


def evaluate_publish_gate(
    candidate: ScoreCandidate,
    progress: Progress,
    published: ScoreRecord | None,
    now: datetime,
    config: ScoringConfig,
) -> GateDecision:
    """Decide whether ``candidate`` should overwrite the published score.

    Order of checks: data minimums, first publish, a significant POA change or
    confidence tier crossing, then the grace period. A change held back by the grace
    period reports GRACE_PERIOD so callers can retry it later. An existing published
    score is never removed, even when the minimums stop being met.

    Args:
        candidate: Freshly computed score.
        progress: Data gathered for the NFT.
        published: Currently published score, if any.
        now: Current time (timezone-aware).
        config: Scoring configuration.

    Returns:
        GateDecision; never raises for insufficient data.
    """
    publish = config.publish
    remaining = progress.remaining(publish)
    held_state = GateState.PUBLISHED if published is not None else GateState.AWAITING_DATA

    if published is None and not progress.has_data:
        return GateDecision(False, GateState.NO_SCORE, GateReason.NO_DATA, remaining)

    if not progress.meets(publish):
        return GateDecision(False, held_state, GateReason.MINIMUMS_UNMET, remaining)

    if published is None:
        return GateDecision(True, GateState.PUBLISHED, GateReason.FIRST_PUBLISH, remaining)

    # Scores carry two decimals; compare the change at that precision
    if round(abs(candidate.poa_value - published.poa_value), 2) >= publish.min_poa_change:
        reason = GateReason.POA_CHANGED
    elif config.confidence_tier(candidate.confidence) != config.confidence_tier(
        published.confidence
    ):
        reason = GateReason.TIER_CHANGED
    else:
        return GateDecision(
            False, GateState.PUBLISHED, GateReason.NO_SIGNIFICANT_CHANGE, remaining
        )

    elapsed = (now - published.updated_at).total_seconds()
    if elapsed < publish.grace_period_seconds:
        return GateDecision(False, GateState.PUBLISHED, GateReason.GRACE_PERIOD, remaining)

    return GateDecision(True, GateState.PUBLISHED, reason, remaining)
