"""Voter reliability updates and influence weights."""

from __future__ import annotations


def update_reliability_score(
    current: float,
    agreed: bool,
    weight: float = 1.0,
    *,
    alpha: float = 0.1,
    agree_target: float = 1.4,
    floor: float = 0.5,
    ceiling: float = 2.0,
) -> float:
    """Move a voter's reliability toward a target based on consensus agreement.

    r' = r + alpha * weight * (target - r), where the target is ``agree_target`` on
    agreement and ``floor`` on disagreement. The result is clamped to [floor, ceiling].

    Args:
        current: Current reliability score.
        agreed: Whether the vote agreed with consensus.
        weight: Strength of the consensus signal (clamped to 0-1).
        alpha: Learning rate.
        agree_target: Reliability approached by agreeing voters.
        floor: Minimum reliability.
        ceiling: Maximum reliability.

    Returns:
        Updated reliability score.
    """
    weight = max(0.0, min(1.0, weight))
    target = agree_target if agreed else floor
    updated = current + alpha * weight * (target - current)
    return max(floor, min(ceiling, updated))


def influence_weight(reliability: float, *, floor: float = 0.5, ceiling: float = 2.0) -> float:
    """Weight applied to a voter's contribution.

    Bounded to [floor, ceiling]: a stored score below the floor still counts at the
    floor, never at zero.
    """
    return max(floor, min(ceiling, reliability))
