"""Bayesian Elo rating calculations for NFT head-to-head votes."""

from __future__ import annotations

from dataclasses import dataclass

VALID_OUTCOMES = (0.0, 0.5, 1.0)


@dataclass(frozen=True)
class EloUpdate:
    """Result of a single-sided Elo update.

    Attributes:
        mean: New Elo mean.
        uncertainty: New uncertainty (sigma).
        expected: Expected score used for the update.
        k_effective: K-factor actually applied.
    """

    mean: float
    uncertainty: float
    expected: float
    k_effective: float


def calculate_expected_score(mean_self: float, mean_opponent: float) -> float:
    """Calculate expected score for one side against an opponent.

    Uses the standard Elo formula:
    E = 1 / (1 + 10^((R_opp - R_self) / 400))

    Args:
        mean_self: Elo mean of the rated side.
        mean_opponent: Elo mean of the opponent.

    Returns:
        Expected score (0.0 to 1.0).
    """
    return 1.0 / (1.0 + 10 ** ((mean_opponent - mean_self) / 400))


def update_elo_bayesian(
    mean_self: float,
    uncertainty_self: float,
    mean_opponent: float,
    outcome: float,
    is_super_vote: bool = False,
    *,
    k_factor: float = 32.0,
    initial_uncertainty: float = 350.0,
    super_vote_multiplier: float = 2.0,
    uncertainty_floor: float = 60.0,
    uncertainty_decay: float = 0.97,
) -> EloUpdate:
    """Update one side's Elo mean and uncertainty after a head-to-head vote.

    The K-factor scales with the current uncertainty relative to the initial
    uncertainty, so new NFTs move quickly and established ones settle. Uncertainty
    decays toward the floor and never increases.

    Args:
        mean_self: Current Elo mean.
        uncertainty_self: Current uncertainty (must be positive).
        mean_opponent: Opponent's Elo mean before this vote.
        outcome: 1.0 for a win, 0.5 for a tie, 0.0 for a loss.
        is_super_vote: Whether the vote carries the super multiplier.
        k_factor: Base K-factor.
        initial_uncertainty: Uncertainty of a fresh NFT, used to scale K.
        super_vote_multiplier: K multiplier for super votes.
        uncertainty_floor: Lowest uncertainty reachable through updates.
        uncertainty_decay: Per-vote multiplicative uncertainty decay.

    Returns:
        EloUpdate with the new mean and uncertainty.

    Raises:
        ValueError: If outcome is not 0, 0.5 or 1, or uncertainty is not positive.
    """
    if outcome not in VALID_OUTCOMES:
        msg = f"Outcome must be one of {VALID_OUTCOMES}, got {outcome}"
        raise ValueError(msg)
    if uncertainty_self <= 0:
        msg = f"Uncertainty must be positive, got {uncertainty_self}"
        raise ValueError(msg)

    expected = calculate_expected_score(mean_self, mean_opponent)

    k_effective = k_factor * (uncertainty_self / initial_uncertainty)
    if is_super_vote:
        k_effective *= super_vote_multiplier

    new_mean = mean_self + k_effective * (outcome - expected)
    # Uncertainty already below the floor stays put rather than rising
    new_uncertainty = min(
        uncertainty_self, max(uncertainty_floor, uncertainty_self * uncertainty_decay)
    )

    return EloUpdate(
        mean=new_mean,
        uncertainty=new_uncertainty,
        expected=expected,
        k_effective=k_effective,
    )


def normalize_elo(mean: float, lower: float = 800.0, upper: float = 2000.0) -> float:
    """Map an Elo mean linearly onto 0-100, clamping outside [lower, upper]."""
    scaled = (mean - lower) / (upper - lower) * 100.0
    return max(0.0, min(100.0, scaled))
