"""Slider normalization and streaming statistics."""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class RunningStats:
    """Welford running mean/variance accumulator.

    Immutable: ``push`` and ``remove`` return a new instance, which keeps the
    vote fold free of in-place mutation.

    Attributes:
        count: Number of observations.
        mean: Running mean (0.0 when empty).
        m2: Sum of squared deviations from the mean.
    """

    count: int = 0
    mean: float = 0.0
    m2: float = 0.0

    @classmethod
    def from_values(cls, values: Iterable[float]) -> RunningStats:
        stats = cls()
        for value in values:
            stats = stats.push(value)
        return stats

    def push(self, value: float) -> RunningStats:
        """Fold one observation into the statistics."""
        count = self.count + 1
        delta = value - self.mean
        mean = self.mean + delta / count
        m2 = self.m2 + delta * (value - mean)
        return RunningStats(count=count, mean=mean, m2=max(0.0, m2))

    def remove(self, value: float) -> RunningStats:
        """Reverse a previous ``push`` of ``value``.

        Raises:
            ValueError: If there are no observations to remove.
        """
        if self.count <= 0:
            msg = "Cannot remove a value from empty statistics"
            raise ValueError(msg)
        if self.count == 1:
            return RunningStats()
        count = self.count - 1
        mean = (self.count * self.mean - value) / count
        m2 = self.m2 - (value - mean) * (value - self.mean)
        return RunningStats(count=count, mean=mean, m2=max(0.0, m2))

    @property
    def variance(self) -> float:
        """Sample variance (n - 1); 0.0 with fewer than two observations."""
        if self.count < 2:
            return 0.0
        return self.m2 / (self.count - 1)

    @property
    def std(self) -> float:
        return math.sqrt(self.variance)


def normalize_slider_value(
    raw_value: float,
    user_mean: float,
    user_std: float,
    z_clamp: float = 2.5,
) -> float:
    """Normalize a raw slider value against the rater's own distribution.

    The value is converted to a z-score, clamped to +/- ``z_clamp`` and mapped
    linearly onto 0-100, so a rating at the user's mean becomes 50.

    Args:
        raw_value: Raw slider value (0-100).
        user_mean: Rater's mean slider value.
        user_std: Rater's slider standard deviation (must be positive).
        z_clamp: Maximum absolute z-score.

    Returns:
        Normalized value in [0, 100].

    Raises:
        ValueError: If user_std is not positive.
    """
    if user_std <= 0:
        msg = f"User standard deviation must be positive, got {user_std}"
        raise ValueError(msg)

    z_score = (raw_value - user_mean) / user_std
    z_score = max(-z_clamp, min(z_clamp, z_score))
    normalized = (z_score + z_clamp) / (2 * z_clamp) * 100.0
    return max(0.0, min(100.0, normalized))


def user_calibration(
    stats: RunningStats,
    *,
    default_mean: float = 50.0,
    default_std: float = 15.0,
    min_std: float = 5.0,
    min_ratings: int = 2,
) -> tuple[float, float]:
    """Return the (mean, std) pair used to normalize a user's next rating.

    Users with too few ratings are calibrated against the defaults. Otherwise their
    own mean is used with the standard deviation floored at ``min_std`` so a user who
    always gives the same value does not produce infinite z-scores.
    """
    if stats.count < min_ratings:
        return default_mean, default_std
    return stats.mean, max(min_std, stats.std)
