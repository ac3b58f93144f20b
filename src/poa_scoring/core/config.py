"""Configuration schemas and loading for the POA scoring engine."""

from __future__ import annotations

import math
from pathlib import Path
from typing import Any

import pydantic
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from poa_scoring.core.errors import ConfigurationError, ValidationError

DEFAULT_DATABASE_URL = "sqlite:///poa_scoring.db"


class EloConfig(BaseModel):
    """Bayesian Elo settings.

    Attributes:
        initial_mean: Starting Elo mean for newly registered NFTs.
        initial_uncertainty: Starting uncertainty (sigma) for newly registered NFTs.
        k_factor: Base K-factor, scaled by the current uncertainty ratio.
        super_vote_multiplier: K multiplier applied to super votes.
        uncertainty_floor: Lowest uncertainty reachable through vote updates.
        uncertainty_decay: Multiplicative decay applied per head-to-head vote.
        normalize_min: Elo mean mapped to a component of 0.
        normalize_max: Elo mean mapped to a component of 100.
    """

    initial_mean: float = 1200.0
    initial_uncertainty: float = Field(default=350.0, gt=0)
    k_factor: float = Field(default=32.0, gt=0)
    super_vote_multiplier: float = Field(default=2.0, ge=1.0)
    uncertainty_floor: float = Field(default=60.0, gt=0)
    uncertainty_decay: float = Field(default=0.97, gt=0, le=1.0)
    normalize_min: float = 800.0
    normalize_max: float = 2000.0

    @model_validator(mode="after")
    def validate_ranges(self) -> EloConfig:
        if self.uncertainty_floor > self.initial_uncertainty:
            msg = "uncertainty_floor cannot exceed initial_uncertainty"
            raise ValueError(msg)
        if self.normalize_max <= self.normalize_min:
            msg = "normalize_max must be greater than normalize_min"
            raise ValueError(msg)
        return self


class SliderConfig(BaseModel):
    """Slider normalization settings."""

    default_user_mean: float = Field(default=50.0, ge=0, le=100)
    default_user_std: float = Field(default=15.0, gt=0)
    min_user_std: float = Field(default=5.0, gt=0)
    z_score_clamp: float = Field(default=2.5, gt=0)
    neutral_component: float = Field(default=50.0, ge=0, le=100)
    agreement_tolerance: float = Field(default=20.0, ge=0, le=100)
    calibration_min_ratings: int = Field(default=2, ge=1)


class ReliabilityConfig(BaseModel):
    """Voter reliability settings.

    Attributes:
        initial: Reliability assigned to a new user.
        min: Floor for both stored reliability and influence weight.
        max: Ceiling for both stored reliability and influence weight.
        agree_target: Value reliability moves toward on consensus agreement.
        alpha: Exponential moving average rate for reliability updates.
        factor_ceiling: Upper bound of the reliability factor applied to the composite.
    """

    initial: float = 1.0
    min: float = Field(default=0.5, gt=0)
    max: float = 2.0
    agree_target: float = 1.4
    alpha: float = Field(default=0.1, gt=0, le=1.0)
    factor_ceiling: float = Field(default=1.0, gt=0)

    @model_validator(mode="after")
    def validate_bounds(self) -> ReliabilityConfig:
        if not self.min <= self.initial <= self.max:
            msg = "reliability.initial must lie within [min, max]"
            raise ValueError(msg)
        if not self.min <= self.agree_target <= self.max:
            msg = "reliability.agree_target must lie within [min, max]"
            raise ValueError(msg)
        return self


class FireConfig(BaseModel):
    """Fire component settings."""

    saturation: float = Field(default=5.0, gt=0)


class WeightsConfig(BaseModel):
    """Composite weights for the POA formula. Must sum to 1."""

    elo: float = Field(default=0.5, ge=0)
    slider: float = Field(default=0.35, ge=0)
    fire: float = Field(default=0.15, ge=0)

    @model_validator(mode="after")
    def validate_sum(self) -> WeightsConfig:
        total = self.elo + self.slider + self.fire
        if not math.isclose(total, 1.0, abs_tol=1e-6):
            msg = f"Composite weights must sum to 1.0 (got {total:.4f})"
            raise ValueError(msg)
        return self


class ConfidenceConfig(BaseModel):
    """Confidence blending settings.

    Confidence = 100 * (uncertainty_weight * elo_part + (1 - uncertainty_weight) * slider_part)
    where elo_part shrinks with uncertainty and slider_part = n / (n + slider_half_count).
    """

    uncertainty_weight: float = Field(default=0.7, ge=0, le=1.0)
    slider_half_count: int = Field(default=5, ge=1)


class PublishConfig(BaseModel):
    """Publish gate thresholds."""

    min_h2h_matchups: int = Field(default=5, ge=0)
    min_unique_opponents: int = Field(default=3, ge=0)
    min_slider_ratings: int = Field(default=2, ge=0)
    min_unique_slider_users: int = Field(default=2, ge=0)
    min_poa_change: float = Field(default=0.5, ge=0)
    confidence_tier_boundaries: list[float] = Field(
        default_factory=lambda: [20.0, 30.0, 40.0, 50.0, 60.0, 70.0, 80.0, 90.0]
    )
    grace_period_seconds: float = Field(default=300.0, ge=0)
    provisional_confidence: float = Field(default=30.0, ge=0, le=100)

    @field_validator("confidence_tier_boundaries")
    @classmethod
    def validate_boundaries(cls, v: list[float]) -> list[float]:
        if any(b <= a for a, b in zip(v, v[1:], strict=False)):
            msg = "confidence_tier_boundaries must be strictly increasing"
            raise ValueError(msg)
        return v


class CollectionConfig(BaseModel):
    """Collection Aesthetic Index (CAI) settings.

    cai = mean_weight * trimmed_mean * (1 - cohesion_penalty) + coverage_weight * coverage
    """

    mean_weight: float = Field(default=0.8, ge=0)
    coverage_weight: float = Field(default=0.2, ge=0)
    trim_fraction: float = Field(default=0.05, ge=0, lt=0.5)
    min_trim_count: int = Field(default=10, ge=1)
    max_cohesion_penalty: float = Field(default=0.30, ge=0, le=1.0)
    full_penalty_std: float = Field(default=15.0, gt=0)
    target_votes_per_nft: float = Field(default=20.0, gt=0)
    completeness_weight: float = Field(default=0.6, ge=0)
    depth_weight: float = Field(default=0.4, ge=0)
    confidence_coverage_weight: float = Field(default=0.5, ge=0)
    confidence_depth_weight: float = Field(default=0.3, ge=0)
    confidence_uncertainty_weight: float = Field(default=0.2, ge=0)
    standard_error_scale: float = Field(default=10.0, gt=0)
    provisional_confidence: float = Field(default=70.0, ge=0, le=100)
    min_coverage: float = Field(default=0.2, ge=0, le=1.0)
    min_collection_size: int = Field(default=2, ge=1)
    max_collection_size: int = Field(default=10_000, ge=1)

    @model_validator(mode="after")
    def validate_weights(self) -> CollectionConfig:
        groups = {
            "mean_weight + coverage_weight": self.mean_weight + self.coverage_weight,
            "completeness_weight + depth_weight": self.completeness_weight + self.depth_weight,
            "confidence weights": self.confidence_coverage_weight
            + self.confidence_depth_weight
            + self.confidence_uncertainty_weight,
        }
        for name, total in groups.items():
            if not math.isclose(total, 1.0, abs_tol=1e-6):
                msg = f"Collection {name} must sum to 1.0 (got {total:.4f})"
                raise ValueError(msg)
        if self.max_collection_size < self.min_collection_size:
            msg = "max_collection_size must be at least min_collection_size"
            raise ValueError(msg)
        return self


class ProcessingConfig(BaseModel):
    """Vote processing and recompute settings."""

    max_retries: int = Field(default=5, ge=1)
    backoff_initial_seconds: float = Field(default=0.01, ge=0)
    backoff_max_seconds: float = Field(default=0.5, ge=0)
    lock_timeout_seconds: float = Field(default=5.0, gt=0)
    auto_register_users: bool = True
    recompute_inline: bool = True
    worker_batch_size: int = Field(default=50, ge=1)
    worker_concurrency: int = Field(default=4, ge=1)


class ScoringConfig(BaseModel):
    """Complete scoring engine configuration."""

    elo: EloConfig = Field(default_factory=EloConfig)
    sliders: SliderConfig = Field(default_factory=SliderConfig)
    reliability: ReliabilityConfig = Field(default_factory=ReliabilityConfig)
    fire: FireConfig = Field(default_factory=FireConfig)
    weights: WeightsConfig = Field(default_factory=WeightsConfig)
    confidence: ConfidenceConfig = Field(default_factory=ConfidenceConfig)
    publish: PublishConfig = Field(default_factory=PublishConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    collection: CollectionConfig = Field(default_factory=CollectionConfig)
    database_url: str = DEFAULT_DATABASE_URL

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if not v or not v.strip():
            msg = "database_url cannot be empty"
            raise ValueError(msg)
        return v

    def confidence_tier(self, confidence: float) -> int:
        """Return the index of the confidence tier containing ``confidence``.

        The tier is the number of boundaries at or below the value, so with the default
        boundaries 19.9 is tier 0 and 20.0 is tier 1.
        """
        boundaries = self.publish.confidence_tier_boundaries
        return sum(1 for boundary in boundaries if confidence >= boundary)


def load_config(path: str | Path) -> ScoringConfig:
    """Load and validate configuration from YAML file.

    Args:
        path: Path to YAML configuration file.

    Returns:
        Validated ScoringConfig instance.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ConfigurationError: If the file is not a YAML mapping.
        ValidationError: If a setting is invalid.
    """
    config_path = Path(path)
    if not config_path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with config_path.open() as f:
        try:
            data: Any = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Could not parse {config_path}", "Check the file is valid YAML."
            ) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Expected a mapping at the top of {config_path}",
            "Use section keys such as 'elo:', 'weights:' and 'publish:'.",
        )

    try:
        return ScoringConfig.model_validate(data)
    except pydantic.ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or "<root>"
        raise ValidationError(field, error["msg"]) from e
