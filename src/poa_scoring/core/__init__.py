"""Core configuration and utilities for the POA scoring engine."""

from poa_scoring.core.config import (
    DEFAULT_DATABASE_URL,
    CollectionConfig,
    ConfidenceConfig,
    EloConfig,
    FireConfig,
    ProcessingConfig,
    PublishConfig,
    ReliabilityConfig,
    ScoringConfig,
    SliderConfig,
    WeightsConfig,
    load_config,
)
from poa_scoring.core.errors import (
    ComputationError,
    ConfigurationError,
    InactiveNftError,
    InvalidVoteShape,
    LockTimeoutError,
    NotFoundError,
    RetryableVoteError,
    ScoringError,
    ValidationError,
    VersionConflict,
)
from poa_scoring.core.locks import KeyedLock

__all__ = [
    "DEFAULT_DATABASE_URL",
    "CollectionConfig",
    "ConfidenceConfig",
    "EloConfig",
    "FireConfig",
    "ProcessingConfig",
    "PublishConfig",
    "ReliabilityConfig",
    "ScoringConfig",
    "SliderConfig",
    "WeightsConfig",
    "KeyedLock",
    "load_config",
    "ComputationError",
    "ConfigurationError",
    "InactiveNftError",
    "InvalidVoteShape",
    "LockTimeoutError",
    "NotFoundError",
    "RetryableVoteError",
    "ScoringError",
    "ValidationError",
    "VersionConflict",
]
