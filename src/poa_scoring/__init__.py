"""POA Scoring Engine.

Turns head-to-head votes, slider ratings and fire boosts into a bounded Proof of
Aesthetic score per NFT, published only once enough data supports it.
"""

from poa_scoring.core.config import ScoringConfig, load_config

__version__ = "0.1.0"
__all__ = [
    "ScoringConfig",
    "__version__",
    "load_config",
]
