from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


class NftStatsRow(SQLModel, table=True):
    """Persisted rating statistics for one NFT."""

    __tablename__ = "nft_stats"

    nft_id: str = Field(primary_key=True)
    elo_mean: float
    elo_uncertainty: float
    total_h2h_votes: int = 0
    wins: int = 0
    losses: int = 0
    slider_count: int = 0
    slider_mean: float = 0.0
    slider_m2: float = 0.0
    fire_count: int = 0
    fire_weight_sum: float = 0.0
    influence_sum: float = 0.0
    influence_count: int = 0
    collection: str | None = Field(default=None, index=True)
    active: bool = True
    version: int = 1
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
