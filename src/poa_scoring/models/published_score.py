from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


class PublishedScoreRow(SQLModel, table=True):
    """Score currently exposed to consumers for one NFT."""

    __tablename__ = "published_scores"

    nft_id: str = Field(primary_key=True)
    poa_value: float = Field(index=True)
    confidence: float
    provisional: bool = False
    elo_component: float
    slider_component: float
    fire_component: float
    reliability_factor: float
    version: int = 1
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
