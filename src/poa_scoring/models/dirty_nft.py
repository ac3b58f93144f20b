from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


class DirtyNftRow(SQLModel, table=True):
    """NFT waiting for background score recomputation."""

    __tablename__ = "dirty_nfts"

    nft_id: str = Field(primary_key=True)
    priority: int = Field(default=0, index=True)
    reason: str = "vote"
    marked_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    attempts: int = 0
    generation: int = 1
