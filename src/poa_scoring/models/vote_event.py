from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


class VoteEventRow(SQLModel, table=True):
    """Append-only record of an applied vote event."""

    __tablename__ = "vote_events"

    sequence: int | None = Field(default=None, primary_key=True)
    event_id: str = Field(unique=True, index=True)
    kind: str = Field(index=True)
    voter_id: str = Field(index=True)
    nft_a_id: str = Field(index=True)
    nft_b_id: str | None = Field(default=None, index=True)
    winner_id: str | None = None
    is_tie: bool = False
    slider_value: float | None = None
    is_fire_vote: bool = False
    is_super_vote: bool = False
    retracts_event_id: str | None = Field(default=None, unique=True)
    normalized_slider: float | None = None
    influence_weight: float = 1.0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
