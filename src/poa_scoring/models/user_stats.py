from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


class UserStatsRow(SQLModel, table=True):
    """Persisted slider calibration and reliability for one voter."""

    __tablename__ = "user_stats"

    user_id: str = Field(primary_key=True)
    slider_count: int = 0
    slider_mean: float = 0.0
    slider_m2: float = 0.0
    reliability_score: float = 1.0
    reliability_count: int = 0
    version: int = 1
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
