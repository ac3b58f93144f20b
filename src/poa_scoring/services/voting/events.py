"""Vote event schema and shape validation."""

from __future__ import annotations

import math
import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from poa_scoring.core.errors import InvalidVoteShape


class VoteKind(StrEnum):
    HEAD_TO_HEAD = "head_to_head"
    SLIDER = "slider"
    RETRACTION = "retraction"


class VoteEvent(BaseModel):
    """Immutable vote fact submitted by a user.

    Exactly one shape is populated:
    - head-to-head: ``nft_a_id``, ``nft_b_id`` and either ``winner_id`` or ``is_tie``
    - slider: ``nft_a_id`` and ``slider_value``
    - retraction: ``nft_a_id`` and ``retracts_event_id`` of an earlier slider rating
    """

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    voter_id: str
    nft_a_id: str
    nft_b_id: str | None = None
    winner_id: str | None = None
    is_tie: bool = False
    slider_value: float | None = None
    is_fire_vote: bool = False
    is_super_vote: bool = False
    retracts_event_id: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("event_id", "voter_id", "nft_a_id")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            msg = "Identifiers cannot be empty"
            raise ValueError(msg)
        return v

    @field_validator("timestamp")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)

    @classmethod
    def parse(cls, data: dict[str, Any]) -> VoteEvent:
        """Build and shape-check an event from raw data.

        Raises:
            InvalidVoteShape: If fields are missing, mistyped or inconsistent.
        """
        try:
            event = cls.model_validate(data)
        except pydantic.ValidationError as e:
            errors = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise InvalidVoteShape(errors) from e
        validate_vote_event(event)
        return event

    @property
    def kind(self) -> VoteKind:
        if self.retracts_event_id is not None:
            return VoteKind.RETRACTION
        if self.nft_b_id is not None:
            return VoteKind.HEAD_TO_HEAD
        return VoteKind.SLIDER

    @property
    def nft_ids(self) -> tuple[str, ...]:
        """NFTs whose statistics this event touches."""
        if self.nft_b_id is not None:
            return (self.nft_a_id, self.nft_b_id)
        return (self.nft_a_id,)

    @property
    def loser_id(self) -> str | None:
        if self.winner_id is None:
            return None
        return self.nft_b_id if self.winner_id == self.nft_a_id else self.nft_a_id


def validate_vote_event(event: VoteEvent) -> VoteKind:
    """Check that exactly one vote shape is populated and return its kind.

    Raises:
        InvalidVoteShape: On any structural inconsistency.
    """
    kind = event.kind

    if kind is VoteKind.RETRACTION:
        if (
            event.nft_b_id is not None
            or event.winner_id is not None
            or event.is_tie
            or event.slider_value is not None
            or event.is_fire_vote
            or event.is_super_vote
        ):
            raise InvalidVoteShape("retraction must only carry nft_a_id and retracts_event_id")
        if event.retracts_event_id == event.event_id:
            raise InvalidVoteShape("an event cannot retract itself")
        return kind

    if kind is VoteKind.HEAD_TO_HEAD:
        if event.slider_value is not None:
            raise InvalidVoteShape("head-to-head vote cannot carry a slider value")
        if event.nft_a_id == event.nft_b_id:
            raise InvalidVoteShape("head-to-head vote needs two distinct NFTs")
        if event.is_tie and event.winner_id is not None:
            raise InvalidVoteShape("a tie cannot name a winner")
        if not event.is_tie and event.winner_id is None:
            raise InvalidVoteShape("head-to-head vote needs a winner or a tie")
        if event.winner_id is not None and event.winner_id not in (event.nft_a_id, event.nft_b_id):
            raise InvalidVoteShape("winner must be one of the two NFTs")
        if event.is_tie and event.is_fire_vote:
            raise InvalidVoteShape("fire cannot be attributed on a tie")
        return kind

    if event.winner_id is not None or event.is_tie:
        raise InvalidVoteShape("slider vote cannot name a winner or tie")
    if event.slider_value is None:
        raise InvalidVoteShape("vote needs either a second NFT or a slider value")
    if not math.isfinite(event.slider_value) or not 0.0 <= event.slider_value <= 100.0:
        raise InvalidVoteShape(f"slider value must be within [0, 100], got {event.slider_value}")
    if event.is_super_vote:
        raise InvalidVoteShape("super votes only apply to head-to-head matchups")
    return kind
