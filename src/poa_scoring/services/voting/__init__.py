"""Vote events, the pure vote fold, the vote processor and log replay."""

from poa_scoring.services.voting.apply import (
    RecordedSlider,
    VoteEffects,
    apply_head_to_head,
    apply_retraction,
    apply_slider,
    apply_vote,
)
from poa_scoring.services.voting.events import VoteEvent, VoteKind, validate_vote_event
from poa_scoring.services.voting.processor import VoteOutcome, VoteProcessor
from poa_scoring.services.voting.replay import (
    ReplayResult,
    StatisticsRebuilder,
    event_from_row,
    replay_events,
)

__all__ = [
    "RecordedSlider",
    "ReplayResult",
    "StatisticsRebuilder",
    "VoteEffects",
    "VoteEvent",
    "VoteKind",
    "VoteOutcome",
    "VoteProcessor",
    "apply_head_to_head",
    "apply_retraction",
    "apply_slider",
    "apply_vote",
    "event_from_row",
    "replay_events",
    "validate_vote_event",
]
