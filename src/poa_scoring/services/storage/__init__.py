from .dirty_queue import PRIORITY_HIGH, PRIORITY_NORMAL, DirtyClaim, DirtyQueue
from .event_repository import EventRepository
from .score_repository import ScoreRepository
from .stats_repository import CommittedVote, StatsRepository
from .store import ScoringStore

__all__ = [
    "PRIORITY_HIGH",
    "PRIORITY_NORMAL",
    "CommittedVote",
    "DirtyClaim",
    "DirtyQueue",
    "EventRepository",
    "ScoreRepository",
    "ScoringStore",
    "StatsRepository",
]
