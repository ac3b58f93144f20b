from .dirty_nft import DirtyNftRow
from .nft_stats import NftStatsRow
from .published_score import PublishedScoreRow
from .user_stats import UserStatsRow
from .vote_event import VoteEventRow

__all__ = ["DirtyNftRow", "NftStatsRow", "PublishedScoreRow", "UserStatsRow", "VoteEventRow"]
