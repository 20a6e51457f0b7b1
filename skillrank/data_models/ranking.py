"""
Ranking data models.

Provides immutable data transfer objects for ranking batch runs and queries.
"""

from dataclasses import dataclass
from typing import List, Optional

from skillrank.database.models import RankingCategory, RankingPeriod, SkillTier


@dataclass(frozen=True)
class RankingRunResult:
    """Summary of one recompute_rankings run."""
    sport_id: int
    category: RankingCategory
    scope_value: str
    period: RankingPeriod
    period_key: str
    ranked_players: int = 0
    removed_snapshots: int = 0
    skipped: bool = False


@dataclass(frozen=True)
class RankingEntry:
    """Single ranking row."""
    rank: int
    previous_rank: Optional[int]
    movement: Optional[int]
    profile_id: int
    sport_profile_id: int
    display_name: Optional[str]
    country: str
    effective_score: float
    skill_tier: SkillTier


@dataclass(frozen=True)
class RankingPage:
    """Paginated ranking data."""
    entries: List[RankingEntry]
    current_page: int
    total_pages: int
    total_players: int
    category: RankingCategory
    scope_value: str
    period: RankingPeriod
    period_key: str


@dataclass(frozen=True)
class PlayerPosition:
    """Where a player stands in a sport."""
    profile_id: int
    sport_id: int
    country: str
    composite_score: Optional[float]
    effective_score: Optional[float]
    skill_tier: SkillTier
    global_rank: Optional[int]
    country_rank: Optional[int]
    previous_country_rank: Optional[int]
    total_in_country: int
    total_in_tier: int
    score_spread: Optional[float]  # std deviation of technique bests
