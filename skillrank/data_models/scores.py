"""
Score aggregation data models.

Immutable data transfer objects produced when a technique result is recorded.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from skillrank.database.models import SkillTier
from skillrank.utils.tiers import RANKED_TIERS


@dataclass(frozen=True)
class TierChangeEvent:
    """A SportProfile moved to a different tier; consumed by badge/notification systems."""
    profile_id: int
    sport_id: int
    sport_profile_id: int
    previous_tier: SkillTier
    new_tier: SkillTier
    effective_score: Optional[float]
    occurred_at: datetime

    @property
    def is_promotion(self) -> bool:
        if self.previous_tier == SkillTier.UNRANKED:
            return self.new_tier != SkillTier.UNRANKED
        if self.new_tier == SkillTier.UNRANKED:
            return False
        return RANKED_TIERS.index(self.new_tier) > RANKED_TIERS.index(self.previous_tier)


@dataclass(frozen=True)
class SportScoreSummary:
    """Aggregates written to a SportProfile."""
    sport_profile_id: int
    composite_score: Optional[float]
    effective_score: Optional[float]
    skill_tier: SkillTier
    total_techniques: int


@dataclass(frozen=True)
class TechniqueResultOutcome:
    technique_score_id: int
    sport_profile_id: int
    best_score: float
    improved: bool
    composite_score: Optional[float]
    effective_score: Optional[float]
    skill_tier: SkillTier
    tier_change: Optional[TierChangeEvent] = None
