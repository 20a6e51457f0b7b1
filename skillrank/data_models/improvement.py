"""
Improvement path data models.

Immutable data transfer objects returned by the improvement path recommender.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from skillrank.database.models import SkillTier


class ReEvaluationStatus(Enum):
    WAIT = "wait"
    READY = "ready"
    RECOMMENDED = "recommended"


@dataclass(frozen=True)
class TechniqueBreakdownItem:
    """Input row: one technique's best score for the player."""
    slug: str
    name: str
    best_score: float
    last_analyzed_at: Optional[datetime] = None


@dataclass(frozen=True)
class ImprovementRecommendation:
    slug: str
    name: str
    current_score: float
    potential_impact: float
    days_since_analysis: Optional[int]
    suggest_re_evaluation: bool
    re_evaluation_status: ReEvaluationStatus
    re_evaluation_message: str
    reason: str


@dataclass(frozen=True)
class ImprovementSummary:
    skill_tier: SkillTier
    points_to_next_tier: float
    next_tier: Optional[SkillTier]
    next_tier_label: str
    summary_message: str
    recommendations: List[ImprovementRecommendation] = field(default_factory=list)
