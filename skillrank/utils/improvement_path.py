"""
Improvement path recommender.

Given a player's current score and tier for a sport and the best score of
every technique they have analyzed, decides which techniques to work on
first and whether each one is due for a re-evaluation.
"""

from datetime import datetime
from typing import Optional, Sequence

from skillrank.config import Config
from skillrank.constants import ScoreConstants
from skillrank.data_models.improvement import (
    ImprovementRecommendation, ImprovementSummary, ReEvaluationStatus, TechniqueBreakdownItem
)
from skillrank.database.models import SkillTier
from skillrank.utils.tiers import next_tier_threshold, tier_label
from skillrank.utils.time_utils import utcnow, whole_days_between

TOP_TIER_LABEL = "Top level"


def re_evaluation_status(days_since: Optional[int]) -> ReEvaluationStatus:
    if days_since is None:
        return ReEvaluationStatus.RECOMMENDED
    if days_since < Config.REEVALUATION_MIN_DAYS:
        return ReEvaluationStatus.WAIT
    if days_since < Config.REEVALUATION_STALE_DAYS:
        return ReEvaluationStatus.READY
    return ReEvaluationStatus.RECOMMENDED


def re_evaluation_message(days_since: Optional[int]) -> str:
    if days_since is None:
        return "No previous analysis"
    if days_since < Config.REEVALUATION_MIN_DAYS:
        remaining = Config.REEVALUATION_MIN_DAYS - days_since
        return f"Wait {remaining} more day{'s' if remaining != 1 else ''} to re-evaluate"
    if days_since < Config.REEVALUATION_STALE_DAYS:
        return "Ready to re-evaluate"
    return "Re-evaluation recommended"


def _reason_for(name: str, best_score: float, potential_impact: float) -> str:
    if best_score < ScoreConstants.FUNDAMENTALS_BELOW:
        return f"Your {name} needs fundamental work. It is your biggest area of opportunity."
    if best_score < ScoreConstants.HIGH_LEVERAGE_BELOW:
        return f"Improving your {name} will have the biggest impact on your overall score."
    if potential_impact > ScoreConstants.BELOW_AVERAGE_IMPACT:
        return f"Your {name} is below your average. Leveling it up will raise your ranking."
    return f"Your {name} is solid. Polishing the details will bring you closer to the next level."


def compute_improvement_path(
    score: Optional[float],
    skill_tier: SkillTier,
    techniques: Sequence[TechniqueBreakdownItem],
    now: Optional[datetime] = None,
) -> ImprovementSummary:
    """
    Build the improvement summary for one sport.

    Args:
        score: The player's effective score (None when unranked)
        skill_tier: The tier stored for that score
        techniques: Best score and last analysis time per technique
        now: Reference time for the recency gate (defaults to UTC now)

    Returns:
        ImprovementSummary with recommendations sorted weakest first
    """
    now = now or utcnow()

    average = (
        sum(t.best_score for t in techniques) / len(techniques)
        if techniques else 0.0
    )

    recommendations = []
    for technique in sorted(techniques, key=lambda t: (t.best_score, t.slug)):
        days_since = (
            whole_days_between(technique.last_analyzed_at, now)
            if technique.last_analyzed_at else None
        )
        potential_impact = max(0.0, average - technique.best_score)
        recommendations.append(ImprovementRecommendation(
            slug=technique.slug,
            name=technique.name,
            current_score=technique.best_score,
            potential_impact=potential_impact,
            days_since_analysis=days_since,
            suggest_re_evaluation=days_since is not None and days_since >= Config.REEVALUATION_MIN_DAYS,
            re_evaluation_status=re_evaluation_status(days_since),
            re_evaluation_message=re_evaluation_message(days_since),
            reason=_reason_for(technique.name, technique.best_score, potential_impact),
        ))

    weakest = recommendations[0].name if recommendations else None

    if skill_tier == SkillTier.UNRANKED or score is None:
        missing = max(0, Config.MIN_TECHNIQUES_FOR_RANKING - len(techniques))
        if missing:
            message = (f"Analyze {missing} more technique{'s' if missing != 1 else ''} "
                       f"to get your first category.")
        else:
            message = "Analyze your techniques again to get your first category."
        return ImprovementSummary(
            skill_tier=SkillTier.UNRANKED,
            points_to_next_tier=0.0,
            next_tier=None,
            next_tier_label=tier_label(SkillTier.UNRANKED),
            summary_message=message,
            recommendations=recommendations,
        )

    next_tier = next_tier_threshold(skill_tier)
    if next_tier is None:
        return ImprovementSummary(
            skill_tier=skill_tier,
            points_to_next_tier=0.0,
            next_tier=None,
            next_tier_label=TOP_TIER_LABEL,
            summary_message="You are at the top level. Keep your performance up by analyzing regularly.",
            recommendations=recommendations,
        )

    points_to_next_tier = max(0.0, next_tier.threshold - score)
    next_label = tier_label(next_tier.next_tier)

    if points_to_next_tier <= ScoreConstants.VERY_CLOSE_POINTS:
        message = f"You are very close to {next_label}! Improve any technique to move up."
    elif points_to_next_tier <= ScoreConstants.CLOSE_POINTS:
        message = (f"You are {points_to_next_tier:.1f} pts away from {next_label}. "
                   f"Focus on {weakest or 'your weakest technique'}.")
    else:
        message = f"To reach {next_label}, focus on improving {weakest or 'your weakest techniques'}."

    return ImprovementSummary(
        skill_tier=skill_tier,
        points_to_next_tier=points_to_next_tier,
        next_tier=next_tier.next_tier,
        next_tier_label=next_label,
        summary_message=message,
        recommendations=recommendations,
    )
