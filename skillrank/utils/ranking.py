"""
Shared ranking utilities.

Rank assignment is kept pure so the batch job and the tests use exactly the
same ordering: effective score descending, ties broken by the stable
secondary key (SportProfile id ascending). Ranks are 1-based and contiguous.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Tuple, TypeVar

from sqlalchemy import Select, select

from skillrank.database.models import (
    PlayerProfile, RankingCategory, RankingPeriod, SkillTier, SportProfile
)
from skillrank.utils.exceptions import ValidationError
from skillrank.utils.tiers import parse_tier
from skillrank.utils.time_utils import utcnow

T = TypeVar("T")


def ranking_sort_key(effective_score: float, tiebreak_id: int) -> Tuple[float, int]:
    return (-effective_score, tiebreak_id)


def assign_ranks(entries: Iterable[Tuple[T, float, int]]) -> List[Tuple[int, T]]:
    """
    Assign 1..N ranks to (item, effective_score, tiebreak_id) triples.

    Equal scores still get distinct ranks, ordered by tiebreak_id, so the
    result has no gaps and no duplicates and is the same for the same input
    in any order.
    """
    ordered = sorted(entries, key=lambda entry: ranking_sort_key(entry[1], entry[2]))
    return [(position, item) for position, (item, _, _) in enumerate(ordered, start=1)]


def period_key_for(period: RankingPeriod, when: Optional[datetime] = None) -> str:
    """Key identifying the period that contains `when` (2026-10, 2026-W42, all)."""
    when = when or utcnow()
    if period == RankingPeriod.MONTHLY:
        return f"{when.year:04d}-{when.month:02d}"
    if period == RankingPeriod.WEEKLY:
        iso_year, iso_week, _ = when.isocalendar()
        return f"{iso_year:04d}-W{iso_week:02d}"
    return "all"


def normalize_scope(category: RankingCategory, scope_value: Optional[str]) -> str:
    """Canonical scope value stored on snapshots for a category."""
    if category == RankingCategory.GLOBAL:
        return ''
    if not scope_value:
        raise ValidationError(f"{category.value} rankings need a scope value", "Choose a country or category.")
    if category == RankingCategory.TIER:
        tier = parse_tier(scope_value)
        if tier == SkillTier.UNRANKED:
            raise ValidationError("UNRANKED is not a ranking scope", "Unranked players have no ranking.")
        return tier.value
    return scope_value.strip().upper()


def ranked_profiles_query(sport_id: int, category: RankingCategory, scope_value: str) -> Select:
    """SportProfiles eligible for a ranking scope, in rank order."""
    query = (
        select(SportProfile, PlayerProfile)
        .join(PlayerProfile, SportProfile.profile_id == PlayerProfile.id)
        .where(
            SportProfile.sport_id == sport_id,
            SportProfile.effective_score.isnot(None),
            SportProfile.skill_tier != SkillTier.UNRANKED
        )
    )

    if category == RankingCategory.COUNTRY:
        query = query.where(PlayerProfile.country == scope_value)
    elif category == RankingCategory.TIER:
        query = query.where(SportProfile.skill_tier == SkillTier(scope_value))

    return query.order_by(SportProfile.effective_score.desc(), SportProfile.id.asc())
