"""
Tier classification for skill scores.

Two independent scales are defined here:

- the overall player tier (SkillTier), ten 10-point bands named after the
  Peruvian tennis categories plus UNRANKED for players without a score;
- the per-technique badge tier (TechniqueTier), five uneven bands.

Every lookup is table-driven and total: tables are immutable tuples and
dictionaries built once at import time.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Optional, Union

from skillrank.database.models import SkillTier
from skillrank.utils.exceptions import TierValidationError


class TechniqueTier(Enum):
    BRONCE = "BRONCE"
    PLATA = "PLATA"
    ORO = "ORO"
    PLATINO = "PLATINO"
    DIAMANTE = "DIAMANTE"


@dataclass(frozen=True)
class TierThreshold:
    """Immediately superior tier and the score where it starts."""
    next_tier: SkillTier
    threshold: float


# Highest band first; lookups walk top-down by lower bound
TIER_THRESHOLDS = (
    (90, SkillTier.PRIMERA_A),
    (80, SkillTier.PRIMERA_B),
    (70, SkillTier.SEGUNDA_A),
    (60, SkillTier.SEGUNDA_B),
    (50, SkillTier.TERCERA_A),
    (40, SkillTier.TERCERA_B),
    (30, SkillTier.CUARTA_A),
    (20, SkillTier.CUARTA_B),
    (10, SkillTier.QUINTA_A),
    (0, SkillTier.QUINTA_B),
)

TECHNIQUE_TIER_THRESHOLDS = (
    (85, TechniqueTier.DIAMANTE),
    (70, TechniqueTier.PLATINO),
    (55, TechniqueTier.ORO),
    (40, TechniqueTier.PLATA),
    (0, TechniqueTier.BRONCE),
)

_TIER_INFO = MappingProxyType({
    # tier: (label, color token, category group)
    SkillTier.PRIMERA_A: ("1ra A", "text-violet-600", "1ra"),
    SkillTier.PRIMERA_B: ("1ra B", "text-violet-500", "1ra"),
    SkillTier.SEGUNDA_A: ("2da A", "text-cyan-600", "2da"),
    SkillTier.SEGUNDA_B: ("2da B", "text-cyan-500", "2da"),
    SkillTier.TERCERA_A: ("3ra A", "text-emerald-600", "3ra"),
    SkillTier.TERCERA_B: ("3ra B", "text-emerald-500", "3ra"),
    SkillTier.CUARTA_A: ("4ta A", "text-yellow-600", "4ta"),
    SkillTier.CUARTA_B: ("4ta B", "text-yellow-500", "4ta"),
    SkillTier.QUINTA_A: ("5ta A", "text-amber-600", "5ta"),
    SkillTier.QUINTA_B: ("5ta B", "text-amber-500", "5ta"),
    SkillTier.UNRANKED: ("Sin clasificar", "text-muted-foreground", ""),
})

_TECHNIQUE_TIER_INFO = MappingProxyType({
    TechniqueTier.DIAMANTE: ("Diamante", "text-violet-500"),
    TechniqueTier.PLATINO: ("Platino", "text-cyan-500"),
    TechniqueTier.ORO: ("Oro", "text-yellow-500"),
    TechniqueTier.PLATA: ("Plata", "text-slate-400"),
    TechniqueTier.BRONCE: ("Bronce", "text-amber-600"),
})

# next tier for every ranked tier; PRIMERA_A has none
_NEXT_TIER = MappingProxyType({
    lower_tier: TierThreshold(next_tier=upper_tier, threshold=upper_min)
    for (upper_min, upper_tier), (_, lower_tier) in zip(TIER_THRESHOLDS, TIER_THRESHOLDS[1:])
})

RANKED_TIERS = tuple(tier for _, tier in reversed(TIER_THRESHOLDS))


def classify_tier(score: Optional[float]) -> SkillTier:
    """
    Map an effective score to its overall tier.

    None means the player has no score yet and maps to UNRANKED. Scores
    below zero are clamped into the lowest band rather than unranked.
    """
    if score is None:
        return SkillTier.UNRANKED
    for minimum, tier in TIER_THRESHOLDS:
        if score >= minimum:
            return tier
    return SkillTier.QUINTA_B


def classify_technique_tier(score: float) -> TechniqueTier:
    """Map a technique's best score to its badge tier."""
    for minimum, tier in TECHNIQUE_TIER_THRESHOLDS:
        if score >= minimum:
            return tier
    return TechniqueTier.BRONCE


def next_tier_threshold(tier: SkillTier) -> Optional[TierThreshold]:
    """
    Return the immediately superior tier and its lower bound.

    None for the top tier (PRIMERA_A) and for UNRANKED, which has no
    position on the scale.
    """
    return _NEXT_TIER.get(tier)


def tier_label(tier: SkillTier) -> str:
    return _TIER_INFO[tier][0]


def tier_color(tier: SkillTier) -> str:
    return _TIER_INFO[tier][1]


def category_group(tier: SkillTier) -> str:
    """Category without the A/B split ("1ra" ... "5ta"), empty for unranked."""
    return _TIER_INFO[tier][2]


def technique_tier_label(tier: TechniqueTier) -> str:
    return _TECHNIQUE_TIER_INFO[tier][0]


def technique_tier_color(tier: TechniqueTier) -> str:
    return _TECHNIQUE_TIER_INFO[tier][1]


def parse_tier(value: Union[str, SkillTier]) -> SkillTier:
    """Validate a tier coming from outside the engine (query string, CLI)."""
    if isinstance(value, SkillTier):
        return value
    try:
        return SkillTier(str(value).strip().upper())
    except ValueError:
        raise TierValidationError(value)
