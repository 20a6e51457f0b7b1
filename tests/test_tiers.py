"""Tier classifier boundaries and lookup tables."""

import pytest

from skillrank.database.models import SkillTier
from skillrank.utils.exceptions import TierValidationError
from skillrank.utils.tiers import (
    RANKED_TIERS, TechniqueTier, TierThreshold, category_group, classify_technique_tier,
    classify_tier, next_tier_threshold, parse_tier, technique_tier_label, tier_color, tier_label
)


@pytest.mark.parametrize("score, expected", [
    (0, SkillTier.QUINTA_B),
    (9, SkillTier.QUINTA_B),
    (9.99, SkillTier.QUINTA_B),
    (10, SkillTier.QUINTA_A),
    (45.5, SkillTier.TERCERA_B),
    (89, SkillTier.PRIMERA_B),
    (90, SkillTier.PRIMERA_A),
    (100, SkillTier.PRIMERA_A),
    (150, SkillTier.PRIMERA_A),
    (-5, SkillTier.QUINTA_B),
    (None, SkillTier.UNRANKED),
])
def test_classify_tier_boundaries(score, expected):
    assert classify_tier(score) == expected


def test_every_integer_score_lands_in_exactly_one_band():
    seen = [classify_tier(score) for score in range(0, 101)]
    # Bands are contiguous: the tier sequence never goes back down
    indexes = [RANKED_TIERS.index(tier) for tier in seen]
    assert indexes == sorted(indexes)
    assert set(seen) == set(RANKED_TIERS)


def test_next_tier_threshold():
    assert next_tier_threshold(SkillTier.QUINTA_B) == TierThreshold(SkillTier.QUINTA_A, 10)
    assert next_tier_threshold(SkillTier.CUARTA_A) == TierThreshold(SkillTier.TERCERA_B, 40)
    assert next_tier_threshold(SkillTier.TERCERA_A) == TierThreshold(SkillTier.SEGUNDA_B, 60)
    assert next_tier_threshold(SkillTier.PRIMERA_B) == TierThreshold(SkillTier.PRIMERA_A, 90)
    assert next_tier_threshold(SkillTier.PRIMERA_A) is None
    assert next_tier_threshold(SkillTier.UNRANKED) is None


@pytest.mark.parametrize("score, expected", [
    (0, TechniqueTier.BRONCE),
    (39, TechniqueTier.BRONCE),
    (40, TechniqueTier.PLATA),
    (54.9, TechniqueTier.PLATA),
    (55, TechniqueTier.ORO),
    (70, TechniqueTier.PLATINO),
    (84, TechniqueTier.PLATINO),
    (85, TechniqueTier.DIAMANTE),
    (-1, TechniqueTier.BRONCE),
])
def test_classify_technique_tier(score, expected):
    assert classify_technique_tier(score) == expected


def test_labels_and_groups():
    assert category_group(SkillTier.PRIMERA_A) == "1ra"
    assert category_group(SkillTier.QUINTA_B) == "5ta"
    assert category_group(SkillTier.SEGUNDA_A) == category_group(SkillTier.SEGUNDA_B) == "2da"
    assert category_group(SkillTier.UNRANKED) == ""
    assert tier_label(SkillTier.SEGUNDA_B) == "2da B"
    assert tier_label(SkillTier.UNRANKED) == "Sin clasificar"
    assert technique_tier_label(TechniqueTier.DIAMANTE) == "Diamante"


def test_lookup_tables_are_total():
    for tier in SkillTier:
        assert tier_label(tier)
        assert tier_color(tier)
        category_group(tier)


def test_parse_tier():
    assert parse_tier("primera_a") == SkillTier.PRIMERA_A
    assert parse_tier(SkillTier.CUARTA_B) == SkillTier.CUARTA_B
    with pytest.raises(TierValidationError):
        parse_tier("SEXTA_A")
