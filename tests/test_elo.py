"""Rating engine arithmetic."""

import math

from skillrank.config import Config
from skillrank.utils.elo import EloCalculator, EloResult


def test_expected_score_is_symmetric():
    assert EloCalculator.calculate_expected_score(1000, 1000) == 0.5
    a = EloCalculator.calculate_expected_score(1200, 1000)
    b = EloCalculator.calculate_expected_score(1000, 1200)
    assert math.isclose(a + b, 1.0)
    assert a > 0.75


def test_equal_ratings_provisional_win():
    assert EloCalculator.rate(1000, 1000, 1, 0) == EloResult(new_elo=1016, elo_change=16)
    assert EloCalculator.rate(1000, 1000, 0, 0) == EloResult(new_elo=984, elo_change=-16)


def test_k_factor_switches_after_provisional_period():
    assert EloCalculator.get_k_factor(0) == Config.K_FACTOR_PROVISIONAL
    assert EloCalculator.get_k_factor(Config.PROVISIONAL_MATCH_COUNT - 1) == Config.K_FACTOR_PROVISIONAL
    assert EloCalculator.get_k_factor(Config.PROVISIONAL_MATCH_COUNT) == Config.K_FACTOR_STANDARD


def test_changes_need_not_be_opposite():
    veteran = EloCalculator.rate(1000, 1000, 1, 50)
    newcomer = EloCalculator.rate(1000, 1000, 0, 0)
    assert veteran.elo_change == 8
    assert newcomer.elo_change == -16


def test_extreme_inputs_stay_finite():
    result = EloCalculator.rate(100000, -100000, 1, 0)
    assert result.elo_change == 0
    upset = EloCalculator.rate(-100000, 100000, 1, 0)
    assert upset.elo_change == Config.K_FACTOR_PROVISIONAL


def test_score_is_clamped():
    assert EloCalculator.rate(1000, 1000, 5, 0) == EloCalculator.rate(1000, 1000, 1, 0)
    assert EloCalculator.rate(1000, 1000, -3, 0) == EloCalculator.rate(1000, 1000, 0, 0)


def test_format_elo_change():
    assert EloCalculator.format_elo_change(12) == "+12"
    assert EloCalculator.format_elo_change(-7) == "-7"
    assert EloCalculator.format_elo_change(0) == "±0"
