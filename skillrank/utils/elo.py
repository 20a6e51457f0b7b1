import math
from typing import NamedTuple

from skillrank.config import Config
from skillrank.constants import EloConstants


class EloResult(NamedTuple):
    new_elo: int
    elo_change: int


class EloCalculator:
    """Handles Elo rating calculations for confirmed matches"""

    @staticmethod
    def calculate_expected_score(rating_a: int, rating_b: int) -> float:
        """
        Calculate the expected score for player A against player B

        Args:
            rating_a: Player A's current Elo rating
            rating_b: Player B's current Elo rating

        Returns:
            Expected score (0.0 to 1.0) for player A
        """
        gap = rating_b - rating_a
        if math.isnan(gap):
            return 0.5
        gap = max(-EloConstants.MAX_RATING_GAP, min(EloConstants.MAX_RATING_GAP, gap))
        return 1 / (1 + math.pow(10, gap / EloConstants.RATING_SCALE))

    @staticmethod
    def get_k_factor(matches_played: int) -> int:
        """
        Get the K-factor based on number of matches played

        Provisional players converge faster; the asymmetry means the two
        sides of a match do not necessarily move by equal and opposite amounts.
        """
        if (matches_played or 0) < Config.PROVISIONAL_MATCH_COUNT:
            return Config.K_FACTOR_PROVISIONAL
        return Config.K_FACTOR_STANDARD

    @staticmethod
    def calculate_elo_change(current_rating: int, opponent_rating: int,
                             actual_score: float, matches_played: int) -> int:
        """
        Calculate the Elo rating change for a player

        Args:
            current_rating: Player's current Elo rating
            opponent_rating: Opponent's current Elo rating
            actual_score: 1.0 for a win, 0.0 for a loss (clamped to [0, 1])
            matches_played: Number of matches the player has played

        Returns:
            Elo rating change (can be positive or negative)
        """
        actual_score = max(0.0, min(1.0, float(actual_score)))
        expected_score = EloCalculator.calculate_expected_score(current_rating, opponent_rating)
        k_factor = EloCalculator.get_k_factor(matches_played)

        elo_change = k_factor * (actual_score - expected_score)
        if not math.isfinite(elo_change):
            return 0
        return int(round(elo_change))

    @staticmethod
    def rate(my_elo: int, opponent_elo: int, my_score: float, my_matches_played: int) -> EloResult:
        """New rating and delta for one side of a match. Never raises."""
        elo_change = EloCalculator.calculate_elo_change(
            my_elo, opponent_elo, my_score, my_matches_played
        )
        return EloResult(new_elo=my_elo + elo_change, elo_change=elo_change)

    @staticmethod
    def calculate_win_probability(rating_a: int, rating_b: int) -> float:
        """Win probability for player A as a percentage (0.0 to 100.0)"""
        expected_score = EloCalculator.calculate_expected_score(rating_a, rating_b)
        return expected_score * 100

    @staticmethod
    def format_elo_change(elo_change: int) -> str:
        if elo_change > 0:
            return f"+{elo_change}"
        elif elo_change < 0:
            return str(elo_change)
        else:
            return "±0"
