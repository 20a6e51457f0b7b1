"""
Constants for the rating engine.

Tier tables are owned by skillrank.utils.tiers; this module holds the
remaining magic numbers and seed data.
"""

class EloConstants:
    """Constants related to Elo calculations."""

    # Logistic scale of the expected-score curve
    RATING_SCALE = 400

    # Rating gaps beyond this are treated as this (keeps 10 ** x finite)
    MAX_RATING_GAP = 4000


class ScoreConstants:
    """Technique score scale."""

    MIN_SCORE = 0.0
    MAX_SCORE = 100.0

    # Reason templates in the improvement path switch at these scores
    FUNDAMENTALS_BELOW = 30
    HIGH_LEVERAGE_BELOW = 50
    BELOW_AVERAGE_IMPACT = 10

    # Summary message bands (points missing to the next tier)
    VERY_CLOSE_POINTS = 2
    CLOSE_POINTS = 5


class PaginationConstants:
    """Constants for paginated rankings."""

    DEFAULT_PAGE_SIZE = 50
    MAX_PAGE_SIZE = 100


class LockConstants:
    """Redis key names for batch jobs."""

    RANKINGS_LOCK_PREFIX = "cron_lock:compute-rankings"


# Catalog seeded on first initialisation: slug -> (name, [(technique slug, name)])
DEFAULT_SPORTS = {
    "tennis": ("Tennis", [
        ("forehand", "Forehand"),
        ("backhand", "Backhand"),
        ("serve", "Serve"),
        ("volley", "Volley"),
        ("return", "Return"),
        ("smash", "Smash"),
    ]),
    "padel": ("Padel", [
        ("bandeja", "Bandeja"),
        ("vibora", "Vibora"),
        ("volley", "Volley"),
        ("serve", "Serve"),
        ("globo", "Globo"),
    ]),
    "pickleball": ("Pickleball", [
        ("dink", "Dink"),
        ("third-shot-drop", "Third Shot Drop"),
        ("serve", "Serve"),
        ("volley", "Volley"),
    ]),
}
