"""
SkillRankEngine - the single entry point host applications talk to.

Wires the database, the operations and the services together and exposes
the engine's public operations. Tier helpers are pure and usable without
calling setup().
"""

from datetime import datetime
from typing import Optional

from skillrank.config import Config
from skillrank.data_models.improvement import ImprovementSummary
from skillrank.data_models.match import ConfirmationResult
from skillrank.data_models.ranking import PlayerPosition, RankingPage, RankingRunResult
from skillrank.data_models.scores import TechniqueResultOutcome
from skillrank.database.database import Database
from skillrank.database.match_operations import MatchOperations
from skillrank.operations.challenge_operations import ChallengeOperations
from skillrank.operations.player_operations import PlayerOperations
from skillrank.operations.score_operations import ScoreOperations, TierChangeListener
from skillrank.services.improvement_service import ImprovementService
from skillrank.services.ranking_service import RankingService
from skillrank.utils import tiers
from skillrank.utils.logger import setup_logger
from skillrank.utils.redis_utils import RedisUtils


class SkillRankEngine:
    # Pure tier helpers
    classify_tier = staticmethod(tiers.classify_tier)
    classify_technique_tier = staticmethod(tiers.classify_technique_tier)
    next_tier_threshold = staticmethod(tiers.next_tier_threshold)
    tier_label = staticmethod(tiers.tier_label)
    tier_color = staticmethod(tiers.tier_color)
    category_group = staticmethod(tiers.category_group)

    def __init__(self, database_url: Optional[str] = None, redis_client=None):
        self.logger = setup_logger(__name__)
        self.db = Database(database_url)
        self.redis_client = redis_client

        self.player_ops: Optional[PlayerOperations] = None
        self.score_ops: Optional[ScoreOperations] = None
        self.match_ops: Optional[MatchOperations] = None
        self.challenge_ops: Optional[ChallengeOperations] = None
        self.ranking_service: Optional[RankingService] = None
        self.improvement_service: Optional[ImprovementService] = None

    async def setup(self, seed_defaults: bool = True, connect_redis: bool = True):
        """Open the database and build the services."""
        self.logger.info("Setting up SkillRank engine...")
        Config.validate()

        await self.db.initialize(seed_defaults=seed_defaults)

        if self.redis_client is None and connect_redis:
            self.redis_client = await RedisUtils.create_redis_client()

        self.player_ops = PlayerOperations(self.db)
        self.score_ops = ScoreOperations(self.db, self.player_ops)
        self.match_ops = MatchOperations(self.db)
        self.challenge_ops = ChallengeOperations(self.db, self.player_ops, self.match_ops)
        self.ranking_service = RankingService(self.db.session_factory, self.redis_client)
        self.improvement_service = ImprovementService(self.db.session_factory)

        self.logger.info("SkillRank engine ready")
        return self

    async def close(self):
        """Cleanup when the engine is shutting down"""
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None
        await self.db.close()

    async def __aenter__(self):
        return await self.setup()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # Profiles
    async def get_or_create_profile(self, user_id: str, display_name: Optional[str] = None,
                                    country: Optional[str] = None, region: Optional[str] = None,
                                    city: Optional[str] = None):
        return await self.player_ops.get_or_create_profile(user_id, display_name, country, region, city)

    async def join_sport(self, profile_id: int, sport_id: int):
        return await self.player_ops.join_sport(profile_id, sport_id)

    # Scores
    def add_tier_change_listener(self, listener: TierChangeListener) -> None:
        self.score_ops.add_tier_change_listener(listener)

    async def record_technique_result(self, profile_id: int, sport_id: int, technique_id: int,
                                      score: float, analyzed_at: Optional[datetime] = None
                                      ) -> TechniqueResultOutcome:
        return await self.score_ops.record_technique_result(
            profile_id, sport_id, technique_id, score, analyzed_at
        )

    # Matches
    async def create_challenge(self, sport_id: int, challenger_profile_id: int,
                               challenged_profile_id: int, message: Optional[str] = None):
        return await self.challenge_ops.create_challenge(
            sport_id, challenger_profile_id, challenged_profile_id, message
        )

    async def accept_challenge(self, challenge_id: int, profile_id: int, played_at=None):
        return await self.challenge_ops.accept_challenge(challenge_id, profile_id, played_at)

    async def log_match(self, sport_id: int, reporter_profile_id: int, opponent_profile_id: int,
                        played_at=None, score: Optional[str] = None):
        return await self.challenge_ops.log_match(
            sport_id, reporter_profile_id, opponent_profile_id, played_at, score
        )

    async def confirm_match(self, match_id: int, profile_id: int, result,
                            score: Optional[str] = None) -> ConfirmationResult:
        return await self.match_ops.confirm_match(match_id, profile_id, result, score)

    # Rankings
    async def recompute_rankings(self, sport_id: int, category, scope_value: Optional[str] = None,
                                 period="ALL_TIME", period_key: Optional[str] = None
                                 ) -> RankingRunResult:
        return await self.ranking_service.recompute_rankings(
            sport_id, category, scope_value, period, period_key
        )

    async def get_rankings(self, sport_id: int, category="GLOBAL", scope_value: Optional[str] = None,
                           period="ALL_TIME", period_key: Optional[str] = None,
                           page: int = 1) -> RankingPage:
        return await self.ranking_service.get_rankings(
            sport_id, category, scope_value, period, period_key, page
        )

    async def get_my_position(self, profile_id: int, sport_id: int) -> PlayerPosition:
        return await self.ranking_service.get_my_position(profile_id, sport_id)

    async def get_improvement_path(self, profile_id: int, sport_id: int) -> ImprovementSummary:
        return await self.improvement_service.get_improvement_path(profile_id, sport_id)
