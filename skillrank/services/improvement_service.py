"""
Improvement Service - loads a player's technique breakdown for a sport and
hands it to the pure improvement path recommender.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select

from skillrank.data_models.improvement import ImprovementSummary, TechniqueBreakdownItem
from skillrank.database.models import SkillTier, SportProfile, Technique, TechniqueScore
from skillrank.services.base import BaseService
from skillrank.utils.improvement_path import compute_improvement_path
from skillrank.utils.logger import setup_logger

logger = setup_logger(__name__)


class ImprovementService(BaseService):
    """Read-only consumer of the Score Aggregator's output."""

    async def get_improvement_path(
        self,
        profile_id: int,
        sport_id: int,
        now: Optional[datetime] = None
    ) -> ImprovementSummary:
        async with self.get_session() as session:
            sport_profile = (await session.execute(
                select(SportProfile).where(
                    SportProfile.profile_id == profile_id,
                    SportProfile.sport_id == sport_id
                )
            )).scalar_one_or_none()

            if not sport_profile:
                logger.debug(f"No SportProfile for profile {profile_id} in sport {sport_id}")
                return compute_improvement_path(None, SkillTier.UNRANKED, [], now=now)

            rows = await session.execute(
                select(TechniqueScore, Technique)
                .join(Technique, TechniqueScore.technique_id == Technique.id)
                .where(TechniqueScore.sport_profile_id == sport_profile.id)
            )
            techniques = [
                TechniqueBreakdownItem(
                    slug=technique.slug,
                    name=technique.name,
                    best_score=technique_score.best_score,
                    last_analyzed_at=technique_score.last_analyzed_at
                )
                for technique_score, technique in rows.all()
            ]

        return compute_improvement_path(
            sport_profile.effective_score,
            sport_profile.skill_tier,
            techniques,
            now=now
        )
