"""
Score Operations Module - Score Aggregator

Turns completed technique analyses (a 0-100 score per technique, produced
upstream by the analysis pipeline) into per-sport aggregates:

- TechniqueScore.best_score: max over all completed analyses, never decreases
- SportProfile.composite_score: arithmetic mean of the technique bests once
  the player has enough techniques to be ranked
- SportProfile.effective_score: the value tiers and rankings use
- SportProfile.skill_tier: classify_tier(effective_score)

Aggregates are only recomputed when a TechniqueScore is created or its best
score rises. When the tier changes, a TierChangeEvent is handed to the
registered listeners after the transaction commits; the aggregator itself
never notifies anybody.
"""

import inspect
import math
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from skillrank.config import Config
from skillrank.constants import ScoreConstants
from skillrank.data_models.scores import (
    SportScoreSummary, TechniqueResultOutcome, TierChangeEvent
)
from skillrank.database.models import SportProfile, Technique, TechniqueScore
from skillrank.operations.player_operations import PlayerOperations
from skillrank.utils.exceptions import (
    OperationError, ProfileValidationError, ScoreValidationError, SkillRankError
)
from skillrank.utils.logger import setup_logger
from skillrank.utils.tiers import classify_tier
from skillrank.utils.time_utils import as_naive_utc, utcnow

logger = setup_logger(__name__)

TierChangeListener = Callable[[TierChangeEvent], object]


def validate_score(score) -> float:
    """Reject anything that is not a finite number on the 0-100 scale."""
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise ScoreValidationError(score, "Score must be a number.")
    score = float(score)
    if not math.isfinite(score):
        raise ScoreValidationError(score, "Score must be a finite number.")
    if score < ScoreConstants.MIN_SCORE or score > ScoreConstants.MAX_SCORE:
        raise ScoreValidationError(
            score,
            f"Score must be between {ScoreConstants.MIN_SCORE:g} and {ScoreConstants.MAX_SCORE:g}."
        )
    return score


def composite_from_bests(best_scores: Sequence[float]) -> Optional[float]:
    """Arithmetic mean of technique bests, None until enough techniques are scored."""
    if len(best_scores) < Config.MIN_TECHNIQUES_FOR_RANKING:
        return None
    return sum(best_scores) / len(best_scores)


def adjust_effective_score(composite_score: Optional[float],
                           technique_scores: Sequence[TechniqueScore]) -> Optional[float]:
    """
    Effective score used for tiers and rankings.

    Currently equal to the composite score. Recency or sample-size
    adjustments belong here; the result must stay None or within 0-100.
    """
    if composite_score is None:
        return None
    return max(ScoreConstants.MIN_SCORE, min(ScoreConstants.MAX_SCORE, composite_score))


class ScoreOperations:
    """Score Aggregator: technique results to sport-level scores and tiers."""

    def __init__(self, database, player_ops: Optional[PlayerOperations] = None):
        self.db = database
        self.player_ops = player_ops or PlayerOperations(database)
        self.logger = logger
        self._tier_change_listeners: List[TierChangeListener] = []

    def add_tier_change_listener(self, listener: TierChangeListener) -> None:
        """Register a callable (sync or async) that receives TierChangeEvents."""
        self._tier_change_listeners.append(listener)

    async def record_technique_result(
        self,
        profile_id: int,
        sport_id: int,
        technique_id: int,
        score: float,
        analyzed_at: Optional[datetime] = None
    ) -> TechniqueResultOutcome:
        """
        Record one completed analysis of a technique.

        Args:
            profile_id: PlayerProfile the analysis belongs to
            sport_id: Sport of the technique
            technique_id: Technique that was analyzed
            score: Technique score on the 0-100 scale
            analyzed_at: When the analysis completed (defaults to now)

        Returns:
            TechniqueResultOutcome with the resulting best score and aggregates

        Raises:
            ScoreValidationError: If the score is not a number in [0, 100]
            ProfileValidationError: If the profile, sport or technique is unknown
            OperationError: If the database operation fails
        """
        score = validate_score(score)
        analyzed_at = as_naive_utc(analyzed_at) or utcnow()

        try:
            async with self.db.transaction() as session:
                technique = await session.get(Technique, technique_id)
                if not technique or technique.sport_id != sport_id:
                    raise ProfileValidationError(
                        f"Technique {technique_id} does not belong to sport {sport_id}",
                        "Technique not found for this sport."
                    )

                sport_profile = await self.player_ops.get_or_create_sport_profile(
                    session, profile_id, sport_id
                )

                result = await session.execute(
                    select(TechniqueScore)
                    .where(
                        TechniqueScore.profile_id == profile_id,
                        TechniqueScore.technique_id == technique_id
                    )
                    .with_for_update()
                )
                technique_score = result.scalar_one_or_none()

                if technique_score is None:
                    technique_score = TechniqueScore(
                        profile_id=profile_id,
                        sport_profile_id=sport_profile.id,
                        technique_id=technique_id,
                        best_score=score,
                        last_score=score,
                        analysis_count=1,
                        last_analyzed_at=analyzed_at
                    )
                    session.add(technique_score)
                    improved = True
                else:
                    improved = score > technique_score.best_score
                    if improved:
                        technique_score.best_score = score
                    technique_score.last_score = score
                    technique_score.analysis_count = (technique_score.analysis_count or 0) + 1
                    if technique_score.last_analyzed_at is None or analyzed_at > technique_score.last_analyzed_at:
                        technique_score.last_analyzed_at = analyzed_at

                await session.execute(
                    update(SportProfile)
                    .where(SportProfile.id == sport_profile.id)
                    .values(total_analyses=SportProfile.total_analyses + 1)
                )
                await session.flush()

                tier_change = None
                if improved:
                    summary, tier_change = await self._recalculate(session, sport_profile)
                else:
                    summary = SportScoreSummary(
                        sport_profile_id=sport_profile.id,
                        composite_score=sport_profile.composite_score,
                        effective_score=sport_profile.effective_score,
                        skill_tier=sport_profile.skill_tier,
                        total_techniques=sport_profile.total_techniques
                    )

                outcome = TechniqueResultOutcome(
                    technique_score_id=technique_score.id,
                    sport_profile_id=sport_profile.id,
                    best_score=technique_score.best_score,
                    improved=improved,
                    composite_score=summary.composite_score,
                    effective_score=summary.effective_score,
                    skill_tier=summary.skill_tier,
                    tier_change=tier_change
                )
        except SkillRankError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to record technique {technique_id} for profile {profile_id}: {e}", exc_info=True)
            raise OperationError("record_technique_result", str(e))

        self.logger.info(
            f"Recorded technique {technique_id} score {score:.1f} for profile {profile_id} "
            f"(best={outcome.best_score:.1f}, improved={outcome.improved}, tier={outcome.skill_tier.value})"
        )

        if outcome.tier_change:
            await self._emit_tier_change(outcome.tier_change)

        return outcome

    async def recalculate_sport_profile(self, sport_profile_id: int) -> SportScoreSummary:
        """Recompute a SportProfile's aggregates from its stored technique bests."""
        async with self.db.transaction() as session:
            result = await session.execute(
                select(SportProfile)
                .where(SportProfile.id == sport_profile_id)
                .with_for_update()
            )
            sport_profile = result.scalar_one_or_none()
            if not sport_profile:
                raise ProfileValidationError(f"SportProfile {sport_profile_id} not found", "Profile not found.")
            summary, tier_change = await self._recalculate(session, sport_profile)

        if tier_change:
            await self._emit_tier_change(tier_change)
        return summary

    async def _recalculate(self, session: AsyncSession, sport_profile: SportProfile):
        """Write composite/effective score and tier for a locked SportProfile."""
        result = await session.execute(
            select(TechniqueScore).where(TechniqueScore.sport_profile_id == sport_profile.id)
        )
        technique_scores = result.scalars().all()
        best_scores = [ts.best_score for ts in technique_scores]

        composite_score = composite_from_bests(best_scores)
        effective_score = adjust_effective_score(composite_score, technique_scores)
        new_tier = classify_tier(effective_score)
        previous_tier = sport_profile.skill_tier
        now = utcnow()

        sport_profile.composite_score = composite_score
        sport_profile.effective_score = effective_score
        sport_profile.skill_tier = new_tier
        sport_profile.total_techniques = len(technique_scores)
        sport_profile.last_score_update = now
        await session.flush()

        tier_change = None
        if previous_tier != new_tier:
            tier_change = TierChangeEvent(
                profile_id=sport_profile.profile_id,
                sport_id=sport_profile.sport_id,
                sport_profile_id=sport_profile.id,
                previous_tier=previous_tier,
                new_tier=new_tier,
                effective_score=effective_score,
                occurred_at=now
            )
            self.logger.info(
                f"SportProfile {sport_profile.id} moved from {previous_tier.value} to {new_tier.value} "
                f"(score: {effective_score})"
            )

        summary = SportScoreSummary(
            sport_profile_id=sport_profile.id,
            composite_score=composite_score,
            effective_score=effective_score,
            skill_tier=new_tier,
            total_techniques=len(technique_scores)
        )
        return summary, tier_change

    async def _emit_tier_change(self, tier_change: TierChangeEvent) -> None:
        for listener in self._tier_change_listeners:
            try:
                outcome = listener(tier_change)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                # The score is already committed at this point
                self.logger.warning(f"Tier change listener {listener!r} failed: {e}")
