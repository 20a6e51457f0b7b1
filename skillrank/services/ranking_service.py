"""
Ranking Service - Rank Aggregator

Batch job that turns SportProfile effective scores into RankingSnapshot rows
for one (sport, category, scope, period) at a time, plus the read side used
by ranking screens.

Key Features:
- Deterministic 1..N ranks (effective score desc, SportProfile id asc)
- previous_rank carried forward from the most recent earlier period
- Idempotent per period key: re-runs rewrite the same rows and drop rows of
  players who are no longer ranked
- Redis job lock so concurrent scheduler triggers do not race
- Never writes SportProfile
"""

import math
from datetime import datetime
from typing import Dict, List, Optional, Union

from sqlalchemy import select, func, delete

from skillrank.config import Config
from skillrank.constants import LockConstants, PaginationConstants
from skillrank.data_models.ranking import (
    PlayerPosition, RankingEntry, RankingPage, RankingRunResult
)
from skillrank.database.models import (
    PlayerProfile, RankingCategory, RankingPeriod, RankingSnapshot, SkillTier, Sport,
    SportProfile, TechniqueScore
)
from skillrank.services.base import BaseService
from skillrank.utils.exceptions import ValidationError
from skillrank.utils.logger import setup_logger
from skillrank.utils.ranking import (
    assign_ranks, normalize_scope, period_key_for, ranked_profiles_query
)
from skillrank.utils.redis_utils import job_lock
from skillrank.utils.time_utils import utcnow

logger = setup_logger(__name__)


def parse_category(value: Union[str, RankingCategory]) -> RankingCategory:
    if isinstance(value, RankingCategory):
        return value
    try:
        return RankingCategory(str(value).strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown ranking category {value!r}", "Unknown ranking category.")


def parse_period(value: Union[str, RankingPeriod]) -> RankingPeriod:
    if isinstance(value, RankingPeriod):
        return value
    try:
        return RankingPeriod(str(value).strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown ranking period {value!r}", "Unknown ranking period.")


class RankingService(BaseService):
    """Computes and serves ranking snapshots."""

    def __init__(self, session_factory, redis_client=None):
        super().__init__(session_factory)
        self.redis_client = redis_client  # None runs jobs unlocked

    async def recompute_rankings(
        self,
        sport_id: int,
        category: Union[str, RankingCategory],
        scope_value: Optional[str] = None,
        period: Union[str, RankingPeriod] = RankingPeriod.ALL_TIME,
        period_key: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> RankingRunResult:
        """
        Recompute the snapshot rows of one ranking scope.

        Args:
            sport_id: Sport to rank
            category: GLOBAL, COUNTRY or TIER
            scope_value: Country code for COUNTRY, tier name for TIER
            period: WEEKLY, MONTHLY or ALL_TIME
            period_key: Explicit period key; derived from `now` when omitted
            now: Reference time (defaults to UTC now)

        Returns:
            RankingRunResult; `skipped` is True when another run holds the lock
        """
        category = parse_category(category)
        period = parse_period(period)
        scope_value = normalize_scope(category, scope_value)
        period_key = period_key or period_key_for(period, now)

        lock_key = (f"{LockConstants.RANKINGS_LOCK_PREFIX}:{sport_id}:"
                    f"{category.value}:{scope_value}:{period.value}")

        async with job_lock(self.redis_client, lock_key, Config.RANKINGS_LOCK_TTL) as acquired:
            if not acquired:
                return RankingRunResult(
                    sport_id=sport_id, category=category, scope_value=scope_value,
                    period=period, period_key=period_key, skipped=True
                )

            async def _compute_scope() -> RankingRunResult:
                return await self._compute_scope(sport_id, category, scope_value, period, period_key)

            result = await self.execute_with_retry(_compute_scope)

        logger.info(
            f"Rankings sport={sport_id} {category.value}:{scope_value or '-'} "
            f"{period.value}/{period_key}: {result.ranked_players} ranked, "
            f"{result.removed_snapshots} removed"
        )
        return result

    async def _compute_scope(
        self,
        sport_id: int,
        category: RankingCategory,
        scope_value: str,
        period: RankingPeriod,
        period_key: str
    ) -> RankingRunResult:
        async with self.get_session() as session:
            sport = await session.get(Sport, sport_id)
            if not sport:
                raise ValidationError(f"Sport {sport_id} not found", "Sport not found.")

            rows = (await session.execute(ranked_profiles_query(sport_id, category, scope_value))).all()
            ranked = assign_ranks(
                (sport_profile, sport_profile.effective_score, sport_profile.id)
                for sport_profile, _ in rows
            )

            scope_filter = (
                RankingSnapshot.sport_id == sport_id,
                RankingSnapshot.period == period,
                RankingSnapshot.category == category,
                RankingSnapshot.scope_value == scope_value,
            )

            # Rows of this period key, locked for rewrite
            existing_result = await session.execute(
                select(RankingSnapshot)
                .where(*scope_filter, RankingSnapshot.period_key == period_key)
                .with_for_update()
            )
            existing = {snapshot.profile_id: snapshot for snapshot in existing_result.scalars()}

            carried = await self._ranks_before(session, scope_filter, period_key)

            computed_at = utcnow()
            ranked_profile_ids = set()
            for rank, sport_profile in ranked:
                ranked_profile_ids.add(sport_profile.profile_id)
                snapshot = existing.get(sport_profile.profile_id)

                if period == RankingPeriod.ALL_TIME:
                    # A single open-ended period: movement is measured against the previous run
                    if snapshot is None:
                        previous_rank = None
                    elif snapshot.rank != rank:
                        previous_rank = snapshot.rank
                    else:
                        previous_rank = snapshot.previous_rank
                else:
                    previous_rank = carried.get(sport_profile.profile_id)

                if snapshot is None:
                    snapshot = RankingSnapshot(
                        profile_id=sport_profile.profile_id,
                        sport_id=sport_id,
                        period=period,
                        period_key=period_key,
                        category=category,
                        scope_value=scope_value
                    )
                    session.add(snapshot)

                snapshot.sport_profile_id = sport_profile.id
                snapshot.rank = rank
                snapshot.previous_rank = previous_rank
                snapshot.effective_score = sport_profile.effective_score
                snapshot.skill_tier = sport_profile.skill_tier
                snapshot.computed_at = computed_at

            stale_ids = [profile_id for profile_id in existing if profile_id not in ranked_profile_ids]
            if stale_ids:
                await session.execute(
                    delete(RankingSnapshot).where(
                        *scope_filter,
                        RankingSnapshot.period_key == period_key,
                        RankingSnapshot.profile_id.in_(stale_ids)
                    )
                )

        return RankingRunResult(
            sport_id=sport_id,
            category=category,
            scope_value=scope_value,
            period=period,
            period_key=period_key,
            ranked_players=len(ranked),
            removed_snapshots=len(stale_ids)
        )

    async def _ranks_before(self, session, scope_filter, period_key: str) -> Dict[int, int]:
        """Rank of each profile in its most recent snapshot with an earlier period key."""
        result = await session.execute(
            select(RankingSnapshot.profile_id, RankingSnapshot.rank)
            .where(*scope_filter, RankingSnapshot.period_key < period_key)
            .order_by(RankingSnapshot.period_key.asc())
        )
        # Later period keys overwrite earlier ones
        return {profile_id: rank for profile_id, rank in result.all()}

    async def recompute_all_rankings(
        self,
        period: Union[str, RankingPeriod] = RankingPeriod.ALL_TIME,
        period_key: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> List[RankingRunResult]:
        """
        Recompute every scope of every active sport for a period: global,
        each country with ranked players, and each ranked tier.

        Scopes that already hold snapshot rows for the period key are rerun
        too, so a country or tier that emptied out loses its old rows.
        """
        period = parse_period(period)
        period_key = period_key or period_key_for(period, now)

        async with self.get_session() as session:
            sports = (await session.execute(
                select(Sport).where(Sport.is_active == True).order_by(Sport.id)
            )).scalars().all()

            scopes = []
            for sport in sports:
                scopes.append((sport.id, RankingCategory.GLOBAL, None))

                countries = await session.execute(
                    select(PlayerProfile.country)
                    .join(SportProfile, SportProfile.profile_id == PlayerProfile.id)
                    .where(
                        SportProfile.sport_id == sport.id,
                        SportProfile.effective_score.isnot(None),
                        SportProfile.skill_tier != SkillTier.UNRANKED
                    )
                    .distinct()
                    .order_by(PlayerProfile.country)
                )
                scopes.extend((sport.id, RankingCategory.COUNTRY, country) for country in countries.scalars())

                tiers = await session.execute(
                    select(SportProfile.skill_tier)
                    .where(
                        SportProfile.sport_id == sport.id,
                        SportProfile.effective_score.isnot(None),
                        SportProfile.skill_tier != SkillTier.UNRANKED
                    )
                    .distinct()
                )
                scopes.extend((sport.id, RankingCategory.TIER, tier.value) for tier in tiers.scalars())

                snapshot_scopes = await session.execute(
                    select(RankingSnapshot.category, RankingSnapshot.scope_value)
                    .where(
                        RankingSnapshot.sport_id == sport.id,
                        RankingSnapshot.period == period,
                        RankingSnapshot.period_key == period_key,
                        RankingSnapshot.category != RankingCategory.GLOBAL
                    )
                    .distinct()
                )
                for category, scope_value in snapshot_scopes.all():
                    if (sport.id, category, scope_value) not in scopes:
                        scopes.append((sport.id, category, scope_value))

        results = []
        for sport_id, category, scope_value in scopes:
            results.append(await self.recompute_rankings(
                sport_id, category, scope_value, period, period_key=period_key
            ))
        return results

    async def get_rankings(
        self,
        sport_id: int,
        category: Union[str, RankingCategory] = RankingCategory.GLOBAL,
        scope_value: Optional[str] = None,
        period: Union[str, RankingPeriod] = RankingPeriod.ALL_TIME,
        period_key: Optional[str] = None,
        page: int = 1,
        page_size: int = PaginationConstants.DEFAULT_PAGE_SIZE
    ) -> RankingPage:
        """
        Paginated snapshot rows of one ranking scope.

        Without a period_key the most recent computed period is served.
        """
        category = parse_category(category)
        period = parse_period(period)
        scope_value = normalize_scope(category, scope_value)
        page = max(1, page)
        page_size = max(1, min(page_size, PaginationConstants.MAX_PAGE_SIZE))

        async with self.get_session() as session:
            scope_filter = (
                RankingSnapshot.sport_id == sport_id,
                RankingSnapshot.period == period,
                RankingSnapshot.category == category,
                RankingSnapshot.scope_value == scope_value,
            )

            if period_key is None:
                period_key = (await session.execute(
                    select(func.max(RankingSnapshot.period_key)).where(*scope_filter)
                )).scalar()

            if period_key is None:
                return RankingPage(
                    entries=[], current_page=1, total_pages=1, total_players=0,
                    category=category, scope_value=scope_value, period=period,
                    period_key=period_key_for(period)
                )

            total_players = (await session.execute(
                select(func.count(RankingSnapshot.id))
                .where(*scope_filter, RankingSnapshot.period_key == period_key)
            )).scalar() or 0
            total_pages = max(1, math.ceil(total_players / page_size))
            page = min(page, total_pages)

            rows = await session.execute(
                select(RankingSnapshot, PlayerProfile)
                .join(PlayerProfile, RankingSnapshot.profile_id == PlayerProfile.id)
                .where(*scope_filter, RankingSnapshot.period_key == period_key)
                .order_by(RankingSnapshot.rank.asc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )

            entries = [
                RankingEntry(
                    rank=snapshot.rank,
                    previous_rank=snapshot.previous_rank,
                    movement=snapshot.movement,
                    profile_id=snapshot.profile_id,
                    sport_profile_id=snapshot.sport_profile_id,
                    display_name=profile.display_name,
                    country=profile.country,
                    effective_score=snapshot.effective_score,
                    skill_tier=snapshot.skill_tier
                )
                for snapshot, profile in rows.all()
            ]

        return RankingPage(
            entries=entries,
            current_page=page,
            total_pages=total_pages,
            total_players=total_players,
            category=category,
            scope_value=scope_value,
            period=period,
            period_key=period_key
        )

    async def get_my_position(self, profile_id: int, sport_id: int) -> PlayerPosition:
        """
        A player's standing in a sport: scores, tier, latest all-time global
        and country rank, and how many ranked players share their country
        and tier. A player who has not joined the sport gets an empty,
        unranked position.
        """
        async with self.get_session() as session:
            profile = await session.get(PlayerProfile, profile_id)
            if not profile:
                raise ValidationError(f"PlayerProfile {profile_id} not found", "Profile not found.")

            sport_profile = (await session.execute(
                select(SportProfile).where(
                    SportProfile.profile_id == profile_id,
                    SportProfile.sport_id == sport_id
                )
            )).scalar_one_or_none()

            if not sport_profile:
                return PlayerPosition(
                    profile_id=profile_id, sport_id=sport_id, country=profile.country,
                    composite_score=None, effective_score=None, skill_tier=SkillTier.UNRANKED,
                    global_rank=None, country_rank=None, previous_country_rank=None,
                    total_in_country=0, total_in_tier=0, score_spread=None
                )

            global_snapshot = await self._latest_snapshot(
                session, profile_id, sport_id, RankingCategory.GLOBAL, ''
            )
            country_snapshot = await self._latest_snapshot(
                session, profile_id, sport_id, RankingCategory.COUNTRY, profile.country
            )

            ranked_filter = (
                SportProfile.sport_id == sport_id,
                SportProfile.effective_score.isnot(None),
                SportProfile.skill_tier != SkillTier.UNRANKED,
            )
            total_in_country = (await session.execute(
                select(func.count(SportProfile.id))
                .join(PlayerProfile, SportProfile.profile_id == PlayerProfile.id)
                .where(*ranked_filter, PlayerProfile.country == profile.country)
            )).scalar() or 0

            total_in_tier = 0
            if sport_profile.skill_tier != SkillTier.UNRANKED:
                total_in_tier = (await session.execute(
                    select(func.count(SportProfile.id))
                    .where(*ranked_filter, SportProfile.skill_tier == sport_profile.skill_tier)
                )).scalar() or 0

            bests = (await session.execute(
                select(TechniqueScore.best_score)
                .where(TechniqueScore.sport_profile_id == sport_profile.id)
            )).scalars().all()

        return PlayerPosition(
            profile_id=profile_id,
            sport_id=sport_id,
            country=profile.country,
            composite_score=sport_profile.composite_score,
            effective_score=sport_profile.effective_score,
            skill_tier=sport_profile.skill_tier,
            global_rank=global_snapshot.rank if global_snapshot else None,
            country_rank=country_snapshot.rank if country_snapshot else None,
            previous_country_rank=country_snapshot.previous_rank if country_snapshot else None,
            total_in_country=total_in_country,
            total_in_tier=total_in_tier,
            score_spread=self._score_spread(bests)
        )

    async def _latest_snapshot(self, session, profile_id, sport_id, category, scope_value):
        result = await session.execute(
            select(RankingSnapshot)
            .where(
                RankingSnapshot.profile_id == profile_id,
                RankingSnapshot.sport_id == sport_id,
                RankingSnapshot.period == RankingPeriod.ALL_TIME,
                RankingSnapshot.category == category,
                RankingSnapshot.scope_value == scope_value
            )
            .order_by(RankingSnapshot.computed_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _score_spread(best_scores) -> Optional[float]:
        """Population standard deviation of technique bests, one decimal."""
        if len(best_scores) < 2:
            return None
        mean = sum(best_scores) / len(best_scores)
        variance = sum((score - mean) ** 2 for score in best_scores) / len(best_scores)
        return round(math.sqrt(variance), 1)
