"""
Player Operations Module

Business logic for PlayerProfile and SportProfile lifecycle.

Key functionality:
- get_or_create_profile(): one PlayerProfile per user, never duplicated
- join_sport(): lazily creates the SportProfile for (profile, sport)
- get_or_create_sport_profile(): the same step, reusable inside a caller's
  transaction (the Score Aggregator creates SportProfiles this way)
"""

from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from skillrank.config import Config
from skillrank.database.models import PlayerProfile, Sport, SportProfile, SkillTier
from skillrank.utils.exceptions import ProfileValidationError
from skillrank.utils.logger import setup_logger

logger = setup_logger(__name__)


class PlayerOperations:
    """Atomic operations for player profiles and their per-sport profiles."""

    def __init__(self, database):
        """Initialize with database instance"""
        self.db = database
        self.logger = logger

    @asynccontextmanager
    async def _get_session_context(self, session: Optional[AsyncSession] = None):
        """
        Provides a transactional context. Uses the provided session if
        available, otherwise creates and manages a new transaction.
        """
        if session:
            # If a session is provided, we do not manage its lifecycle
            yield session
        else:
            async with self.db.transaction() as new_session:
                yield new_session

    async def get_or_create_profile(
        self,
        user_id: str,
        display_name: Optional[str] = None,
        country: Optional[str] = None,
        region: Optional[str] = None,
        city: Optional[str] = None,
        session: Optional[AsyncSession] = None
    ) -> PlayerProfile:
        """
        Get the PlayerProfile for a user or create it (idempotent).

        Location fields are only applied on creation; an existing profile is
        returned unchanged.

        Raises:
            ProfileValidationError: If user_id or country is malformed
        """
        if not user_id or not str(user_id).strip():
            raise ProfileValidationError("user_id is required")
        country = (country or Config.DEFAULT_COUNTRY).strip().upper()
        if len(country) != 2 or not country.isalpha():
            raise ProfileValidationError(f"Invalid country code '{country}'", "Country must be a 2-letter code.")

        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(PlayerProfile).where(PlayerProfile.user_id == user_id)
            )
            existing = result.scalar_one_or_none()
            if existing:
                self.logger.debug(f"Found existing PlayerProfile {existing.id} for user {user_id}")
                return existing

            profile = PlayerProfile(
                user_id=user_id,
                display_name=display_name,
                country=country,
                region=region,
                city=city
            )
            s.add(profile)
            await s.flush()
            self.logger.info(f"Created PlayerProfile {profile.id} for user {user_id} ({country})")
            return profile

    async def get_or_create_sport_profile(
        self,
        session: AsyncSession,
        profile_id: int,
        sport_id: int
    ) -> SportProfile:
        """
        Fetch the SportProfile for (profile, sport) with a row lock, creating
        it with starting values when missing. Runs inside the caller's
        transaction.
        """
        result = await session.execute(
            select(SportProfile)
            .where(
                SportProfile.profile_id == profile_id,
                SportProfile.sport_id == sport_id
            )
            .with_for_update()
        )
        sport_profile = result.scalar_one_or_none()
        if sport_profile:
            return sport_profile

        profile = await session.get(PlayerProfile, profile_id)
        if not profile:
            raise ProfileValidationError(f"PlayerProfile {profile_id} not found", "Profile not found.")
        sport = await session.get(Sport, sport_id)
        if not sport or not sport.is_active:
            raise ProfileValidationError(f"Sport {sport_id} not found or inactive", "Sport not found.")

        sport_profile = SportProfile(
            profile_id=profile_id,
            sport_id=sport_id,
            skill_tier=SkillTier.UNRANKED,
            match_elo=Config.STARTING_ELO,
            matches_played=0,
            matches_won=0,
            total_analyses=0,
            total_techniques=0
        )
        # Savepoint so a concurrent insert of the same pair does not poison the outer transaction
        try:
            async with session.begin_nested():
                session.add(sport_profile)
        except IntegrityError:
            result = await session.execute(
                select(SportProfile).where(
                    SportProfile.profile_id == profile_id,
                    SportProfile.sport_id == sport_id
                )
            )
            return result.scalar_one()

        self.logger.info(f"Created SportProfile {sport_profile.id} (profile={profile_id}, sport={sport_id})")
        return sport_profile

    async def join_sport(self, profile_id: int, sport_id: int) -> SportProfile:
        """Create (or return) the player's SportProfile for a sport."""
        async with self.db.transaction() as session:
            return await self.get_or_create_sport_profile(session, profile_id, sport_id)
