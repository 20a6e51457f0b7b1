"""
Challenge Operations Service

Handles the business logic that leads to a Match:

- create_challenge(): one player challenges another in a sport
- accept_challenge(): the challenged player accepts, which creates the
  linked Match awaiting both confirmations
- decline_challenge() / cancel_challenge(): terminal exits before a match
- log_match(): a match played without a prior challenge

A Challenge is completed by the second confirmation of its Match, never
from here.
"""

from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from skillrank.database.database import Database
from skillrank.database.match_operations import MatchOperations
from skillrank.database.models import Challenge, ChallengeStatus, Match, SportProfile
from skillrank.operations.player_operations import PlayerOperations
from skillrank.utils.exceptions import ChallengeStateError, MatchValidationError
from skillrank.utils.logger import setup_logger
from skillrank.utils.time_utils import utcnow

logger = setup_logger(__name__)

MAX_MESSAGE_LENGTH = 500

ACTIVE_STATUSES = (ChallengeStatus.PENDING, ChallengeStatus.ACCEPTED)


@dataclass
class ChallengeAcceptanceResult:
    """Result of challenge acceptance operation"""
    challenge: Challenge
    match: Match


class ChallengeOperations:
    """
    Service class for challenge-related operations.

    Challenges are between SportProfiles of the same sport; the acting
    player is always identified by PlayerProfile id.
    """

    def __init__(self, db: Database, player_ops: Optional[PlayerOperations] = None,
                 match_ops: Optional[MatchOperations] = None):
        """
        Initialize ChallengeOperations with database connection.

        Args:
            db: Database instance for persistence
            player_ops: Shared PlayerOperations (created when omitted)
            match_ops: Shared MatchOperations (created when omitted)
        """
        self.db = db
        self.player_ops = player_ops or PlayerOperations(db)
        self.match_ops = match_ops or MatchOperations(db)
        self.logger = setup_logger(f"{__name__}.ChallengeOperations")

    async def create_challenge(
        self,
        sport_id: int,
        challenger_profile_id: int,
        challenged_profile_id: int,
        message: Optional[str] = None,
        session: Optional[AsyncSession] = None
    ) -> Challenge:
        """
        Create a new challenge between two players of a sport.

        Both players get a SportProfile for the sport if they lack one.

        Args:
            sport_id: Sport the match will be played in
            challenger_profile_id: PlayerProfile issuing the challenge
            challenged_profile_id: PlayerProfile being challenged
            message: Optional note for the opponent
            session: Optional existing database session

        Returns:
            Created Challenge in PENDING status

        Raises:
            ChallengeStateError: If the players match or an active challenge
                between them already exists
        """
        if challenger_profile_id == challenged_profile_id:
            raise ChallengeStateError("Players cannot challenge themselves", "You cannot challenge yourself.")
        if message is not None and len(message) > MAX_MESSAGE_LENGTH:
            raise ChallengeStateError("Challenge message too long", "Message is too long.")

        async def _create(session: AsyncSession) -> Challenge:
            challenger = await self.player_ops.get_or_create_sport_profile(
                session, challenger_profile_id, sport_id
            )
            challenged = await self.player_ops.get_or_create_sport_profile(
                session, challenged_profile_id, sport_id
            )

            if await self._has_active_challenge(sport_id, challenger.id, challenged.id, session):
                raise ChallengeStateError(
                    f"Active challenge already exists between {challenger.id} and {challenged.id}",
                    "You already have an open challenge with this player."
                )

            challenge = Challenge(
                sport_id=sport_id,
                challenger_id=challenger.id,
                challenged_id=challenged.id,
                status=ChallengeStatus.PENDING,
                message=message
            )
            session.add(challenge)
            await session.flush()

            self.logger.info(
                f"Created challenge {challenge.id} in sport {sport_id}: "
                f"{challenger.id} -> {challenged.id}"
            )
            return challenge

        # Use provided session or create new transaction
        if session:
            return await _create(session)
        else:
            async with self.db.transaction() as txn_session:
                return await _create(txn_session)

    async def get_challenge_by_id(self, challenge_id: int) -> Optional[Challenge]:
        async with self.db.get_session() as session:
            return await session.get(Challenge, challenge_id)

    async def accept_challenge(
        self,
        challenge_id: int,
        acting_profile_id: int,
        played_at=None
    ) -> ChallengeAcceptanceResult:
        """
        Accept a pending challenge and create its Match.

        Only the challenged player may accept. The Match is created in the
        same transaction, challenger as player1.

        Raises:
            ChallengeStateError: If the challenge is missing, not pending, or
                the actor is not the challenged player
        """
        async with self.db.transaction() as session:
            challenge = await self._lock_challenge(challenge_id, session)
            challenged = await self._sport_profile_owner(session, challenge.challenged_id)

            if challenged != acting_profile_id:
                raise ChallengeStateError(
                    f"Profile {acting_profile_id} cannot accept challenge {challenge_id}",
                    "Only the challenged player can accept this challenge."
                )
            if challenge.status != ChallengeStatus.PENDING:
                raise ChallengeStateError(
                    f"Challenge {challenge_id} is {challenge.status.value}",
                    "This challenge is no longer pending."
                )

            challenge.status = ChallengeStatus.ACCEPTED
            challenge.accepted_at = utcnow()

            match = await self.match_ops.create_match(
                sport_id=challenge.sport_id,
                player1_id=challenge.challenger_id,
                player2_id=challenge.challenged_id,
                challenge_id=challenge.id,
                played_at=played_at,
                session=session
            )

        self.logger.info(f"Challenge {challenge_id} accepted; created Match {match.id}")
        return ChallengeAcceptanceResult(challenge=challenge, match=match)

    async def decline_challenge(self, challenge_id: int, acting_profile_id: int) -> Challenge:
        """Decline a pending challenge (challenged player only)."""
        async with self.db.transaction() as session:
            challenge = await self._lock_challenge(challenge_id, session)
            challenged = await self._sport_profile_owner(session, challenge.challenged_id)

            if challenged != acting_profile_id:
                raise ChallengeStateError(
                    f"Profile {acting_profile_id} cannot decline challenge {challenge_id}",
                    "Only the challenged player can decline this challenge."
                )
            if challenge.status != ChallengeStatus.PENDING:
                raise ChallengeStateError(
                    f"Challenge {challenge_id} is {challenge.status.value}",
                    "This challenge is no longer pending."
                )

            challenge.status = ChallengeStatus.DECLINED

        self.logger.info(f"Challenge {challenge_id} declined by profile {acting_profile_id}")
        return challenge

    async def cancel_challenge(self, challenge_id: int, acting_profile_id: int) -> Challenge:
        """Withdraw a pending challenge (challenger only)."""
        async with self.db.transaction() as session:
            challenge = await self._lock_challenge(challenge_id, session)
            challenger = await self._sport_profile_owner(session, challenge.challenger_id)

            if challenger != acting_profile_id:
                raise ChallengeStateError(
                    f"Profile {acting_profile_id} cannot cancel challenge {challenge_id}",
                    "Only the challenger can cancel this challenge."
                )
            if challenge.status != ChallengeStatus.PENDING:
                raise ChallengeStateError(
                    f"Challenge {challenge_id} is {challenge.status.value}",
                    "Only pending challenges can be cancelled."
                )

            challenge.status = ChallengeStatus.CANCELLED

        self.logger.info(f"Challenge {challenge_id} cancelled by profile {acting_profile_id}")
        return challenge

    async def get_active_challenges(self, sport_profile_id: int) -> List[Challenge]:
        """Pending and accepted challenges a SportProfile is part of, newest first."""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Challenge)
                .where(
                    and_(
                        or_(
                            Challenge.challenger_id == sport_profile_id,
                            Challenge.challenged_id == sport_profile_id
                        ),
                        Challenge.status.in_(ACTIVE_STATUSES)
                    )
                )
                .order_by(Challenge.created_at.desc(), Challenge.id.desc())
            )
            return result.scalars().all()

    async def log_match(
        self,
        sport_id: int,
        reporter_profile_id: int,
        opponent_profile_id: int,
        played_at=None,
        score: Optional[str] = None
    ) -> Match:
        """
        Register a match that was played without a challenge.

        The reporter becomes player1. Both sides still confirm their own
        result through confirm_match.
        """
        if reporter_profile_id == opponent_profile_id:
            raise MatchValidationError("A match needs two different players", "You cannot play against yourself.")

        async with self.db.transaction() as session:
            reporter = await self.player_ops.get_or_create_sport_profile(
                session, reporter_profile_id, sport_id
            )
            opponent = await self.player_ops.get_or_create_sport_profile(
                session, opponent_profile_id, sport_id
            )
            match = await self.match_ops.create_match(
                sport_id=sport_id,
                player1_id=reporter.id,
                player2_id=opponent.id,
                played_at=played_at,
                score=score,
                session=session
            )

        return match

    async def _lock_challenge(self, challenge_id: int, session: AsyncSession) -> Challenge:
        result = await session.execute(
            select(Challenge)
            .where(Challenge.id == challenge_id)
            .with_for_update()
        )
        challenge = result.scalar_one_or_none()
        if not challenge:
            raise ChallengeStateError(f"Challenge {challenge_id} not found", "Challenge not found.")
        return challenge

    async def _sport_profile_owner(self, session: AsyncSession, sport_profile_id: int) -> Optional[int]:
        sport_profile = await session.get(SportProfile, sport_profile_id)
        return sport_profile.profile_id if sport_profile else None

    async def _has_active_challenge(
        self,
        sport_id: int,
        first_id: int,
        second_id: int,
        session: AsyncSession
    ) -> bool:
        result = await session.execute(
            select(Challenge.id)
            .where(
                Challenge.sport_id == sport_id,
                Challenge.status.in_(ACTIVE_STATUSES),
                or_(
                    and_(Challenge.challenger_id == first_id, Challenge.challenged_id == second_id),
                    and_(Challenge.challenger_id == second_id, Challenge.challenged_id == first_id)
                )
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None
