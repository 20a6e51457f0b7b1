"""
Match Operations Module - two-party confirmation and rating

This module owns the Match lifecycle:

- create_match() / log_match(): a contest between two SportProfiles of the
  same sport, optionally linked to the Challenge it came from
- confirm_match(): the confirmation state machine
      AWAITING_BOTH -> AWAITING_OPPONENT -> RATED
  Each participant confirms once with their self-reported result. The
  confirmation that completes the pair applies the Elo update for both sides
  in the same transaction.

Concurrency contract for confirm_match():
- one transaction per call; the match row is re-read inside it with
  SELECT ... FOR UPDATE (BEGIN IMMEDIATE on SQLite) so two participants
  confirming at the same moment are serialised
- duplicate submissions and client retries are rejected as ALREADY_CONFIRMED
  before anything is written, so the rating update runs at most once
- SportProfile counters are written as SQL increments
"""

from typing import List, Optional, Union

from sqlalchemy import select, update, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from skillrank.data_models.match import ConfirmationError, ConfirmationResult
from skillrank.database.models import (
    Challenge, ChallengeStatus, Match, MatchResult, SportProfile
)
from skillrank.utils.elo import EloCalculator
from skillrank.utils.exceptions import (
    AlreadyConfirmedError, MatchNotFoundError, MatchStateError, MatchValidationError,
    NotParticipantError, OperationError
)
from skillrank.utils.logger import setup_logger
from skillrank.utils.time_utils import as_naive_utc, utcnow

logger = setup_logger(__name__)

MAX_SCORE_TEXT_LENGTH = 100


def parse_match_result(value: Union[str, MatchResult]) -> MatchResult:
    """Validate a self-reported result at the boundary."""
    if isinstance(value, MatchResult):
        return value
    try:
        return MatchResult(str(value).strip().upper())
    except ValueError:
        raise MatchValidationError(
            f"Unknown match result {value!r}",
            "Result must be WIN, LOSS or NO_SHOW."
        )


class MatchOperations:
    """
    Core service class for Match operations.

    Provides atomic, transactional operations for the match lifecycle,
    including the exactly-once rating update on confirmation.
    """

    def __init__(self, database):
        """Initialize with database instance"""
        self.db = database
        self.logger = logger

    async def create_match(
        self,
        sport_id: int,
        player1_id: int,
        player2_id: int,
        challenge_id: Optional[int] = None,
        played_at=None,
        score: Optional[str] = None,
        session: Optional[AsyncSession] = None
    ) -> Match:
        """
        Create a Match between two SportProfiles.

        Args:
            sport_id: Sport the match is played in
            player1_id: SportProfile id of the first side
            player2_id: SportProfile id of the second side
            challenge_id: Optional Challenge this match resolves
            played_at: When the match was played
            score: Optional free-text score ("6-4 6-3")
            session: Caller's transaction, if any

        Returns:
            Match: The created match, awaiting both confirmations

        Raises:
            MatchValidationError: If the two sides are invalid for this sport
        """
        score = self._validate_score_text(score)
        if player1_id == player2_id:
            raise MatchValidationError("A match needs two different players", "You cannot play against yourself.")

        if session is not None:
            return await self._create_match(session, sport_id, player1_id, player2_id,
                                            challenge_id, played_at, score)

        async with self.db.transaction() as new_session:
            return await self._create_match(new_session, sport_id, player1_id, player2_id,
                                            challenge_id, played_at, score)

    async def _create_match(self, session, sport_id, player1_id, player2_id,
                            challenge_id, played_at, score) -> Match:
        result = await session.execute(
            select(SportProfile).where(SportProfile.id.in_([player1_id, player2_id]))
        )
        sport_profiles = {sp.id: sp for sp in result.scalars().all()}

        missing = {player1_id, player2_id} - set(sport_profiles)
        if missing:
            raise MatchValidationError(f"SportProfiles not found: {sorted(missing)}", "Player not found.")
        if any(sp.sport_id != sport_id for sp in sport_profiles.values()):
            raise MatchValidationError(
                f"SportProfiles {player1_id}/{player2_id} are not both in sport {sport_id}",
                "Both players must play the same sport."
            )
        if sport_profiles[player1_id].profile_id == sport_profiles[player2_id].profile_id:
            raise MatchValidationError("A match needs two different players", "You cannot play against yourself.")

        match = Match(
            sport_id=sport_id,
            player1_id=player1_id,
            player2_id=player2_id,
            challenge_id=challenge_id,
            player1_confirmed=False,
            player2_confirmed=False,
            played_at=as_naive_utc(played_at),
            score=score
        )
        session.add(match)
        await session.flush()

        self.logger.info(f"Created Match {match.id} ({player1_id} vs {player2_id}, sport {sport_id})")
        return match

    async def get_match(self, match_id: int) -> Optional[Match]:
        async with self.db.get_session() as session:
            return await session.get(Match, match_id)

    async def get_matches_for_profile(self, sport_profile_id: int, limit: int = 20) -> List[Match]:
        """Most recent matches a SportProfile took part in."""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Match)
                .where(or_(Match.player1_id == sport_profile_id, Match.player2_id == sport_profile_id))
                .order_by(Match.created_at.desc(), Match.id.desc())
                .limit(limit)
            )
            return result.scalars().all()

    async def confirm_match(
        self,
        match_id: int,
        acting_profile_id: int,
        result: Union[str, MatchResult],
        score: Optional[str] = None
    ) -> ConfirmationResult:
        """
        Record one participant's confirmation and, when it completes the
        pair, apply the rating update for both sides.

        Args:
            match_id: Match being confirmed
            acting_profile_id: PlayerProfile id of the participant confirming
            result: The participant's own result (WIN, LOSS or NO_SHOW)
            score: Optional free-text score to store on the match

        Returns:
            ConfirmationResult: the updated match, or the business rule that
            rejected the call (MATCH_NOT_FOUND, NOT_PARTICIPANT,
            ALREADY_CONFIRMED) with nothing written

        Raises:
            MatchValidationError: If result or score is malformed
            OperationError: If the database operation fails
        """
        result = parse_match_result(result)
        score = self._validate_score_text(score)

        try:
            async with self.db.transaction() as session:
                outcome = await self._confirm_in_transaction(
                    session, match_id, acting_profile_id, result, score
                )
        except MatchStateError as e:
            self.logger.info(f"Rejected confirmation of Match {match_id} by profile {acting_profile_id}: {e}")
            return ConfirmationResult(
                error=ConfirmationError(e.code),
                user_message=e.user_message
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to confirm Match {match_id}: {e}", exc_info=True)
            raise OperationError("confirm_match", str(e))

        return outcome

    async def _confirm_in_transaction(
        self,
        session: AsyncSession,
        match_id: int,
        acting_profile_id: int,
        result: MatchResult,
        score: Optional[str]
    ) -> ConfirmationResult:
        # Re-read the match inside this transaction; never trust a prior read
        match = (await session.execute(
            select(Match)
            .where(Match.id == match_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )).scalar_one_or_none()

        if not match:
            raise MatchNotFoundError(match_id)

        players = await self._lock_players(session, match)
        player1, player2 = players[match.player1_id], players[match.player2_id]

        if player1.profile_id == acting_profile_id:
            side = 1
        elif player2.profile_id == acting_profile_id:
            side = 2
        else:
            raise NotParticipantError(match_id, acting_profile_id)

        if getattr(match, f"player{side}_confirmed"):
            raise AlreadyConfirmedError(match_id, acting_profile_id)

        # Mutations start here
        setattr(match, f"player{side}_result", result)
        setattr(match, f"player{side}_confirmed", True)
        if score:
            match.score = score
        await session.flush()

        self.logger.info(f"Profile {acting_profile_id} confirmed Match {match_id} as {result.value}")

        rating_applied = False
        if match.player1_confirmed and match.player2_confirmed:
            rating_applied = await self._apply_rating(session, match, player1, player2)
            if match.challenge_id:
                await self._complete_challenge(session, match.challenge_id)

        return ConfirmationResult(match=match, rating_applied=rating_applied)

    async def _lock_players(self, session: AsyncSession, match: Match) -> dict:
        rows = await session.execute(
            select(SportProfile)
            .where(SportProfile.id.in_([match.player1_id, match.player2_id]))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return {sp.id: sp for sp in rows.scalars().all()}

    async def _apply_rating(
        self,
        session: AsyncSession,
        match: Match,
        player1: SportProfile,
        player2: SportProfile
    ) -> bool:
        """
        Apply the Elo update for both sides of a fully confirmed match.

        Ratings and match counts are the ones read in this transaction.
        Returns False when neither side reported a WIN (double no-show).
        """
        p1_won = match.player1_result == MatchResult.WIN
        p2_won = match.player2_result == MatchResult.WIN

        if not (p1_won or p2_won):
            self.logger.info(f"Match {match.id} confirmed without a winner; no rating change")
            return False

        if p1_won and p2_won:
            # Contradictory reports are accepted as-is
            self.logger.warning(f"Match {match.id}: both sides reported WIN; rating both as winners")

        p1_elo = EloCalculator.rate(player1.match_elo, player2.match_elo,
                                    1 if p1_won else 0, player1.matches_played)
        p2_elo = EloCalculator.rate(player2.match_elo, player1.match_elo,
                                    1 if p2_won else 0, player2.matches_played)

        for player, elo, won in ((player1, p1_elo, p1_won), (player2, p2_elo, p2_won)):
            await session.execute(
                update(SportProfile)
                .where(SportProfile.id == player.id)
                .values(
                    match_elo=SportProfile.match_elo + elo.elo_change,
                    matches_played=SportProfile.matches_played + 1,
                    matches_won=SportProfile.matches_won + (1 if won else 0)
                )
                .execution_options(synchronize_session="fetch")
            )

        now = utcnow()
        match.player1_elo_change = p1_elo.elo_change
        match.player2_elo_change = p2_elo.elo_change
        match.rated_at = now
        await session.flush()

        self.logger.info(
            f"Rated Match {match.id}: "
            f"{match.player1_id} {EloCalculator.format_elo_change(p1_elo.elo_change)} -> {p1_elo.new_elo}, "
            f"{match.player2_id} {EloCalculator.format_elo_change(p2_elo.elo_change)} -> {p2_elo.new_elo}"
        )
        return True

    async def _complete_challenge(self, session: AsyncSession, challenge_id: int) -> None:
        """Close the Challenge a fully confirmed match came from, with or without a rating change."""
        await session.execute(
            update(Challenge)
            .where(Challenge.id == challenge_id)
            .values(status=ChallengeStatus.COMPLETED, completed_at=utcnow())
        )
        self.logger.info(f"Challenge {challenge_id} completed")

    @staticmethod
    def _validate_score_text(score: Optional[str]) -> Optional[str]:
        if score is None:
            return None
        if not isinstance(score, str):
            raise MatchValidationError(f"Score must be text, got {type(score).__name__}", "Invalid score.")
        score = score.strip()
        if len(score) > MAX_SCORE_TEXT_LENGTH:
            raise MatchValidationError("Score text too long", "Score is too long.")
        return score or None
