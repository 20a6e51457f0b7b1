"""
Exception hierarchy for the rating engine with user-friendly error messages.

Validation errors reject malformed input before anything is written.
State errors describe business-rule conflicts (a match that does not exist,
an actor who is not a participant, a duplicate confirmation) and are raised
only before the first write of a transaction.
"""

class SkillRankError(Exception):
    """Base exception for rating engine errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message


class OperationError(SkillRankError):
    """Raised when a database operation fails unexpectedly."""
    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Database error during {operation}: {details}",
            "Something went wrong. Please try again later."
        )


# Validation errors

class ValidationError(SkillRankError):
    """Malformed input rejected synchronously."""
    pass


class ScoreValidationError(ValidationError):
    """Raised when a technique score is outside the 0-100 scale."""
    def __init__(self, score, reason: str):
        super().__init__(
            f"Invalid score {score!r}: {reason}",
            reason
        )


class TierValidationError(ValidationError):
    """Raised when a tier name is not part of the closed tier set."""
    def __init__(self, value):
        super().__init__(
            f"Unknown tier {value!r}",
            "Unknown category."
        )


class MatchValidationError(ValidationError):
    """Raised when match input data is invalid"""
    pass


class ProfileValidationError(ValidationError):
    """Raised when profile or sport data is invalid"""
    pass


# State conflicts

class MatchStateError(SkillRankError):
    """Raised when a match is in an invalid state for the operation"""
    code = None


class MatchNotFoundError(MatchStateError):
    code = "MATCH_NOT_FOUND"

    def __init__(self, match_id: int):
        super().__init__(
            f"Match {match_id} not found",
            "Match not found."
        )
        self.match_id = match_id


class NotParticipantError(MatchStateError):
    code = "NOT_PARTICIPANT"

    def __init__(self, match_id: int, profile_id: int):
        super().__init__(
            f"Profile {profile_id} is not a participant in Match {match_id}",
            "You are not part of this match."
        )
        self.match_id = match_id
        self.profile_id = profile_id


class AlreadyConfirmedError(MatchStateError):
    code = "ALREADY_CONFIRMED"

    def __init__(self, match_id: int, profile_id: int):
        super().__init__(
            f"Profile {profile_id} already confirmed Match {match_id}",
            "You already confirmed this match."
        )
        self.match_id = match_id
        self.profile_id = profile_id


class ChallengeStateError(SkillRankError):
    """Raised when a challenge cannot make the requested transition."""
    pass
