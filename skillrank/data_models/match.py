"""
Match confirmation data models.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from skillrank.database.models import Match


class ConfirmationError(Enum):
    MATCH_NOT_FOUND = "MATCH_NOT_FOUND"
    NOT_PARTICIPANT = "NOT_PARTICIPANT"
    ALREADY_CONFIRMED = "ALREADY_CONFIRMED"


@dataclass(frozen=True)
class ConfirmationResult:
    """
    Outcome of one confirm call.

    Either `match` is set (the confirmation was recorded) or `error` names
    the business rule that rejected it; nothing was written in that case.
    """
    match: Optional["Match"] = None
    error: Optional[ConfirmationError] = None
    user_message: Optional[str] = None
    rating_applied: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None
