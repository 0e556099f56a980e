"""
Engine error kinds.

Every error is scoped to a single tournament operation and carries enough
context (match, slot, violated invariant) for the caller to act on it.
None of them is fatal to the process.
"""
from typing import Any, Dict, Optional


class TournamentEngineError(Exception):
    """Base exception for bracket, scoring and scheduling errors"""

    def __init__(
        self,
        message: str,
        *,
        match_id: Optional[int] = None,
        slot_id: Optional[int] = None,
        invariant: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.match_id = match_id
        self.slot_id = slot_id
        self.invariant = invariant

    def to_dict(self) -> Dict[str, Any]:
        detail: Dict[str, Any] = {"error": type(self).__name__, "message": self.message}
        if self.match_id is not None:
            detail["match_id"] = self.match_id
        if self.slot_id is not None:
            detail["slot_id"] = self.slot_id
        if self.invariant is not None:
            detail["invariant"] = self.invariant
        return detail


class NotFoundError(TournamentEngineError):
    """Referenced tournament, match or slot does not exist"""

    pass


class ValidationError(TournamentEngineError):
    """Malformed input: bad seed list, unknown format, impossible score"""

    pass


class InconsistentBracketError(TournamentEngineError):
    """Advancement requested in an order the bracket cannot accept"""

    pass


class SlotConflictError(TournamentEngineError):
    """Reschedule or swap onto a slot held by another match"""

    pass


class GenerationFailure(TournamentEngineError):
    """Slot generation could not be committed after rollback and retry"""

    pass
