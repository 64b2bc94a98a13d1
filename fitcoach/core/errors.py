"""
Error taxonomy for the coaching core.

Every error the core surfaces to callers is one of these types. Callers
(the API layer, the save pipeline) decide how to present them; the core
never swallows them.
"""

from typing import Optional


class CoachingError(Exception):
    """Base class for all errors raised by the coaching core."""
    pass


class InvariantViolation(CoachingError):
    """
    A data invariant was found broken in storage.

    The canonical case is two simultaneously active training programs for
    one client. This should be unreachable when activation goes through
    ProgramLifecycle, so it is treated as fatal: logged and surfaced,
    never silently repaired.
    """
    pass


class WriteUnauthorized(CoachingError, PermissionError):
    """The acting party may not write this column."""

    def __init__(self, column_id: str, role: str) -> None:
        self.column_id = column_id
        self.role = role
        super().__init__(f"Role '{role}' may not write column {column_id}")


class PersistenceFailure(CoachingError):
    """
    The underlying store failed or timed out.

    Retryable. The original backend exception, if any, is chained as
    __cause__.
    """
    pass


class PartialAggregationFailure(CoachingError):
    """One of the session-type fetches for a schedule failed."""

    def __init__(self, session_type: str, reason: str) -> None:
        self.session_type = session_type
        self.reason = reason
        super().__init__(
            f"Could not load {session_type} sessions: {reason}"
        )


class RecordNotFound(CoachingError, LookupError):
    """A program, plan or session id does not exist."""

    def __init__(self, table: str, record_id: Optional[str]) -> None:
        self.table = table
        self.record_id = record_id
        super().__init__(f"No record {record_id} in {table}")


class UnknownCellAddress(CoachingError, LookupError):
    """A write targeted an exercise, column or week the program doesn't have."""
    pass


class InvalidCellValue(CoachingError, ValueError):
    """A value does not match the data type of the column it is written to."""
    pass


class AccessDenied(CoachingError, PermissionError):
    """A client tried to reach another client's data."""

    def __init__(self, actor_id: str, client_id: Optional[str]) -> None:
        self.actor_id = actor_id
        self.client_id = client_id
        super().__init__(f"Actor {actor_id} may not access data of client {client_id}")


class InvalidTransition(CoachingError):
    """A lifecycle change that would break the program status rules."""
    pass
