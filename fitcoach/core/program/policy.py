"""
Column policy: who may write a column, and which week a write lands in.

The UI hides inputs the actor can't use, but that's cosmetic. This policy
is the authoritative gate for every writer, including scripts and API
callers.
"""

import logging

from ..context import ActorContext, Role
from ..errors import WriteUnauthorized
from .models import ALL_WEEKS, Column, ColumnScope

logger = logging.getLogger(__name__)


class ColumnPolicy:
    """
    Write authorization and week resolution for matrix columns.

    - Coaches may write every column: they author prescriptions and can
      back-fill a client's log.
    - Clients may only write columns marked editable_by_client.
    - EXERCISE-scoped columns always resolve to the ALL_WEEKS sentinel;
      WEEK-scoped columns use the requested week.
    """

    def can_write(self, column: Column, role: Role) -> bool:
        if role is Role.COACH:
            return True
        return column.editable_by_client

    def authorize_write(self, column: Column, actor: ActorContext) -> None:
        """Raise WriteUnauthorized unless the actor may write this column."""
        if not self.can_write(column, actor.role):
            logger.warning(
                "Rejected write to coach-only column",
                extra={
                    "column_id": column.id,
                    "actor_id": actor.actor_id,
                    "role": actor.role.value,
                }
            )
            raise WriteUnauthorized(column.id, actor.role.value)

    def resolve_week(self, column: Column, week: int) -> int:
        if column.scope is ColumnScope.EXERCISE:
            return ALL_WEEKS
        return week
