"""
Acting context for core operations.

The identity of whoever is performing an operation is passed in explicitly
on every call. There is no ambient "current mode": a coach who is also
training as a client simply builds a different ActorContext.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import AccessDenied


class Role(Enum):
    """Which side of the coaching relationship is acting."""
    COACH = "coach"
    CLIENT = "client"


@dataclass(frozen=True)
class ActorContext:
    """Who is acting, and for which client."""
    role: Role
    actor_id: str
    client_id: Optional[str] = None

    @classmethod
    def coach(cls, coach_id: str, client_id: Optional[str] = None) -> "ActorContext":
        return cls(role=Role.COACH, actor_id=coach_id, client_id=client_id)

    @classmethod
    def client(cls, client_id: str) -> "ActorContext":
        return cls(role=Role.CLIENT, actor_id=client_id, client_id=client_id)

    @property
    def is_coach(self) -> bool:
        return self.role is Role.COACH

    def can_access(self, client_id: Optional[str]) -> bool:
        """Coaches reach every client; a client only reaches their own data."""
        if self.is_coach:
            return True
        return client_id is not None and client_id == self.client_id

    def ensure_access(self, client_id: Optional[str]) -> None:
        if not self.can_access(client_id):
            raise AccessDenied(self.actor_id, client_id)
