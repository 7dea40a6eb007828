"""
Caller identity passed into mutating operations.

The HTTP layer builds an Actor from the API key (see dashboard/api/middleware.py);
cron routes and CLI scripts use ``SYSTEM_ACTOR``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from scripts.lib.errors import UnauthorizedError

ADMIN = "admin"
MANAGER = "manager"
EMPLOYEE = "employee"


@dataclass(frozen=True)
class Actor:
    user_id: Optional[str]
    role: str = EMPLOYEE

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN

    def require_admin(self):
        """Short-circuit before any side effect when the caller is not an admin."""
        if not self.is_admin:
            raise UnauthorizedError()

    def require_user(self):
        if not self.user_id and not self.is_admin:
            raise UnauthorizedError("Not authenticated", required_role="user")

    def can_modify(self, owner_id: Optional[str]) -> bool:
        return self.is_admin or (self.user_id is not None and self.user_id == owner_id)


SYSTEM_ACTOR = Actor(user_id=None, role=ADMIN)
