"""
Caller context passed explicitly through every engine operation.

The authentication layer resolves an opaque caller id and a role string; the
engine never reads "the current user" from ambient state.
"""

from core.constants import ALL_ROLES, ELEVATED_ROLES, ROLE_THERAPIST, ROLE_PARENT


class CallerContext:
    """Identity and role of whoever is calling the engine."""

    def __init__(self, user_id: int, role: str):
        if role not in ALL_ROLES:
            raise ValueError(f"Unknown role: {role}")
        self.user_id = user_id
        self.role = role

    def is_elevated(self) -> bool:
        """Admins and operations managers pass every capability check."""
        return self.role in ELEVATED_ROLES

    def is_therapist(self) -> bool:
        return self.role == ROLE_THERAPIST

    def is_guardian(self) -> bool:
        return self.role == ROLE_PARENT

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CallerContext):
            return NotImplemented
        return self.user_id == other.user_id and self.role == other.role

    def __hash__(self) -> int:
        return hash((self.user_id, self.role))

    def __repr__(self) -> str:
        return f"CallerContext(user_id={self.user_id}, role='{self.role}')"
