"""Authenticated principal carried through a request."""

from dataclasses import dataclass

from testhub.models.auth import UserRole


@dataclass(frozen=True)
class Principal:
    id: int
    role: UserRole
    email: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def actor(self) -> str:
        """Value stamped into created_by / updated_by columns."""
        return str(self.id)

    @classmethod
    def from_user(cls, user) -> "Principal":
        return cls(id=user.id, role=UserRole(user.user_role), email=user.email)
