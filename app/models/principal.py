from __future__ import annotations

from dataclasses import dataclass

STUDENT = "student"
TEACHER = "teacher"
ADMIN = "admin"


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller extracted from a validated JWT.

    user_id: token subject
    roles: subset of {student, teacher, admin}
    """

    user_id: str
    roles: frozenset[str]

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: set[str]) -> bool:
        return bool(self.roles & roles)

    def is_admin(self) -> bool:
        return ADMIN in self.roles

    def owns_or_admin(self, owner_id: str) -> bool:
        return self.user_id == owner_id or self.is_admin()
