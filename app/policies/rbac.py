from __future__ import annotations
from dataclasses import dataclass

from app.models.enums import UserRole


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: UserRole
    name: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def can_read(self, owner_id) -> bool:
        """Buyers see their own orders and deeds; admins see everything."""
        return self.is_admin or str(owner_id) == self.user_id
