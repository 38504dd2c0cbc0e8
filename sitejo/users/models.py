from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Single role held by every account."""

    STUDENT = "student"
    LECTURER = "lecturer"
    ADMIN = "admin"


@dataclass(slots=True)
class User:
    """Authenticated account; also the actor passed to services."""

    id: str
    name: str
    email: str
    nim_nip: str
    role: Role
    phone: str | None
    created_at: datetime
    updated_at: datetime

    def is_student(self) -> bool:
        return self.role is Role.STUDENT

    def is_lecturer(self) -> bool:
        return self.role is Role.LECTURER

    def is_admin(self) -> bool:
        return self.role is Role.ADMIN
