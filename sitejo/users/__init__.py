"""User accounts, roles and authentication."""

from .models import Role, User

__all__ = ["Role", "User"]
