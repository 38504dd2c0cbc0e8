"""Service-layer exception hierarchy.

Services raise these; the API layer maps each base class to one HTTP status
in :func:`sitejo.main.register_exception_handlers`.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence


class ServiceError(RuntimeError):
    """Base class for expected service failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InputValidationError(ServiceError):
    """Raised when a request is well-formed but semantically invalid."""

    def __init__(
        self,
        message: str,
        errors: Mapping[str, Sequence[str]] | None = None,
    ) -> None:
        super().__init__(message)
        self.errors: dict[str, list[str]] = {
            field: list(messages) for field, messages in (errors or {}).items()
        }

    @classmethod
    def for_field(cls, field: str, message: str) -> "InputValidationError":
        return cls(message, {field: [message]})


class NotFoundError(ServiceError):
    """Raised when a referenced entity does not exist."""


class PermissionDeniedError(ServiceError):
    """Raised when the actor may not perform the requested operation."""


class StateConflictError(ServiceError):
    """Raised when the operation conflicts with the entity's current state."""


class AuthenticationError(ServiceError):
    """Raised when credentials or bearer tokens are missing or invalid."""
