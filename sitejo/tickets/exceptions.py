from __future__ import annotations

from sitejo.core.exceptions import NotFoundError, PermissionDeniedError, StateConflictError


class TicketNotFoundError(NotFoundError):
    """Raised when an operation targets a non-existent ticket."""


class DocumentNotFoundError(NotFoundError):
    """Raised when a document row or its stored file is missing."""


class TicketPermissionError(PermissionDeniedError):
    """Raised when the actor's role or relationship to the ticket forbids the action."""


class InvalidTicketTransitionError(StateConflictError):
    """Raised when the ticket's current status does not allow the action."""


class LetterNumberConflictError(StateConflictError):
    """Raised when a generated letter number lost a uniqueness race."""


class TicketNumberConflictError(StateConflictError):
    """Raised when two tickets created concurrently drew the same ticket number."""
