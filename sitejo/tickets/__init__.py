"""Ticket lifecycle: transition table, policy, letter numbers and history."""

from .exceptions import InvalidTicketTransitionError, TicketNotFoundError, TicketPermissionError
from .models import Ticket, TicketAggregate, TicketCategory, TicketPriority
from .numbering import LetterNumberGenerator
from .service import TicketChanges, TicketService
from .state import TicketAction, TicketStateMachine, TicketStatus

__all__ = [
    "InvalidTicketTransitionError",
    "LetterNumberGenerator",
    "Ticket",
    "TicketAction",
    "TicketAggregate",
    "TicketCategory",
    "TicketChanges",
    "TicketNotFoundError",
    "TicketPermissionError",
    "TicketPriority",
    "TicketService",
    "TicketStateMachine",
    "TicketStatus",
]
