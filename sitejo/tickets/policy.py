"""Authorization policy shared by ticket transitions and document access."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from sitejo.users.models import Role, User

from .exceptions import InvalidTicketTransitionError, TicketPermissionError
from .models import Ticket, TicketScope
from .state import LECTURER_VISIBLE_STATUSES, TicketAction, TicketStateMachine, Transition

logger = logging.getLogger(__name__)

_DEFAULT_MACHINE = TicketStateMachine()

NOT_YET_SENT = "Ticket not yet sent to lecturer"


class Denial(str, Enum):
    ROLE = "role"
    OWNERSHIP = "ownership"
    STATE = "state"


@dataclass(frozen=True, slots=True)
class PolicyDecision:
    action: TicketAction
    transition: Transition
    denial: Denial | None = None
    reason: str = ""

    @property
    def allowed(self) -> bool:
        return self.denial is None

    def __bool__(self) -> bool:
        return self.allowed


def owns(actor: User, ticket: Ticket) -> bool:
    """Whether the actor is the ticket's student, its assigned lecturer, or an admin."""

    if actor.role is Role.ADMIN:
        return True
    if actor.role is Role.STUDENT:
        return ticket.student_id == actor.id
    if actor.role is Role.LECTURER:
        return ticket.lecturer_id is not None and ticket.lecturer_id == actor.id
    return False


def authorize(
    actor: User,
    ticket: Ticket | None,
    action: TicketAction,
    *,
    machine: TicketStateMachine | None = None,
) -> PolicyDecision:
    """Evaluate role, then ownership, then source state for ``action``.

    ``ticket`` is ``None`` only for :attr:`TicketAction.CREATE`.
    """

    transition = (machine or _DEFAULT_MACHINE).transition_for(action)
    if actor.role not in transition.sources:
        allowed_roles = ", ".join(sorted(role.value for role in transition.roles))
        return PolicyDecision(
            action, transition, Denial.ROLE, f"Only {allowed_roles} may {action.value.replace('_', ' ')} tickets"
        )
    if ticket is None:
        if action is not TicketAction.CREATE:
            raise ValueError(f"{action.value} requires a ticket")
        return PolicyDecision(action, transition)
    if not owns(actor, ticket):
        return PolicyDecision(action, transition, Denial.OWNERSHIP, "Unauthorized")
    if not transition.allows(actor.role, ticket.status):
        if action is TicketAction.VIEW:
            reason = NOT_YET_SENT
        else:
            allowed = ", ".join(sorted(status.value for status in transition.sources[actor.role]))
            reason = (
                f"Cannot {action.value.replace('_', ' ')} a ticket in status {ticket.status.value}"
                f" (allowed: {allowed})"
            )
        return PolicyDecision(action, transition, Denial.STATE, reason)
    return PolicyDecision(action, transition)


def enforce(
    actor: User,
    ticket: Ticket | None,
    action: TicketAction,
    *,
    machine: TicketStateMachine | None = None,
) -> Transition:
    """Like :func:`authorize` but raise on denial.

    Role and ownership denials, and state denials of access-only actions,
    raise :class:`TicketPermissionError`; state denials of transitions and
    deletes raise :class:`InvalidTicketTransitionError`.
    """

    decision = authorize(actor, ticket, action, machine=machine)
    if decision.allowed:
        return decision.transition

    ticket_id = ticket.id if ticket is not None else None
    logger.warning(
        "Ticket action denied action=%s actor_id=%s ticket_id=%s denial=%s",
        action.value,
        actor.id,
        ticket_id,
        decision.denial.value if decision.denial else None,
    )
    if decision.denial is Denial.STATE and action is not TicketAction.VIEW:
        raise InvalidTicketTransitionError(decision.reason)
    raise TicketPermissionError(decision.reason)


def visibility_scope(actor: User) -> TicketScope:
    """Listing restriction equivalent to the ``view`` rule for ``actor``."""

    if actor.role is Role.STUDENT:
        return TicketScope(student_id=actor.id)
    if actor.role is Role.LECTURER:
        return TicketScope(lecturer_id=actor.id, statuses=LECTURER_VISIBLE_STATUSES)
    return TicketScope()
