"""Ticket lifecycle expressed as a single transition table.

Each :class:`TicketAction` maps to the roles allowed to perform it, the
states each role may perform it from, the resulting state and the tag the
history ledger records. ``VIEW`` and ``DELETE`` are part of the table so
that access checks share the same evaluation as state changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from sitejo.users.models import Role


class TicketStatus(str, Enum):
    """Supported states for a ticket's lifecycle."""

    PENDING = "pending"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class TicketAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    SEND_TO_LECTURER = "send_to_lecturer"
    REVIEW = "review"
    APPROVE = "approve"
    REJECT = "reject"
    ADMIN_REJECT = "admin_reject"
    COMPLETE = "complete"
    DELETE = "delete"
    VIEW = "view"


ALL_STATUSES: frozenset[TicketStatus] = frozenset(TicketStatus)
# Tickets a lecturer may see once an admin has forwarded them.
LECTURER_VISIBLE_STATUSES: frozenset[TicketStatus] = frozenset(
    {TicketStatus.IN_REVIEW, TicketStatus.APPROVED, TicketStatus.REJECTED, TicketStatus.COMPLETED}
)


@dataclass(frozen=True, slots=True)
class Transition:
    action: TicketAction
    sources: Mapping[Role, frozenset[TicketStatus]]
    target: TicketStatus | None = None
    history_action: str | None = None

    @property
    def roles(self) -> frozenset[Role]:
        return frozenset(self.sources)

    def allows(self, role: Role, status: TicketStatus) -> bool:
        return status in self.sources.get(role, frozenset())


def _only(*statuses: TicketStatus) -> frozenset[TicketStatus]:
    return frozenset(statuses)


DEFAULT_TRANSITIONS: Mapping[TicketAction, Transition] = {
    transition.action: transition
    for transition in (
        Transition(TicketAction.CREATE, {Role.STUDENT: frozenset()}, TicketStatus.PENDING, "created"),
        Transition(
            TicketAction.UPDATE,
            {Role.STUDENT: _only(TicketStatus.PENDING, TicketStatus.REJECTED)},
            TicketStatus.PENDING,
            "updated",
        ),
        Transition(
            TicketAction.SEND_TO_LECTURER,
            {Role.ADMIN: _only(TicketStatus.PENDING)},
            TicketStatus.IN_REVIEW,
            "sent_to_lecturer",
        ),
        Transition(
            TicketAction.REVIEW,
            {Role.LECTURER: _only(TicketStatus.IN_REVIEW)},
            TicketStatus.IN_REVIEW,
            "reviewed",
        ),
        Transition(
            TicketAction.APPROVE,
            {Role.LECTURER: _only(TicketStatus.IN_REVIEW)},
            TicketStatus.APPROVED,
            "approved",
        ),
        Transition(
            TicketAction.REJECT,
            {Role.LECTURER: _only(TicketStatus.IN_REVIEW)},
            TicketStatus.REJECTED,
            "rejected",
        ),
        Transition(
            TicketAction.ADMIN_REJECT,
            {Role.ADMIN: _only(TicketStatus.PENDING, TicketStatus.IN_REVIEW)},
            TicketStatus.REJECTED,
            "rejected_by_admin",
        ),
        Transition(
            TicketAction.COMPLETE,
            {Role.ADMIN: _only(TicketStatus.APPROVED)},
            TicketStatus.COMPLETED,
            "completed",
        ),
        Transition(
            TicketAction.DELETE,
            {Role.ADMIN: ALL_STATUSES, Role.STUDENT: _only(TicketStatus.PENDING)},
        ),
        Transition(
            TicketAction.VIEW,
            {
                Role.STUDENT: ALL_STATUSES,
                Role.LECTURER: LECTURER_VISIBLE_STATUSES,
                Role.ADMIN: ALL_STATUSES,
            },
        ),
    )
}


class TicketStateMachine:
    """Validate ticket lifecycle transitions against a transition table."""

    def __init__(self, transitions: Mapping[TicketAction, Transition] | None = None) -> None:
        self._transitions = dict(transitions or DEFAULT_TRANSITIONS)
        _validate_table(self._transitions)

    def initial_state(self) -> TicketStatus:
        target = self._transitions[TicketAction.CREATE].target
        if target is None:
            raise RuntimeError("Create transition has no target state")
        return target

    def transition_for(self, action: TicketAction) -> Transition:
        return self._transitions[action]


def _validate_table(transitions: Mapping[TicketAction, Transition]) -> None:
    missing = set(TicketAction) - set(transitions)
    if missing:
        raise ValueError(f"Transition table lacks actions: {sorted(action.value for action in missing)}")

    for action, transition in transitions.items():
        if transition.action is not action:
            raise ValueError(f"Transition registered under {action.value} describes {transition.action.value}")
        if not transition.sources:
            raise ValueError(f"{action.value} is not allowed for any role")
        if (transition.target is None) != (transition.history_action is None):
            raise ValueError(f"{action.value} must define both a target state and a history tag, or neither")
        if transition.target is not None and action is not TicketAction.CREATE:
            for role, sources in transition.sources.items():
                if not sources:
                    raise ValueError(f"{action.value} has no source state for {role.value}")
                if TicketStatus.COMPLETED in sources:
                    raise ValueError(f"{action.value} leaves the terminal completed state")
        if transition.target is TicketStatus.APPROVED:
            # Letter numbers are issued on entry into approved, exactly once.
            for sources in transition.sources.values():
                if TicketStatus.APPROVED in sources or TicketStatus.COMPLETED in sources:
                    raise ValueError(f"{action.value} re-enters approved")
