from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Awaitable, Callable

from opentelemetry import trace
from sqlalchemy.exc import IntegrityError

from sitejo.core.exceptions import InputValidationError
from sitejo.core.logging import transition_fields
from sitejo.documents.storage import FileStorage
from sitejo.users.models import User

from .exceptions import (
    InvalidTicketTransitionError,
    LetterNumberConflictError,
    TicketNotFoundError,
    TicketNumberConflictError,
)
from .models import (
    Ticket,
    TicketAggregate,
    TicketCategory,
    TicketFilters,
    TicketPage,
    TicketPriority,
    TicketStatistics,
)
from .numbering import (
    LetterNumberGenerator,
    LetterVerification,
    format_ticket_number,
    ticket_day_key,
)
from .policy import enforce, visibility_scope
from .repository import TicketRepository, TicketUnitOfWork
from .state import TicketAction, TicketStateMachine, TicketStatus

logger = logging.getLogger(__name__)
_tracer = trace.get_tracer(__name__)

REVISED_NOTE = "Ticket revised and resubmitted after rejection"
UPDATED_NOTE = "Ticket updated"
REVISED_ACTION = "revised"

_Mutation = Callable[[Ticket, datetime, TicketUnitOfWork], Awaitable[tuple[Ticket, str]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


@dataclass(slots=True)
class TicketChanges:
    """Fields a student may change while the ticket is pending or rejected."""

    lecturer_id: str | None = None
    title: str | None = None
    description: str | None = None
    category: TicketCategory | str | None = None
    priority: TicketPriority | str | None = None


def _coerce_category(value: TicketCategory | str) -> TicketCategory:
    try:
        return TicketCategory(value)
    except ValueError as exc:
        raise InputValidationError.for_field("type", "The selected type is invalid.") from exc


def _coerce_priority(value: TicketPriority | str) -> TicketPriority:
    try:
        return TicketPriority(value)
    except ValueError as exc:
        raise InputValidationError.for_field("priority", "The selected priority is invalid.") from exc


class TicketService:
    """Ticket lifecycle orchestration: policy, state changes, letter numbers and history."""

    def __init__(
        self,
        repository: TicketRepository,
        *,
        letter_numbers: LetterNumberGenerator | None = None,
        state_machine: TicketStateMachine | None = None,
        storage: FileStorage | None = None,
        clock: Callable[[], datetime] | None = None,
        per_page: int = 15,
    ) -> None:
        self._repository = repository
        self._letter_numbers = letter_numbers or LetterNumberGenerator(clock=clock)
        self._state_machine = state_machine or TicketStateMachine()
        self._storage = storage
        self._clock = clock or _utcnow
        self._per_page = per_page

    async def ensure_schema(self) -> None:
        await self._repository.ensure_schema()

    async def create_ticket(
        self,
        actor: User,
        *,
        lecturer_id: str,
        title: str,
        description: str,
        category: TicketCategory | str,
        priority: TicketPriority | str = TicketPriority.MEDIUM,
    ) -> TicketAggregate:
        transition = enforce(actor, None, TicketAction.CREATE, machine=self._state_machine)
        ticket_category = _coerce_category(category)
        ticket_priority = _coerce_priority(priority)

        with _tracer.start_as_current_span("ticket.create") as span:
            try:
                ticket = await self._insert_ticket(
                    actor,
                    transition_tag=transition.history_action or "created",
                    lecturer_id=lecturer_id,
                    title=title,
                    description=description,
                    category=ticket_category,
                    priority=ticket_priority,
                )
            except IntegrityError as exc:
                logger.warning("Ticket number collision on create student_id=%s", actor.id)
                raise TicketNumberConflictError("Ticket number already issued, retry the request") from exc
            span.set_attribute("ticket.id", ticket.id)

        logger.info(
            "Ticket created number=%s",
            ticket.ticket_number,
            extra=transition_fields(ticket.id, TicketAction.CREATE, new_status=ticket.status, actor_id=actor.id),
        )
        return await self._detail(ticket.id)

    async def _insert_ticket(
        self,
        actor: User,
        *,
        transition_tag: str,
        lecturer_id: str,
        title: str,
        description: str,
        category: TicketCategory,
        priority: TicketPriority,
    ) -> Ticket:
        async with self._repository.transaction() as uow:
            await self._require_lecturer(uow, lecturer_id)
            now = self._clock()
            sequence = await uow.next_ticket_sequence(ticket_day_key(now.date()))
            ticket = Ticket(
                id=str(uuid.uuid4()),
                ticket_number=format_ticket_number(now.date(), sequence),
                student_id=actor.id,
                lecturer_id=lecturer_id,
                title=title,
                description=description,
                category=category,
                status=self._state_machine.initial_state(),
                priority=priority,
                admin_notes=None,
                lecturer_notes=None,
                rejection_reason=None,
                nomor_surat=None,
                submitted_at=now,
                reviewed_at=None,
                approved_at=None,
                completed_at=None,
                created_at=now,
                updated_at=now,
            )
            await uow.add_ticket(ticket)
            await uow.history.append(
                ticket_id=ticket.id,
                actor_id=actor.id,
                action=transition_tag,
                new_status=ticket.status,
                notes="Ticket created",
                created_at=now,
            )
        return ticket

    async def update_ticket(self, actor: User, ticket_id: str, changes: TicketChanges) -> TicketAggregate:
        """Apply a student's edits; a rejected ticket goes back to pending."""

        category = _coerce_category(changes.category) if changes.category is not None else None
        priority = _coerce_priority(changes.priority) if changes.priority is not None else None

        async def mutate(ticket: Ticket, now: datetime, uow: TicketUnitOfWork) -> tuple[Ticket, str]:
            if changes.lecturer_id is not None and changes.lecturer_id != ticket.lecturer_id:
                await self._require_lecturer(uow, changes.lecturer_id)
            updated = replace(
                ticket,
                lecturer_id=changes.lecturer_id if changes.lecturer_id is not None else ticket.lecturer_id,
                title=changes.title if changes.title is not None else ticket.title,
                description=changes.description if changes.description is not None else ticket.description,
                category=category or ticket.category,
                priority=priority or ticket.priority,
            )
            if ticket.status is TicketStatus.REJECTED:
                updated = replace(updated, rejection_reason=None, lecturer_notes=None)
                return updated, REVISED_NOTE
            return updated, UPDATED_NOTE

        return await self._apply(actor, ticket_id, TicketAction.UPDATE, mutate)

    async def send_to_lecturer(self, actor: User, ticket_id: str, *, admin_notes: str | None = None) -> TicketAggregate:
        async def mutate(ticket: Ticket, now: datetime, uow: TicketUnitOfWork) -> tuple[Ticket, str]:
            if admin_notes is not None:
                ticket = replace(ticket, admin_notes=admin_notes)
            return ticket, admin_notes or "Ticket sent to lecturer by admin"

        return await self._apply(actor, ticket_id, TicketAction.SEND_TO_LECTURER, mutate)

    async def review(self, actor: User, ticket_id: str, *, lecturer_notes: str | None = None) -> TicketAggregate:
        async def mutate(ticket: Ticket, now: datetime, uow: TicketUnitOfWork) -> tuple[Ticket, str]:
            ticket = replace(ticket, reviewed_at=now)
            if lecturer_notes is not None:
                ticket = replace(ticket, lecturer_notes=lecturer_notes)
            return ticket, lecturer_notes or "Ticket reviewed by lecturer"

        return await self._apply(actor, ticket_id, TicketAction.REVIEW, mutate)

    async def approve(self, actor: User, ticket_id: str, *, lecturer_notes: str | None = None) -> TicketAggregate:
        """Approve the ticket and issue its letter number."""

        async def mutate(ticket: Ticket, now: datetime, uow: TicketUnitOfWork) -> tuple[Ticket, str]:
            if ticket.nomor_surat is not None:
                raise InvalidTicketTransitionError("Ticket already has a letter number")
            letter_number = await self._letter_numbers.generate(ticket.category, uow, at=now)
            ticket = replace(ticket, approved_at=now, nomor_surat=letter_number)
            if lecturer_notes is not None:
                ticket = replace(ticket, lecturer_notes=lecturer_notes)
            note = f"{lecturer_notes or 'Ticket approved by lecturer'} | Nomor Surat: {letter_number}"
            return ticket, note

        try:
            return await self._apply(actor, ticket_id, TicketAction.APPROVE, mutate)
        except IntegrityError as exc:
            # Unique constraint on nomor_surat; a concurrent approval took the number.
            logger.warning("Letter number collision on approve ticket_id=%s", ticket_id)
            raise LetterNumberConflictError("Letter number already issued, retry the approval") from exc

    async def reject(self, actor: User, ticket_id: str, *, rejection_reason: str) -> TicketAggregate:
        async def mutate(ticket: Ticket, now: datetime, uow: TicketUnitOfWork) -> tuple[Ticket, str]:
            _require_reason(rejection_reason)
            return replace(ticket, rejection_reason=rejection_reason), rejection_reason

        return await self._apply(actor, ticket_id, TicketAction.REJECT, mutate)

    async def admin_reject(self, actor: User, ticket_id: str, *, rejection_reason: str) -> TicketAggregate:
        """Reject a ticket on the admin side, from pending or in_review only.

        Approved and completed tickets are refused with a 409 so an issued
        letter number stays with an approved ticket and completed stays terminal.
        """

        async def mutate(ticket: Ticket, now: datetime, uow: TicketUnitOfWork) -> tuple[Ticket, str]:
            _require_reason(rejection_reason)
            ticket = replace(ticket, rejection_reason=rejection_reason, admin_notes=rejection_reason)
            return ticket, rejection_reason

        return await self._apply(actor, ticket_id, TicketAction.ADMIN_REJECT, mutate)

    async def complete(self, actor: User, ticket_id: str, *, admin_notes: str | None = None) -> TicketAggregate:
        async def mutate(ticket: Ticket, now: datetime, uow: TicketUnitOfWork) -> tuple[Ticket, str]:
            ticket = replace(ticket, completed_at=now)
            if admin_notes is not None:
                ticket = replace(ticket, admin_notes=admin_notes)
            return ticket, admin_notes or "Ticket completed by admin"

        return await self._apply(actor, ticket_id, TicketAction.COMPLETE, mutate)

    async def delete_ticket(self, actor: User, ticket_id: str) -> None:
        with _tracer.start_as_current_span("ticket.delete") as span:
            span.set_attribute("ticket.id", ticket_id)
            async with self._repository.transaction() as uow:
                ticket = await uow.get_ticket(ticket_id)
                if ticket is None:
                    raise TicketNotFoundError(f"Ticket {ticket_id} not found")
                enforce(actor, ticket, TicketAction.DELETE, machine=self._state_machine)
                documents = await uow.delete_ticket(ticket_id)

        logger.info(
            "Ticket deleted documents=%d",
            len(documents),
            extra=transition_fields(ticket_id, TicketAction.DELETE, old_status=ticket.status, actor_id=actor.id),
        )
        if self._storage is not None:
            for document in documents:
                await self._storage.discard(document.file_path)

    async def get_ticket(self, actor: User, ticket_id: str) -> TicketAggregate:
        aggregate = await self._repository.get_detail(ticket_id)
        if aggregate is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        enforce(actor, aggregate.ticket, TicketAction.VIEW, machine=self._state_machine)
        return aggregate

    async def list_tickets(
        self,
        actor: User,
        filters: TicketFilters | None = None,
        *,
        page: int = 1,
        per_page: int | None = None,
    ) -> TicketPage:
        return await self._repository.list_tickets(
            visibility_scope(actor),
            filters,
            page=page,
            per_page=per_page or self._per_page,
        )

    async def statistics(self, actor: User) -> TicketStatistics:
        return await self._repository.statistics(visibility_scope(actor))

    async def verify_letter(self, letter_number: str) -> LetterVerification:
        return await self._letter_numbers.verify(letter_number, self._repository)

    async def _apply(
        self,
        actor: User,
        ticket_id: str,
        action: TicketAction,
        mutate: _Mutation,
    ) -> TicketAggregate:
        """Run one transition: authorize, mutate, append history, commit."""

        with _tracer.start_as_current_span(f"ticket.{action.value}") as span:
            span.set_attribute("ticket.id", ticket_id)
            async with self._repository.transaction() as uow:
                ticket = await uow.get_ticket(ticket_id)
                if ticket is None:
                    raise TicketNotFoundError(f"Ticket {ticket_id} not found")
                transition = enforce(actor, ticket, action, machine=self._state_machine)
                if transition.target is None or transition.history_action is None:
                    raise RuntimeError(f"{action.value} does not change ticket state")

                now = self._clock()
                updated, notes = await mutate(ticket, now, uow)
                updated = replace(updated, status=transition.target, updated_at=now)
                await uow.save_ticket(updated)

                history_action = transition.history_action
                if action is TicketAction.UPDATE and ticket.status is TicketStatus.REJECTED:
                    history_action = REVISED_ACTION
                await uow.history.append(
                    ticket_id=ticket_id,
                    actor_id=actor.id,
                    action=history_action,
                    old_status=ticket.status,
                    new_status=updated.status,
                    notes=notes,
                    created_at=now,
                )
            span.set_attribute("ticket.status", updated.status.value)

        logger.info(
            "Ticket transition %s -> %s",
            ticket.status.value,
            updated.status.value,
            extra=transition_fields(ticket_id, action, ticket.status, updated.status, actor.id),
        )
        return await self._detail(ticket_id)

    async def _detail(self, ticket_id: str) -> TicketAggregate:
        aggregate = await self._repository.get_detail(ticket_id)
        if aggregate is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return aggregate

    @staticmethod
    async def _require_lecturer(uow: TicketUnitOfWork, lecturer_id: str) -> None:
        lecturer = await uow.get_user(lecturer_id)
        if lecturer is None or not lecturer.is_lecturer():
            raise InputValidationError.for_field("lecturer_id", "Invalid lecturer selected")


def _require_reason(reason: str | None) -> None:
    if _blank(reason):
        raise InputValidationError.for_field("rejection_reason", "The rejection reason field is required.")
