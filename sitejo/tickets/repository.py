from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Sequence

from sqlalchemy import delete, func, or_
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from sitejo.db.models import (
    DocumentTable,
    TicketHistoryTable,
    TicketNumberCounterTable,
    TicketTable,
    UserTable,
    ensure_datetime,
    ensure_optional_datetime,
)
from sitejo.users.models import User
from sitejo.users.repository import load_users, to_user

from .history import HistoryLedger, to_history_entry
from .models import (
    Document,
    DocumentType,
    Ticket,
    TicketAggregate,
    TicketCategory,
    TicketFilters,
    TicketPage,
    TicketPriority,
    TicketScope,
    TicketStatistics,
    TicketSummary,
)
from .state import TicketStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


class TicketUnitOfWork:
    """Ticket, document and history writes sharing one database transaction."""

    def __init__(self, session: AsyncSession, *, clock: Callable[[], datetime]) -> None:
        self.session = session
        self.history = HistoryLedger(session, clock=clock)

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        row = await self.session.get(TicketTable, ticket_id)
        return TicketRepository._table_to_ticket(row) if row is not None else None

    async def get_user(self, user_id: str) -> User | None:
        row = await self.session.get(UserTable, user_id)
        return to_user(row) if row is not None else None

    async def add_ticket(self, ticket: Ticket) -> None:
        row = TicketTable(id=ticket.id, **_ticket_columns(ticket))
        self.session.add(row)
        await self.session.flush()

    async def save_ticket(self, ticket: Ticket) -> None:
        row = await self.session.get(TicketTable, ticket.id)
        if row is None:
            raise LookupError(f"Ticket {ticket.id} vanished during the transaction")
        for key, value in _ticket_columns(ticket).items():
            setattr(row, key, value)
        await self.session.flush()

    async def delete_ticket(self, ticket_id: str) -> list[Document]:
        """Delete the ticket with its history and document rows; return the documents removed."""

        result = await self.session.execute(select(DocumentTable).where(DocumentTable.ticket_id == ticket_id))
        documents = [TicketRepository._table_to_document(row) for row in result.scalars().all()]
        await self.session.execute(delete(DocumentTable).where(DocumentTable.ticket_id == ticket_id))
        await self.session.execute(delete(TicketHistoryTable).where(TicketHistoryTable.ticket_id == ticket_id))
        await self.session.execute(delete(TicketTable).where(TicketTable.id == ticket_id))
        return documents

    async def next_ticket_sequence(self, day_key: str) -> int:
        """Advance and return the day's ticket counter.

        The row lock serializes creates on PostgreSQL; SQLite ignores it and
        relies on its single writer. Deleting tickets never lowers the counter.
        """

        result = await self.session.execute(
            select(TicketNumberCounterTable)
            .where(TicketNumberCounterTable.day == day_key)
            .with_for_update()
        )
        counter = result.scalars().first()
        if counter is None:
            counter = TicketNumberCounterTable(day=day_key, last_sequence=0)
            self.session.add(counter)
        counter.last_sequence += 1
        await self.session.flush()
        return counter.last_sequence

    async def count_letter_numbers_in_month(self, year: int, month: int) -> int:
        start, end = _month_bounds(year, month)
        result = await self.session.execute(
            select(func.count())
            .select_from(TicketTable)
            .where(
                TicketTable.nomor_surat.is_not(None),
                TicketTable.approved_at >= start,
                TicketTable.approved_at < end,
            )
        )
        return int(result.scalar_one())

    async def letter_number_exists(self, letter_number: str) -> bool:
        result = await self.session.execute(
            select(func.count()).select_from(TicketTable).where(TicketTable.nomor_surat == letter_number)
        )
        return int(result.scalar_one()) > 0

    async def add_document(self, document: Document) -> None:
        self.session.add(
            DocumentTable(
                id=document.id,
                ticket_id=document.ticket_id,
                file_name=document.file_name,
                file_path=document.file_path,
                file_type=document.file_type,
                file_size=document.file_size,
                document_type=document.document_type.value,
                uploaded_by=document.uploaded_by,
                created_at=document.created_at,
            )
        )
        await self.session.flush()

    async def get_document(self, document_id: str) -> Document | None:
        row = await self.session.get(DocumentTable, document_id)
        return TicketRepository._table_to_document(row) if row is not None else None

    async def remove_document(self, document_id: str) -> bool:
        result = await self.session.execute(delete(DocumentTable).where(DocumentTable.id == document_id))
        return bool(result.rowcount)


class TicketRepository:
    """Persistence for `tickets`, `documents` and `ticket_histories`."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine
        self._clock = clock or _utcnow

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[TicketUnitOfWork]:
        """Open a session and transaction; commit on exit, roll back on error."""

        async with self._session_factory() as session:
            async with session.begin():
                yield TicketUnitOfWork(session, clock=self._clock)

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        async with self._session_factory() as session:
            row = await session.get(TicketTable, ticket_id)
            return self._table_to_ticket(row) if row is not None else None

    async def get_detail(self, ticket_id: str) -> TicketAggregate | None:
        async with self._session_factory() as session:
            ticket_row = await session.get(TicketTable, ticket_id)
            if ticket_row is None:
                return None

            document_result = await session.execute(
                select(DocumentTable)
                .where(DocumentTable.ticket_id == ticket_id)
                .order_by(DocumentTable.created_at.asc())
            )
            history_result = await session.execute(
                select(TicketHistoryTable)
                .where(TicketHistoryTable.ticket_id == ticket_id)
                .order_by(TicketHistoryTable.created_at.asc(), TicketHistoryTable.id.asc())
            )
            ticket = self._table_to_ticket(ticket_row)
            documents = [self._table_to_document(row) for row in document_result.scalars().all()]
            histories = [to_history_entry(row) for row in history_result.scalars().all()]

            users = await load_users(
                session,
                [ticket.student_id, ticket.lecturer_id]
                + [document.uploaded_by for document in documents]
                + [entry.user_id for entry in histories],
            )

        for document in documents:
            document.uploader = users.get(document.uploaded_by)
        for entry in histories:
            entry.user = users.get(entry.user_id) if entry.user_id else None
        return TicketAggregate(
            ticket=ticket,
            student=users.get(ticket.student_id),
            lecturer=users.get(ticket.lecturer_id) if ticket.lecturer_id else None,
            documents=documents,
            histories=histories,
        )

    async def list_tickets(
        self,
        scope: TicketScope,
        filters: TicketFilters | None = None,
        *,
        page: int = 1,
        per_page: int = 15,
    ) -> TicketPage:
        page = max(page, 1)
        per_page = max(per_page, 1)
        conditions = _scope_conditions(scope) + _filter_conditions(filters or TicketFilters())

        async with self._session_factory() as session:
            count_result = await session.execute(
                select(func.count()).select_from(TicketTable).where(*conditions)
            )
            total = int(count_result.scalar_one())

            result = await session.execute(
                select(TicketTable)
                .where(*conditions)
                .order_by(TicketTable.created_at.desc(), TicketTable.ticket_number.desc())
                .offset((page - 1) * per_page)
                .limit(per_page)
            )
            tickets = [self._table_to_ticket(row) for row in result.scalars().all()]
            summaries = await self._summarize(session, tickets)

        return TicketPage(items=summaries, total=total, page=page, per_page=per_page)

    async def statistics(self, scope: TicketScope) -> TicketStatistics:
        conditions = _scope_conditions(scope)
        async with self._session_factory() as session:
            status_result = await session.execute(
                select(TicketTable.status, func.count()).where(*conditions).group_by(TicketTable.status)
            )
            priority_result = await session.execute(
                select(TicketTable.priority, func.count()).where(*conditions).group_by(TicketTable.priority)
            )
            status_counts = {status: int(count) for status, count in status_result.all()}
            priority_counts = {priority: int(count) for priority, count in priority_result.all()}

        by_status = {status.value: status_counts.get(status.value, 0) for status in TicketStatus}
        by_priority = {priority.value: priority_counts.get(priority.value, 0) for priority in TicketPriority}
        return TicketStatistics(total=sum(status_counts.values()), by_status=by_status, by_priority=by_priority)

    async def find_by_letter_number(self, letter_number: str) -> TicketSummary | None:
        async with self._session_factory() as session:
            result = await session.execute(select(TicketTable).where(TicketTable.nomor_surat == letter_number))
            row = result.scalars().first()
            if row is None:
                return None
            summaries = await self._summarize(session, [self._table_to_ticket(row)])
        return summaries[0]

    async def list_documents(self, ticket_id: str) -> Sequence[Document]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(DocumentTable)
                .where(DocumentTable.ticket_id == ticket_id)
                .order_by(DocumentTable.created_at.desc())
            )
            documents = [self._table_to_document(row) for row in result.scalars().all()]
            users = await load_users(session, [document.uploaded_by for document in documents])
        for document in documents:
            document.uploader = users.get(document.uploaded_by)
        return documents

    async def get_document(self, document_id: str) -> Document | None:
        async with self._session_factory() as session:
            row = await session.get(DocumentTable, document_id)
            if row is None:
                return None
            document = self._table_to_document(row)
            users = await load_users(session, [document.uploaded_by])
        document.uploader = users.get(document.uploaded_by)
        return document

    async def _summarize(self, session: AsyncSession, tickets: Sequence[Ticket]) -> list[TicketSummary]:
        users = await load_users(
            session,
            [ticket.student_id for ticket in tickets] + [ticket.lecturer_id for ticket in tickets],
        )
        return [
            TicketSummary(
                ticket=ticket,
                student=users.get(ticket.student_id),
                lecturer=users.get(ticket.lecturer_id) if ticket.lecturer_id else None,
            )
            for ticket in tickets
        ]

    @staticmethod
    def _table_to_ticket(row: TicketTable) -> Ticket:
        return Ticket(
            id=row.id,
            ticket_number=row.ticket_number,
            student_id=row.student_id,
            lecturer_id=row.lecturer_id,
            title=row.title,
            description=row.description,
            category=TicketCategory(row.category),
            status=TicketStatus(row.status),
            priority=TicketPriority(row.priority),
            admin_notes=row.admin_notes,
            lecturer_notes=row.lecturer_notes,
            rejection_reason=row.rejection_reason,
            nomor_surat=row.nomor_surat,
            submitted_at=ensure_optional_datetime(row.submitted_at),
            reviewed_at=ensure_optional_datetime(row.reviewed_at),
            approved_at=ensure_optional_datetime(row.approved_at),
            completed_at=ensure_optional_datetime(row.completed_at),
            created_at=ensure_datetime(row.created_at),
            updated_at=ensure_datetime(row.updated_at),
        )

    @staticmethod
    def _table_to_document(row: DocumentTable) -> Document:
        return Document(
            id=row.id,
            ticket_id=row.ticket_id,
            file_name=row.file_name,
            file_path=row.file_path,
            file_type=row.file_type,
            file_size=int(row.file_size),
            document_type=DocumentType(row.document_type),
            uploaded_by=row.uploaded_by,
            created_at=ensure_datetime(row.created_at),
        )


def _ticket_columns(ticket: Ticket) -> dict[str, Any]:
    return {
        "ticket_number": ticket.ticket_number,
        "student_id": ticket.student_id,
        "lecturer_id": ticket.lecturer_id,
        "title": ticket.title,
        "description": ticket.description,
        "category": ticket.category.value,
        "status": ticket.status.value,
        "priority": ticket.priority.value,
        "admin_notes": ticket.admin_notes,
        "lecturer_notes": ticket.lecturer_notes,
        "rejection_reason": ticket.rejection_reason,
        "nomor_surat": ticket.nomor_surat,
        "submitted_at": ticket.submitted_at,
        "reviewed_at": ticket.reviewed_at,
        "approved_at": ticket.approved_at,
        "completed_at": ticket.completed_at,
        "created_at": ticket.created_at,
        "updated_at": ticket.updated_at,
    }


def _scope_conditions(scope: TicketScope) -> list[Any]:
    conditions: list[Any] = []
    if scope.student_id is not None:
        conditions.append(TicketTable.student_id == scope.student_id)
    if scope.lecturer_id is not None:
        conditions.append(TicketTable.lecturer_id == scope.lecturer_id)
    if scope.statuses is not None:
        conditions.append(TicketTable.status.in_(sorted(status.value for status in scope.statuses)))
    return conditions


def _filter_conditions(filters: TicketFilters) -> list[Any]:
    conditions: list[Any] = []
    if filters.status is not None:
        conditions.append(TicketTable.status == filters.status.value)
    if filters.priority is not None:
        conditions.append(TicketTable.priority == filters.priority.value)
    if filters.search:
        pattern = f"%{filters.search}%"
        conditions.append(
            or_(
                TicketTable.ticket_number.ilike(pattern),
                TicketTable.title.ilike(pattern),
                TicketTable.description.ilike(pattern),
            )
        )
    return conditions
