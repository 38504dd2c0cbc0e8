from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from sitejo.db.models import TicketHistoryTable, ensure_datetime

from .models import TicketHistoryEntry
from .state import TicketStatus


class HistoryLedger:
    """Append-only writer for `ticket_histories`, bound to one open transaction.

    Rows are never updated or deleted except by the ticket delete cascade.
    """

    def __init__(self, session: AsyncSession, *, clock: Callable[[], datetime] | None = None) -> None:
        self._session = session
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def append(
        self,
        *,
        ticket_id: str,
        actor_id: str | None,
        action: str,
        old_status: TicketStatus | None = None,
        new_status: TicketStatus | None = None,
        notes: str | None = None,
        created_at: datetime | None = None,
    ) -> TicketHistoryEntry:
        row = TicketHistoryTable(
            ticket_id=ticket_id,
            user_id=actor_id,
            action=action,
            old_status=old_status.value if old_status else None,
            new_status=new_status.value if new_status else None,
            notes=notes,
            created_at=created_at or self._clock(),
        )
        self._session.add(row)
        await self._session.flush()
        return to_history_entry(row)


def to_history_entry(row: TicketHistoryTable) -> TicketHistoryEntry:
    return TicketHistoryEntry(
        id=int(row.id or 0),
        ticket_id=row.ticket_id,
        user_id=row.user_id,
        action=row.action,
        old_status=TicketStatus(row.old_status) if row.old_status else None,
        new_status=TicketStatus(row.new_status) if row.new_status else None,
        notes=row.notes,
        created_at=ensure_datetime(row.created_at),
    )
