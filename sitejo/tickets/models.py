from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Sequence

from sitejo.users.models import User

from .state import TicketStatus


class TicketCategory(str, Enum):
    """Kind of letter a ticket requests; stored in the ``type`` column."""

    SURAT_KETERANGAN = "surat_keterangan"
    SURAT_REKOMENDASI = "surat_rekomendasi"
    IJIN = "ijin"
    LAINNYA = "lainnya"


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class DocumentType(str, Enum):
    ATTACHMENT = "attachment"
    SIGNED_DOCUMENT = "signed_document"


@dataclass(slots=True)
class Ticket:
    """A student's letter request."""

    id: str
    ticket_number: str
    student_id: str
    lecturer_id: str | None
    title: str
    description: str
    category: TicketCategory
    status: TicketStatus
    priority: TicketPriority
    admin_notes: str | None
    lecturer_notes: str | None
    rejection_reason: str | None
    nomor_surat: str | None
    submitted_at: datetime | None
    reviewed_at: datetime | None
    approved_at: datetime | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class TicketHistoryEntry:
    """One row of the append-only ticket history."""

    id: int
    ticket_id: str
    user_id: str | None
    action: str
    old_status: TicketStatus | None
    new_status: TicketStatus | None
    notes: str | None
    created_at: datetime
    user: User | None = None


@dataclass(slots=True)
class Document:
    """Metadata of a file attached to a ticket."""

    id: str
    ticket_id: str
    file_name: str
    file_path: str
    file_type: str
    file_size: int
    document_type: DocumentType
    uploaded_by: str
    created_at: datetime
    uploader: User | None = None

    @property
    def file_size_human(self) -> str:
        return format_file_size(self.file_size)


@dataclass(slots=True)
class TicketSummary:
    """Ticket together with its resolved student and lecturer."""

    ticket: Ticket
    student: User | None
    lecturer: User | None


@dataclass(slots=True)
class TicketAggregate:
    """Ticket detail: parties, documents and ordered history."""

    ticket: Ticket
    student: User | None
    lecturer: User | None
    documents: Sequence[Document] = field(default_factory=list)
    histories: Sequence[TicketHistoryEntry] = field(default_factory=list)


@dataclass(slots=True)
class TicketFilters:
    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    search: str | None = None


@dataclass(slots=True)
class TicketScope:
    """Row-level visibility restriction derived from the actor's role."""

    student_id: str | None = None
    lecturer_id: str | None = None
    statuses: frozenset[TicketStatus] | None = None


@dataclass(slots=True)
class TicketPage:
    items: Sequence[TicketSummary]
    total: int
    page: int
    per_page: int

    @property
    def last_page(self) -> int:
        if self.total == 0:
            return 1
        return (self.total + self.per_page - 1) // self.per_page


@dataclass(slots=True)
class TicketStatistics:
    total: int
    by_status: dict[str, int]
    by_priority: dict[str, int]


def format_file_size(size: int) -> str:
    """Render a byte count as B/KB/MB/GB rounded to two decimals."""

    units = ("B", "KB", "MB", "GB")
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"
