"""Response models shared by the route modules."""

from __future__ import annotations

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from sitejo.tickets.models import (
    Document,
    DocumentType,
    Ticket,
    TicketAggregate,
    TicketCategory,
    TicketHistoryEntry,
    TicketPage,
    TicketPriority,
    TicketSummary,
)
from sitejo.tickets.state import TicketStatus
from sitejo.users.models import Role, User

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    message: str | None = None
    data: T | None = None


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    nim_nip: str
    role: Role
    phone: str | None = None
    created_at: datetime
    updated_at: datetime


class LecturerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    nim_nip: str


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    ticket_number: str
    student_id: str
    lecturer_id: str | None
    title: str
    description: str
    type: TicketCategory = Field(validation_alias="category")
    status: TicketStatus
    priority: TicketPriority
    admin_notes: str | None = None
    lecturer_notes: str | None = None
    rejection_reason: str | None = None
    nomor_surat: str | None = None
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None
    approved_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    student: UserResponse | None = None
    lecturer: UserResponse | None = None


class DocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    file_name: str
    file_type: str
    file_size: int
    file_size_human: str
    document_type: DocumentType
    uploaded_by: str
    created_at: datetime
    uploader: UserResponse | None = None


class HistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_id: str
    user_id: str | None
    action: str
    old_status: TicketStatus | None
    new_status: TicketStatus | None
    notes: str | None
    created_at: datetime
    user: UserResponse | None = None


class TicketDetailResponse(TicketResponse):
    documents: list[DocumentResponse] = Field(default_factory=list)
    histories: list[HistoryResponse] = Field(default_factory=list)


class TicketPageResponse(BaseModel):
    data: list[TicketResponse]
    current_page: int
    per_page: int
    total: int
    last_page: int


def user_response(user: User | None) -> UserResponse | None:
    return UserResponse.model_validate(user) if user is not None else None


def ticket_response(ticket: Ticket, student: User | None = None, lecturer: User | None = None) -> TicketResponse:
    response = TicketResponse.model_validate(ticket)
    response.student = user_response(student)
    response.lecturer = user_response(lecturer)
    return response


def summary_response(summary: TicketSummary) -> TicketResponse:
    return ticket_response(summary.ticket, summary.student, summary.lecturer)


def document_response(document: Document) -> DocumentResponse:
    return DocumentResponse.model_validate(document)


def history_response(entry: TicketHistoryEntry) -> HistoryResponse:
    return HistoryResponse.model_validate(entry)


def detail_response(aggregate: TicketAggregate) -> TicketDetailResponse:
    response = TicketDetailResponse.model_validate(aggregate.ticket)
    response.student = user_response(aggregate.student)
    response.lecturer = user_response(aggregate.lecturer)
    response.documents = [document_response(document) for document in aggregate.documents]
    response.histories = [history_response(entry) for entry in aggregate.histories]
    return response


def page_response(page: TicketPage) -> TicketPageResponse:
    return TicketPageResponse(
        data=[summary_response(item) for item in page.items],
        current_page=page.page,
        per_page=page.per_page,
        total=page.total,
        last_page=page.last_page,
    )
