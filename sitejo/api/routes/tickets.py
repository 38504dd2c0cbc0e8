from __future__ import annotations

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from sitejo.api.schemas import (
    Envelope,
    LecturerResponse,
    TicketDetailResponse,
    TicketPageResponse,
    detail_response,
    page_response,
)
from sitejo.dependencies.auth import AdminUser, CurrentUser, LecturerUser, ReviewerUser, StudentUser
from sitejo.dependencies.services import TicketServiceDep, UserServiceDep
from sitejo.tickets.models import TicketCategory, TicketFilters, TicketPriority, TicketStatistics
from sitejo.tickets.service import TicketChanges
from sitejo.tickets.state import TicketStatus

router = APIRouter(prefix="/tickets", tags=["tickets"])


class TicketCreateRequest(BaseModel):
    lecturer_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    type: TicketCategory
    priority: TicketPriority = TicketPriority.MEDIUM


class TicketUpdateRequest(BaseModel):
    lecturer_id: str | None = Field(default=None, min_length=1)
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, min_length=1)
    type: TicketCategory | None = None
    priority: TicketPriority | None = None


class LecturerNotesRequest(BaseModel):
    lecturer_notes: str | None = None


class AdminNotesRequest(BaseModel):
    admin_notes: str | None = None


class RejectRequest(BaseModel):
    rejection_reason: str = Field(..., min_length=1)


class StatisticsResponse(BaseModel):
    total: int
    by_status: dict[str, int]
    by_priority: dict[str, int]


def _statistics_response(stats: TicketStatistics) -> StatisticsResponse:
    return StatisticsResponse(total=stats.total, by_status=stats.by_status, by_priority=stats.by_priority)


@router.get("", response_model=Envelope[TicketPageResponse])
async def list_tickets(
    service: TicketServiceDep,
    user: CurrentUser,
    status_filter: TicketStatus | None = Query(default=None, alias="status"),
    priority: TicketPriority | None = Query(default=None),
    search: str | None = Query(default=None, max_length=255),
    page: int = Query(default=1, ge=1),
    per_page: int | None = Query(default=None, ge=1, le=100),
) -> Envelope[TicketPageResponse]:
    filters = TicketFilters(status=status_filter, priority=priority, search=search or None)
    result = await service.list_tickets(user, filters, page=page, per_page=per_page)
    return Envelope(data=page_response(result))


@router.get("/statistics", response_model=Envelope[StatisticsResponse])
async def ticket_statistics(service: TicketServiceDep, user: CurrentUser) -> Envelope[StatisticsResponse]:
    stats = await service.statistics(user)
    return Envelope(data=_statistics_response(stats))


@router.get("/lecturers", response_model=Envelope[list[LecturerResponse]])
async def list_lecturers(users: UserServiceDep, _: CurrentUser) -> Envelope[list[LecturerResponse]]:
    lecturers = await users.list_lecturers()
    return Envelope(data=[LecturerResponse.model_validate(lecturer) for lecturer in lecturers])


@router.post("", response_model=Envelope[TicketDetailResponse], status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: TicketCreateRequest,
    service: TicketServiceDep,
    user: StudentUser,
) -> Envelope[TicketDetailResponse]:
    aggregate = await service.create_ticket(
        user,
        lecturer_id=payload.lecturer_id,
        title=payload.title,
        description=payload.description,
        category=payload.type,
        priority=payload.priority,
    )
    return Envelope(message="Ticket created successfully", data=detail_response(aggregate))


@router.get("/{ticket_id}", response_model=Envelope[TicketDetailResponse])
async def get_ticket(ticket_id: str, service: TicketServiceDep, user: CurrentUser) -> Envelope[TicketDetailResponse]:
    aggregate = await service.get_ticket(user, ticket_id)
    return Envelope(data=detail_response(aggregate))


@router.put("/{ticket_id}", response_model=Envelope[TicketDetailResponse])
async def update_ticket(
    ticket_id: str,
    payload: TicketUpdateRequest,
    service: TicketServiceDep,
    user: StudentUser,
) -> Envelope[TicketDetailResponse]:
    changes = TicketChanges(
        lecturer_id=payload.lecturer_id,
        title=payload.title,
        description=payload.description,
        category=payload.type,
        priority=payload.priority,
    )
    aggregate = await service.update_ticket(user, ticket_id, changes)
    return Envelope(message="Ticket updated successfully", data=detail_response(aggregate))


@router.delete("/{ticket_id}", response_model=Envelope[None])
async def delete_ticket(ticket_id: str, service: TicketServiceDep, user: CurrentUser) -> Envelope[None]:
    await service.delete_ticket(user, ticket_id)
    return Envelope(message="Ticket deleted successfully")


@router.post("/{ticket_id}/review", response_model=Envelope[TicketDetailResponse])
async def review_ticket(
    ticket_id: str,
    service: TicketServiceDep,
    user: LecturerUser,
    payload: LecturerNotesRequest | None = None,
) -> Envelope[TicketDetailResponse]:
    notes = payload.lecturer_notes if payload is not None else None
    aggregate = await service.review(user, ticket_id, lecturer_notes=notes)
    return Envelope(message="Ticket reviewed successfully", data=detail_response(aggregate))


@router.post("/{ticket_id}/approve", response_model=Envelope[TicketDetailResponse])
async def approve_ticket(
    ticket_id: str,
    service: TicketServiceDep,
    user: LecturerUser,
    payload: LecturerNotesRequest | None = None,
) -> Envelope[TicketDetailResponse]:
    notes = payload.lecturer_notes if payload is not None else None
    aggregate = await service.approve(user, ticket_id, lecturer_notes=notes)
    return Envelope(message="Ticket approved successfully", data=detail_response(aggregate))


@router.post("/{ticket_id}/reject", response_model=Envelope[TicketDetailResponse])
async def reject_ticket(
    ticket_id: str,
    payload: RejectRequest,
    service: TicketServiceDep,
    user: ReviewerUser,
) -> Envelope[TicketDetailResponse]:
    """Lecturers reject tickets under review; admins may reject before approval."""

    if user.is_admin():
        aggregate = await service.admin_reject(user, ticket_id, rejection_reason=payload.rejection_reason)
    else:
        aggregate = await service.reject(user, ticket_id, rejection_reason=payload.rejection_reason)
    return Envelope(message="Ticket rejected", data=detail_response(aggregate))


@router.post("/{ticket_id}/send-to-lecturer", response_model=Envelope[TicketDetailResponse])
async def send_ticket_to_lecturer(
    ticket_id: str,
    service: TicketServiceDep,
    user: AdminUser,
    payload: AdminNotesRequest | None = None,
) -> Envelope[TicketDetailResponse]:
    notes = payload.admin_notes if payload is not None else None
    aggregate = await service.send_to_lecturer(user, ticket_id, admin_notes=notes)
    return Envelope(message="Ticket sent to lecturer successfully", data=detail_response(aggregate))


@router.post("/{ticket_id}/complete", response_model=Envelope[TicketDetailResponse])
async def complete_ticket(
    ticket_id: str,
    service: TicketServiceDep,
    user: AdminUser,
    payload: AdminNotesRequest | None = None,
) -> Envelope[TicketDetailResponse]:
    notes = payload.admin_notes if payload is not None else None
    aggregate = await service.complete(user, ticket_id, admin_notes=notes)
    return Envelope(message="Ticket completed successfully", data=detail_response(aggregate))
