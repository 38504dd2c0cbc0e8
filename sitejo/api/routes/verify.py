"""Public letter-number verification."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from sitejo.api.schemas import Envelope
from sitejo.dependencies.services import TicketServiceDep
from sitejo.tickets.models import TicketCategory
from sitejo.tickets.numbering import LetterVerification
from sitejo.tickets.state import TicketStatus
from sitejo.users.models import User

router = APIRouter(prefix="/verify-letter", tags=["verification"])


class PartyResponse(BaseModel):
    name: str
    nim_nip: str


class VerifiedTicketResponse(BaseModel):
    id: str
    title: str
    type: TicketCategory
    status: TicketStatus
    student: PartyResponse | None = None
    lecturer: PartyResponse | None = None
    approved_at: datetime | None = None


class LetterInfoResponse(BaseModel):
    sequential_number: str
    institution: str
    category_code: str
    category_name: str
    month: str
    year: str
    unique_code: str


class VerificationResponse(BaseModel):
    valid: bool
    nomor_surat: str
    ticket: VerifiedTicketResponse
    info: LetterInfoResponse | None = None


def _party(user: User | None) -> PartyResponse | None:
    if user is None:
        return None
    return PartyResponse(name=user.name, nim_nip=user.nim_nip)


def _render(result: LetterVerification) -> Envelope[VerificationResponse] | JSONResponse:
    if not result.valid or result.ticket is None:
        return JSONResponse(
            status_code=404,
            content={"success": False, "valid": False, "message": result.reason},
        )
    ticket = result.ticket.ticket
    return Envelope(
        message="Letter number is valid",
        data=VerificationResponse(
            valid=True,
            nomor_surat=result.code,
            ticket=VerifiedTicketResponse(
                id=ticket.id,
                title=ticket.title,
                type=ticket.category,
                status=ticket.status,
                student=_party(result.ticket.student),
                lecturer=_party(result.ticket.lecturer),
                approved_at=ticket.approved_at,
            ),
            info=LetterInfoResponse(**result.info.as_dict()) if result.info else None,
        ),
    )


@router.get("", response_model=Envelope[VerificationResponse])
async def verify_letter_by_query(
    service: TicketServiceDep,
    nomor: str | None = Query(default=None),
):
    if not nomor:
        return JSONResponse(status_code=400, content={"success": False, "message": "Letter number is required"})
    return _render(await service.verify_letter(nomor))


@router.get("/{code:path}", response_model=Envelope[VerificationResponse])
async def verify_letter(code: str, service: TicketServiceDep):
    return _render(await service.verify_letter(code))
