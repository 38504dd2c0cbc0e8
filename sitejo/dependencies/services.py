from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from sitejo.documents.service import DocumentService
from sitejo.tickets.service import TicketService
from sitejo.users.service import UserService


def _service(request: Request, name: str, label: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(status_code=503, detail=f"{label} service is not configured")
    return service


async def get_ticket_service(request: Request) -> TicketService:
    return _service(request, "ticket_service", "Ticket")


async def get_document_service(request: Request) -> DocumentService:
    return _service(request, "document_service", "Document")


async def get_user_service(request: Request) -> UserService:
    return _service(request, "user_service", "User")


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]
DocumentServiceDep = Annotated[DocumentService, Depends(get_document_service)]
UserServiceDep = Annotated[UserService, Depends(get_user_service)]
