from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Sequence

from sitejo.core.exceptions import InputValidationError
from sitejo.tickets.exceptions import DocumentNotFoundError, TicketNotFoundError, TicketPermissionError
from sitejo.tickets.models import Document, DocumentType
from sitejo.tickets.policy import enforce
from sitejo.tickets.repository import TicketRepository
from sitejo.tickets.state import TicketAction, TicketStateMachine
from sitejo.users.models import User

from .storage import FileStorage, StoredFile

logger = logging.getLogger(__name__)

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class DownloadTarget:
    document: Document
    path: Path


class DocumentService:
    """Upload, list, download and delete ticket attachments.

    Access follows the ticket ``view`` rule. Blob and row stay in step: a
    failed upload transaction removes the freshly written blob, and a
    failed blob removal after delete is only logged.
    """

    def __init__(
        self,
        repository: TicketRepository,
        storage: FileStorage,
        *,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        state_machine: TicketStateMachine | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._storage = storage
        self._max_upload_bytes = max_upload_bytes
        self._state_machine = state_machine or TicketStateMachine()
        self._clock = clock or _utcnow

    @property
    def max_upload_bytes(self) -> int:
        return self._max_upload_bytes

    async def upload(
        self,
        actor: User,
        ticket_id: str,
        *,
        filename: str,
        content: bytes,
        document_type: DocumentType | str,
    ) -> Document:
        kind = self._validate(filename, content, document_type)

        stored: StoredFile | None = None
        try:
            async with self._repository.transaction() as uow:
                ticket = await uow.get_ticket(ticket_id)
                if ticket is None:
                    raise TicketNotFoundError(f"Ticket {ticket_id} not found")
                enforce(actor, ticket, TicketAction.VIEW, machine=self._state_machine)

                stored = await self._storage.save(filename, content)
                now = self._clock()
                document = Document(
                    id=str(uuid.uuid4()),
                    ticket_id=ticket_id,
                    file_name=filename,
                    file_path=stored.key,
                    file_type=os.path.splitext(filename)[1].lstrip(".").lower(),
                    file_size=stored.size,
                    document_type=kind,
                    uploaded_by=actor.id,
                    created_at=now,
                    uploader=actor,
                )
                await uow.add_document(document)
                await uow.history.append(
                    ticket_id=ticket_id,
                    actor_id=actor.id,
                    action="document_uploaded",
                    notes=f"Document uploaded: {filename}",
                    created_at=now,
                )
        except BaseException:
            if stored is not None:
                await self._storage.discard(stored.key)
            raise

        logger.info(
            "Document uploaded document_id=%s ticket_id=%s bytes=%d by=%s",
            document.id,
            ticket_id,
            document.file_size,
            actor.id,
        )
        return document

    async def list_documents(self, actor: User, ticket_id: str) -> Sequence[Document]:
        ticket = await self._repository.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        enforce(actor, ticket, TicketAction.VIEW, machine=self._state_machine)
        return await self._repository.list_documents(ticket_id)

    async def download(self, actor: User, document_id: str) -> DownloadTarget:
        document = await self._repository.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        ticket = await self._repository.get_ticket(document.ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {document.ticket_id} not found")
        enforce(actor, ticket, TicketAction.VIEW, machine=self._state_machine)

        if not await self._storage.exists(document.file_path):
            logger.warning("Stored blob missing document_id=%s key=%s", document_id, document.file_path)
            raise DocumentNotFoundError("File not found")
        return DownloadTarget(document=document, path=self._storage.path_for(document.file_path))

    async def delete(self, actor: User, document_id: str) -> None:
        async with self._repository.transaction() as uow:
            document = await uow.get_document(document_id)
            if document is None:
                raise DocumentNotFoundError(f"Document {document_id} not found")
            ticket = await uow.get_ticket(document.ticket_id)
            if ticket is None:
                raise TicketNotFoundError(f"Ticket {document.ticket_id} not found")
            enforce(actor, ticket, TicketAction.VIEW, machine=self._state_machine)
            if not actor.is_admin() and document.uploaded_by != actor.id:
                logger.warning("Document delete denied document_id=%s actor_id=%s", document_id, actor.id)
                raise TicketPermissionError("Only the uploader or an admin may delete this document")

            await uow.remove_document(document_id)
            await uow.history.append(
                ticket_id=document.ticket_id,
                actor_id=actor.id,
                action="document_deleted",
                notes=f"Document deleted: {document.file_name}",
                created_at=self._clock(),
            )

        logger.info("Document deleted document_id=%s ticket_id=%s by=%s", document_id, document.ticket_id, actor.id)
        await self._storage.discard(document.file_path)

    def _validate(self, filename: str, content: bytes, document_type: DocumentType | str) -> DocumentType:
        errors: dict[str, list[str]] = {}
        kind: DocumentType | None = None
        try:
            kind = DocumentType(document_type)
        except ValueError:
            errors["document_type"] = ["The selected document type is invalid."]
        if not filename or not filename.strip():
            errors["file"] = ["The file field is required."]
        elif len(content) > self._max_upload_bytes:
            limit_kb = self._max_upload_bytes // 1024
            errors["file"] = [f"The file may not be greater than {limit_kb} kilobytes."]
        if errors or kind is None:
            raise InputValidationError("The given data was invalid.", errors)
        return kind
