from __future__ import annotations

import pytest

from sitejo.core.exceptions import InputValidationError
from sitejo.tickets.exceptions import DocumentNotFoundError, TicketNotFoundError, TicketPermissionError
from sitejo.tickets.models import DocumentType, TicketCategory
from sitejo.tickets.repository import TicketUnitOfWork


def _stored_files(storage):
    if not storage.root.exists():
        return []
    return [path for path in storage.root.rglob("*") if path.is_file()]


@pytest.fixture
def create_ticket(ticket_service, people):
    async def factory(*, forward: bool = False):
        aggregate = await ticket_service.create_ticket(
            people.student,
            lecturer_id=people.lecturer.id,
            title="Surat rekomendasi magang",
            description="Magang di PLN",
            category=TicketCategory.SURAT_REKOMENDASI,
        )
        if forward:
            aggregate = await ticket_service.send_to_lecturer(people.admin, aggregate.ticket.id)
        return aggregate.ticket

    return factory


@pytest.mark.asyncio
async def test_upload_stores_blob_and_records_history(document_service, ticket_service, storage, create_ticket, people):
    ticket = await create_ticket()
    document = await document_service.upload(
        people.student,
        ticket.id,
        filename="transkrip nilai.pdf",
        content=b"x" * 512,
        document_type="attachment",
    )

    assert document.document_type is DocumentType.ATTACHMENT
    assert document.file_name == "transkrip nilai.pdf"
    assert document.file_type == "pdf"
    assert document.file_size == 512
    assert document.file_size_human == "512 B"
    assert document.file_path.startswith("documents/")
    assert storage.path_for(document.file_path).read_bytes() == b"x" * 512

    detail = await ticket_service.get_ticket(people.student, ticket.id)
    assert [item.id for item in detail.documents] == [document.id]
    assert detail.documents[0].uploader is not None
    last = detail.histories[-1]
    assert last.action == "document_uploaded"
    assert last.notes == "Document uploaded: transkrip nilai.pdf"
    assert last.old_status is None and last.new_status is None
    assert detail.ticket.status.value == "pending"


@pytest.mark.asyncio
async def test_oversize_upload_is_rejected_before_storage(document_service, storage, create_ticket, people):
    ticket = await create_ticket()
    with pytest.raises(InputValidationError) as exc:
        await document_service.upload(
            people.student,
            ticket.id,
            filename="big.pdf",
            content=b"x" * (document_service.max_upload_bytes + 1),
            document_type="attachment",
        )
    assert "file" in exc.value.errors
    assert _stored_files(storage) == []


@pytest.mark.asyncio
async def test_unknown_document_type_is_rejected(document_service, storage, create_ticket, people):
    ticket = await create_ticket()
    with pytest.raises(InputValidationError) as exc:
        await document_service.upload(
            people.student,
            ticket.id,
            filename="a.pdf",
            content=b"data",
            document_type="invoice",
        )
    assert exc.value.errors == {"document_type": ["The selected document type is invalid."]}
    assert _stored_files(storage) == []


@pytest.mark.asyncio
async def test_failed_transaction_removes_blob(document_service, storage, create_ticket, people, monkeypatch):
    ticket = await create_ticket()

    async def broken_add_document(self, document):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(TicketUnitOfWork, "add_document", broken_add_document)

    with pytest.raises(RuntimeError):
        await document_service.upload(
            people.student,
            ticket.id,
            filename="a.pdf",
            content=b"data",
            document_type="attachment",
        )
    assert _stored_files(storage) == []


@pytest.mark.asyncio
async def test_upload_requires_ticket_access(document_service, create_ticket, people):
    ticket = await create_ticket()
    with pytest.raises(TicketPermissionError):
        await document_service.upload(
            people.other_student, ticket.id, filename="a.pdf", content=b"data", document_type="attachment"
        )
    with pytest.raises(TicketPermissionError):
        await document_service.upload(
            people.lecturer, ticket.id, filename="a.pdf", content=b"data", document_type="attachment"
        )
    with pytest.raises(TicketNotFoundError):
        await document_service.upload(
            people.student, "missing", filename="a.pdf", content=b"data", document_type="attachment"
        )


@pytest.mark.asyncio
async def test_download_reports_missing_blob(document_service, storage, create_ticket, people):
    ticket = await create_ticket()
    document = await document_service.upload(
        people.student, ticket.id, filename="a.pdf", content=b"data", document_type="attachment"
    )

    target = await document_service.download(people.admin, document.id)
    assert target.path == storage.path_for(document.file_path)
    assert target.document.id == document.id

    target.path.unlink()
    with pytest.raises(DocumentNotFoundError, match="File not found"):
        await document_service.download(people.student, document.id)
    with pytest.raises(DocumentNotFoundError):
        await document_service.download(people.student, "missing")


@pytest.mark.asyncio
async def test_only_uploader_or_admin_may_delete(document_service, ticket_service, storage, create_ticket, people):
    ticket = await create_ticket(forward=True)
    document = await document_service.upload(
        people.lecturer,
        ticket.id,
        filename="surat_ttd.pdf",
        content=b"signed",
        document_type="signed_document",
    )

    listed = await document_service.list_documents(people.student, ticket.id)
    assert [item.id for item in listed] == [document.id]

    with pytest.raises(TicketPermissionError):
        await document_service.delete(people.student, document.id)
    assert storage.path_for(document.file_path).is_file()

    await document_service.delete(people.admin, document.id)
    assert not storage.path_for(document.file_path).exists()
    assert await document_service.list_documents(people.admin, ticket.id) == []

    detail = await ticket_service.get_ticket(people.admin, ticket.id)
    assert detail.histories[-1].action == "document_deleted"
    assert detail.histories[-1].notes == "Document deleted: surat_ttd.pdf"

    with pytest.raises(DocumentNotFoundError):
        await document_service.delete(people.admin, document.id)
