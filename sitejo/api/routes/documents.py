from __future__ import annotations

from fastapi import APIRouter, File, Form, UploadFile, status
from fastapi.responses import FileResponse

from sitejo.api.schemas import DocumentResponse, Envelope, document_response
from sitejo.dependencies.auth import CurrentUser
from sitejo.dependencies.services import DocumentServiceDep
from sitejo.documents.storage import guess_media_type

router = APIRouter(tags=["documents"])


@router.get("/tickets/{ticket_id}/documents", response_model=Envelope[list[DocumentResponse]])
async def list_documents(
    ticket_id: str,
    service: DocumentServiceDep,
    user: CurrentUser,
) -> Envelope[list[DocumentResponse]]:
    documents = await service.list_documents(user, ticket_id)
    return Envelope(data=[document_response(document) for document in documents])


@router.post(
    "/tickets/{ticket_id}/documents",
    response_model=Envelope[DocumentResponse],
    status_code=status.HTTP_201_CREATED,
)
async def upload_document(
    ticket_id: str,
    service: DocumentServiceDep,
    user: CurrentUser,
    file: UploadFile = File(...),
    document_type: str = Form(...),
) -> Envelope[DocumentResponse]:
    # One byte past the limit is enough to reject oversize uploads.
    content = await file.read(service.max_upload_bytes + 1)
    document = await service.upload(
        user,
        ticket_id,
        filename=file.filename or "",
        content=content,
        document_type=document_type,
    )
    return Envelope(message="Document uploaded successfully", data=document_response(document))


@router.get("/documents/{document_id}/download", response_class=FileResponse)
async def download_document(document_id: str, service: DocumentServiceDep, user: CurrentUser) -> FileResponse:
    target = await service.download(user, document_id)
    return FileResponse(
        target.path,
        filename=target.document.file_name,
        media_type=guess_media_type(target.document.file_name),
    )


@router.delete("/documents/{document_id}", response_model=Envelope[None])
async def delete_document(document_id: str, service: DocumentServiceDep, user: CurrentUser) -> Envelope[None]:
    await service.delete(user, document_id)
    return Envelope(message="Document deleted successfully")
