import unicodedata
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Path, UploadFile, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from file_gateway.dependencies import get_file_service
from file_gateway.errors import error_response
from file_gateway.schemas import (
    ErrorResponse,
    FileMetadataResponse,
    UploadFileData,
    UploadFileResponse,
    WarningDetail,
)
from file_gateway.service import FileService, UploadState

router = APIRouter()

UPLOAD_FAILURE_STATUS = {
    UploadState.REJECTED: "Bad request.",
    UploadState.FAILED_AT_STORAGE: "Storage failure.",
    UploadState.FAILED_AT_INDEX: "Metadata persistence failed.",
}


def content_disposition(filename: str) -> str:
    """Attachment header for ``filename``, with an RFC 5987 form for non-ASCII names."""
    def quoted(name: str) -> str:
        return name.replace("\\", "\\\\").replace('"', '\\"')

    if filename.isascii():
        return f'attachment; filename="{quoted(filename)}"'
    fallback = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii") or "download"
    return f"attachment; filename=\"{quoted(fallback)}\"; filename*=UTF-8''{quote(filename, safe='')}"


@router.post(
    "/files",
    response_model=UploadFileResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
)
def upload_file(
    file: Optional[UploadFile] = File(None, description="The file to upload"),
    user_id: Optional[str] = Form(None, description="Id of the owning user"),
    service: FileService = Depends(get_file_service),
):
    """
    Upload a file for a user.

    The blob is stored first and the metadata record last, so a file id is only
    ever returned for content that is retrievable. Problems resolving or
    notifying the owner are reported as warnings on a successful upload.

    Returns:
        UploadFileResponse: file id, storage location and any warnings
    """
    result = service.upload(
        payload=file.file if file else None,
        filename=file.filename if file else None,
        content_type=file.content_type if file else None,
        owner_id=user_id,
    )
    if not result.succeeded:
        return error_response(result.error, UPLOAD_FAILURE_STATUS[result.state])

    warned = result.state == UploadState.SUCCEEDED_WITH_WARNING
    return UploadFileResponse(
        succeed=True,
        code=status.HTTP_201_CREATED,
        status="File uploaded with warnings." if warned else "File uploaded successfully.",
        message="; ".join(w.message for w in result.warnings) or None,
        data=UploadFileData(
            id=result.record.id,
            location=result.record.location,
            state=result.state.value,
            warnings=[WarningDetail(kind=w.kind.value, message=w.message) for w in result.warnings],
        ),
    )


@router.get(
    "/files/{file_id}",
    response_class=StreamingResponse,
    responses={
        status.HTTP_200_OK: {"content": {"application/octet-stream": {}}},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
)
def download_file(
    file_id: str = Path(..., description="Identifier returned by the upload"),
    service: FileService = Depends(get_file_service),
):
    """
    Download a file by id.

    Bytes are streamed from whichever backend is configured. If the backend
    fails after the headers are sent, the transfer is cut short; clients must
    compare the received length with Content-Length.
    """
    result = service.download(file_id)
    if not result.ok:
        return error_response(result.error)

    record, stream = result.record, result.stream
    headers = {"Content-Disposition": content_disposition(record.original_name)}
    if stream.content_length is not None:
        headers["Content-Length"] = str(stream.content_length)
    return StreamingResponse(
        stream,
        media_type=record.mime_type,
        headers=headers,
        background=BackgroundTask(stream.close),
    )


@router.get(
    "/files/{file_id}/metadata",
    response_model=FileMetadataResponse,
    responses={
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    },
)
def get_file_metadata(
    file_id: str = Path(..., description="Identifier returned by the upload"),
    service: FileService = Depends(get_file_service),
):
    """Return the stored metadata record for a file."""
    result = service.describe(file_id)
    if not result.ok:
        return error_response(result.error)
    return FileMetadataResponse(
        succeed=True,
        code=status.HTTP_200_OK,
        status="OK",
        data=result.record,
    )
