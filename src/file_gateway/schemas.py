####################################
# --- Request/response schemas --- #
####################################

from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from file_gateway.models import FileRecord

DataT = TypeVar("DataT")


class WarningDetail(BaseModel):
    """A non-fatal problem attached to a successful upload."""
    kind: str = Field(description="Stable warning classification.")
    message: str


class UploadFileData(BaseModel):
    """Payload of a successful `POST /v1/files`."""
    id: str = Field(description="Identifier to use for downloads.")
    location: str = Field(description="Where the blob was stored.")
    state: str = Field(description="succeeded or succeeded_with_warning")
    warnings: List[WarningDetail] = Field(default_factory=list)


class ApiResponse(BaseModel, Generic[DataT]):
    """Response envelope shared by every JSON endpoint."""
    succeed: bool
    code: int
    status: str
    message: Optional[str] = None
    error: Optional[str] = Field(default=None, description="Stable error classification on failure.")
    data: Optional[DataT] = None


class UploadFileResponse(ApiResponse[UploadFileData]):
    """Response model for `POST /v1/files`."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "succeed": True,
                "code": 201,
                "status": "File uploaded successfully.",
                "message": None,
                "error": None,
                "data": {
                    "id": "3f1c2a9e-8f7b-4c1d-9f51-2b3d4e5f6a7b",
                    "location": "https://file-gateway-storage.s3.us-east-1.amazonaws.com/3f1c2a9e-8f7b-4c1d-9f51-2b3d4e5f6a7b-report.pdf",
                    "state": "succeeded",
                    "warnings": [],
                },
            }
        }
    )


class FileMetadataResponse(ApiResponse[FileRecord]):
    """Response model for `GET /v1/files/:file_id/metadata`."""


class ErrorResponse(ApiResponse[dict]):
    """Body of every failed request."""
