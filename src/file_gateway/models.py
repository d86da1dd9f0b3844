"""Domain model for stored files."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FileRecord(BaseModel):
    """Metadata recorded for one stored file. Created once, never mutated."""

    id: str = Field(description="Identifier generated at upload time.")
    original_name: str = Field(description="Client-supplied display name.")
    mime_type: str = Field(description="Declared content type.")
    size: int = Field(ge=0, description="Size of the stored blob in bytes.")
    upload_date: datetime = Field(default_factory=utc_now)
    owner_id: str = Field(description="Id of the owning user.")
    storage_key: str = Field(description="Key the blob is stored under.")
    location: str = Field(description="Backend location reported by the blob store.")

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "id": "3f1c2a9e-8f7b-4c1d-9f51-2b3d4e5f6a7b",
                "original_name": "report.pdf",
                "mime_type": "application/pdf",
                "size": 1024,
                "upload_date": "2024-01-01T12:34:56Z",
                "owner_id": "u1",
                "storage_key": "3f1c2a9e-8f7b-4c1d-9f51-2b3d4e5f6a7b-report.pdf",
                "location": "https://file-gateway-storage.s3.us-east-1.amazonaws.com/3f1c2a9e-8f7b-4c1d-9f51-2b3d4e5f6a7b-report.pdf",
            }
        },
    )
