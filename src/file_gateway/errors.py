"""Error taxonomy for the gateway and the FastAPI handlers that report it.

Storage, index and collaborator layers raise the exceptions defined here. The
file service turns them into a closed set of ``ErrorKind`` values carried by
``GatewayError`` inside its result objects, and the HTTP layer maps each kind
to a status code.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

import pydantic
from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


############################
# --- Layer exceptions --- #
############################

class BlobStoreError(Exception):
    """Base class for blob backend failures."""

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class BlobNotFoundError(BlobStoreError):
    """The object is absent from the backend."""


class BlobExistsError(BlobStoreError):
    """Something is already stored under the key; puts never overwrite."""


class StorageUnavailableError(BlobStoreError):
    """The backend cannot accept or return bytes right now."""

    transient = False


class TransientStorageError(StorageUnavailableError):
    """Network failure, timeout or throttling. Safe to retry the whole put."""

    transient = True


class StorageAuthorizationError(StorageUnavailableError):
    """Credentials or permissions were rejected. Never retried."""


class MetadataIndexError(Exception):
    """The metadata index could not complete an operation."""


class DuplicateIdentifierError(MetadataIndexError):
    """A record with the same id already exists."""

    def __init__(self, file_id: str):
        super().__init__(f"File id already present in index: {file_id}")
        self.file_id = file_id


class OwnerNotFoundError(Exception):
    """The user directory has no user with the given id."""

    def __init__(self, owner_id: str):
        super().__init__(f"Owner not found: {owner_id}")
        self.owner_id = owner_id


class UserDirectoryError(Exception):
    """The user directory could not be queried."""


class NotificationError(Exception):
    """A notification could not be delivered."""


###########################
# --- Result variants --- #
###########################

class ErrorKind(str, Enum):
    """Stable classification reported to callers."""

    BAD_REQUEST = "bad_request"
    STORAGE_UNAVAILABLE = "storage_unavailable"
    INDEX_UNAVAILABLE = "index_unavailable"
    NOT_FOUND = "not_found"
    INTEGRITY_VIOLATION = "integrity_violation"
    OWNER_RESOLUTION_FAILED = "owner_resolution_failed"
    NOTIFICATION_FAILED = "notification_failed"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]

    @property
    def is_warning(self) -> bool:
        return self in (ErrorKind.OWNER_RESOLUTION_FAILED, ErrorKind.NOTIFICATION_FAILED)


_HTTP_STATUS = {
    ErrorKind.BAD_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorKind.STORAGE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.INDEX_UNAVAILABLE: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INTEGRITY_VIOLATION: status.HTTP_500_INTERNAL_SERVER_ERROR,
    # Warnings never fail a request on their own
    ErrorKind.OWNER_RESOLUTION_FAILED: status.HTTP_201_CREATED,
    ErrorKind.NOTIFICATION_FAILED: status.HTTP_201_CREATED,
}


@dataclass(frozen=True)
class GatewayError:
    """A classified failure with structured context."""

    kind: ErrorKind
    message: str
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, "context": dict(self.context)}


###############################
# --- FastAPI integration --- #
###############################

def error_response(error: GatewayError, status_text: str | None = None) -> JSONResponse:
    """Render a ``GatewayError`` in the response envelope."""
    code = error.kind.http_status
    return JSONResponse(
        status_code=code,
        content={
            "succeed": False,
            "code": code,
            "status": status_text or error.kind.value.replace("_", " ").capitalize(),
            "message": error.message,
            "error": error.kind.value,
            "data": error.context or None,
        },
    )


async def handle_pydantic_validation_errors(request: Request, exc: pydantic.ValidationError) -> JSONResponse:
    errors = exc.errors()
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "succeed": False,
            "code": status.HTTP_422_UNPROCESSABLE_ENTITY,
            "status": "Validation error",
            "message": "; ".join(str(error["msg"]) for error in errors),
            "error": ErrorKind.BAD_REQUEST.value,
            "data": None,
        },
    )


async def handle_broad_exceptions(request: Request, call_next):
    """Handle any exception that propagates out of a route."""
    try:
        return await call_next(request)
    except Exception as err:
        logger.exception(err)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "succeed": False,
                "code": status.HTTP_500_INTERNAL_SERVER_ERROR,
                "status": "Internal Server Error.",
                "message": "Internal server error",
                "error": None,
                "data": None,
            },
        )
