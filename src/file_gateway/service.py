"""
File service: orchestrates uploads and downloads.

Upload is a linear state machine whose only commit point is the index insert:

    validate -> generate id -> put blob -> insert record -> resolve owner -> notify

Failures before the put leave nothing behind. Puts are create-only, so an id
that is already taken in the index or the blob store is regenerated, and a
failed insert after a successful put can safely delete the blob it created.
Owner resolution and notification failures only downgrade the result to a
warning, since the file is already stored and retrievable by then.

Expected failures are returned inside ``UploadResult`` / ``DownloadResult``
rather than raised.
"""

import io
import logging
import os
import tempfile
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Callable, Iterator, Optional, Tuple, Union

from file_gateway.errors import (
    BlobExistsError,
    BlobNotFoundError,
    BlobStoreError,
    ErrorKind,
    GatewayError,
    MetadataIndexError,
    NotificationError,
    OwnerNotFoundError,
    StorageUnavailableError,
    TransientStorageError,
    UserDirectoryError,
)
from file_gateway.index import MetadataIndex, SQLiteMetadataIndex
from file_gateway.models import FileRecord, utc_now
from file_gateway.notifications import UPLOAD_SUBJECT, LogNotifier, Notifier, SESNotifier, upload_message
from file_gateway.settings import DEFAULT_MAX_UPLOAD_BYTES, Settings
from file_gateway.storage import BlobStore, BlobStream, clean_filename, create_blob_store, derive_storage_key
from file_gateway.users import HTTPUserDirectory, SQLiteUserDirectory, UserDirectory
from file_gateway.utils.decorators import log_execution_time, retry

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
SPOOL_MEMORY_LIMIT = 8 * 1024 * 1024
ID_ATTEMPTS = 3

Payload = Union[bytes, bytearray, BinaryIO]


class UploadState(str, Enum):
    """Terminal states of an upload."""

    REJECTED = "rejected"
    SUCCEEDED = "succeeded"
    SUCCEEDED_WITH_WARNING = "succeeded_with_warning"
    FAILED_AT_STORAGE = "failed_at_storage"
    FAILED_AT_INDEX = "failed_at_index"


@dataclass(frozen=True)
class UploadResult:
    state: UploadState
    record: Optional[FileRecord] = None
    error: Optional[GatewayError] = None
    warnings: Tuple[GatewayError, ...] = ()
    # Only set for FAILED_AT_INDEX: whether the orphaned blob was removed
    compensated: Optional[bool] = None

    @property
    def succeeded(self) -> bool:
        return self.state in (UploadState.SUCCEEDED, UploadState.SUCCEEDED_WITH_WARNING)


@dataclass(frozen=True)
class LookupResult:
    record: Optional[FileRecord] = None
    error: Optional[GatewayError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class DownloadResult(LookupResult):
    stream: Optional[BlobStream] = None


class FileService:
    """Upload and download over a blob store, a metadata index and two collaborators.

    The service holds no per-request state. The blob store and index provide
    their own concurrency safety; the service owns their lifetime and releases
    them in ``close``.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        index: MetadataIndex,
        users: UserDirectory,
        notifier: Notifier,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        put_attempts: int = 1,
        retry_delay: float = 0.5,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.blob_store = blob_store
        self.index = index
        self.users = users
        self.notifier = notifier
        self.max_upload_bytes = max_upload_bytes
        self.put_attempts = put_attempts
        self.retry_delay = retry_delay
        self._id_factory = id_factory
        self._sleep = sleep

    ##################
    # --- Upload --- #
    ##################

    @log_execution_time
    def upload(
        self,
        payload: Optional[Payload],
        filename: Optional[str],
        content_type: Optional[str],
        owner_id: Optional[str],
    ) -> UploadResult:
        """Store ``payload`` for ``owner_id`` and record its metadata."""
        owner_id = (owner_id or "").strip()
        name = clean_filename(filename)
        if payload is None:
            return self._rejected("No file uploaded.")
        if not owner_id:
            return self._rejected("Missing owner id.")
        if name is None:
            return self._rejected("Missing or invalid file name.", filename=filename)
        content_type = content_type or DEFAULT_CONTENT_TYPE

        with _seekable(payload) as body:
            start = body.tell()
            body.seek(0, os.SEEK_END)
            size = body.tell() - start
            body.seek(start)
            if size > self.max_upload_bytes:
                return self._rejected(
                    f"File exceeds the maximum upload size of {self.max_upload_bytes} bytes.",
                    size=size,
                )

            file_id = None
            for _ in range(ID_ATTEMPTS):
                file_id = self._id_factory()
                try:
                    taken = self.index.find_by_id(file_id) is not None
                except MetadataIndexError as e:
                    logger.error(f"Upload {file_id} failed before storing: {e}")
                    return UploadResult(
                        state=UploadState.FAILED_AT_INDEX,
                        error=GatewayError(
                            ErrorKind.INDEX_UNAVAILABLE,
                            f"Metadata index unavailable: {e}",
                            {"id": file_id},
                        ),
                    )
                if taken:
                    logger.warning(f"File id {file_id} already in use, generating another")
                    continue

                key = derive_storage_key(file_id, name)
                logger.info(f"Uploading {name!r} ({size} bytes) for owner {owner_id} as {file_id}")
                try:
                    location = self._put_blob(key, content_type, body, start)
                except BlobExistsError:
                    logger.warning(f"Storage key {key} already in use, generating another id")
                    continue
                except BlobStoreError as e:
                    logger.error(f"Upload {file_id} failed at storage: {e}")
                    return self._storage_failure(file_id, e)
                break
            else:
                return self._storage_failure(
                    file_id,
                    StorageUnavailableError(f"Could not allocate a unique file id in {ID_ATTEMPTS} attempts."),
                )

        record = FileRecord(
            id=file_id,
            original_name=name,
            mime_type=content_type,
            size=size,
            upload_date=utc_now(),
            owner_id=owner_id,
            storage_key=key,
            location=location,
        )
        try:
            self.index.insert(record)
        except Exception as e:
            if not isinstance(e, MetadataIndexError):
                logger.exception(f"Unexpected error inserting record {file_id}")
            compensated = self._delete_orphan(key)
            return UploadResult(
                state=UploadState.FAILED_AT_INDEX,
                error=GatewayError(
                    ErrorKind.INDEX_UNAVAILABLE,
                    f"Metadata persistence failed, file not retrievable: {e}",
                    {"id": file_id, "storage_key": key, "compensated": compensated},
                ),
                compensated=compensated,
            )

        warnings = self._notify_owner(record)
        state = UploadState.SUCCEEDED_WITH_WARNING if warnings else UploadState.SUCCEEDED
        logger.info(f"Upload {file_id} finished: {state.value}")
        return UploadResult(state=state, record=record, warnings=warnings)

    def _rejected(self, message: str, **context) -> UploadResult:
        logger.info(f"Upload rejected: {message}")
        return UploadResult(
            state=UploadState.REJECTED,
            error=GatewayError(ErrorKind.BAD_REQUEST, message, context),
        )

    @staticmethod
    def _storage_failure(file_id: Optional[str], error: BlobStoreError) -> UploadResult:
        return UploadResult(
            state=UploadState.FAILED_AT_STORAGE,
            error=GatewayError(
                ErrorKind.STORAGE_UNAVAILABLE,
                f"Storage failure: {error}",
                {"id": file_id, "transient": getattr(error, "transient", False)},
            ),
        )

    def _put_blob(self, key: str, content_type: str, body: BinaryIO, start: int) -> str:
        def rewind(attempt: int) -> None:
            body.seek(start)

        put = retry(
            max_attempts=self.put_attempts,
            delay=self.retry_delay,
            exceptions=(TransientStorageError,),
            before_attempt=rewind,
            sleep=self._sleep,
            logger_name=__name__,
        )(self.blob_store.put)
        return put(key, content_type, body)

    def _delete_orphan(self, key: str) -> bool:
        """Best-effort removal of a blob whose record could not be written."""
        try:
            self.blob_store.delete(key)
        except Exception as e:
            logger.error(f"Compensating delete failed, blob {key} is orphaned: {e}")
            return False
        logger.info(f"Compensating delete removed {key}")
        return True

    def _notify_owner(self, record: FileRecord) -> Tuple[GatewayError, ...]:
        try:
            owner = self.users.resolve_owner(record.owner_id)
        except (OwnerNotFoundError, UserDirectoryError) as e:
            logger.warning(f"Owner lookup failed for upload {record.id}: {e}")
            return (self._owner_warning(record, str(e)),)
        except Exception as e:
            logger.exception(f"Unexpected error resolving owner {record.owner_id}")
            return (self._owner_warning(record, str(e)),)

        try:
            self.notifier.notify(
                owner.address,
                UPLOAD_SUBJECT,
                upload_message(record.original_name, record.location),
            )
        except Exception as e:
            if not isinstance(e, NotificationError):
                logger.exception(f"Unexpected error notifying {owner.address}")
            logger.warning(f"Notification failed for upload {record.id}: {e}")
            return (
                GatewayError(
                    ErrorKind.NOTIFICATION_FAILED,
                    f"Uploaded; notification failed: {e}",
                    {"id": record.id, "recipient": owner.address},
                ),
            )
        return ()

    @staticmethod
    def _owner_warning(record: FileRecord, reason: str) -> GatewayError:
        return GatewayError(
            ErrorKind.OWNER_RESOLUTION_FAILED,
            f"Uploaded, but owner notification skipped: {reason}",
            {"id": record.id, "owner_id": record.owner_id},
        )

    ####################
    # --- Download --- #
    ####################

    def describe(self, file_id: str) -> LookupResult:
        """Resolve the record for ``file_id`` without touching the blob store."""
        try:
            record = self.index.find_by_id(file_id)
        except MetadataIndexError as e:
            return LookupResult(error=GatewayError(ErrorKind.INDEX_UNAVAILABLE, str(e), {"id": file_id}))
        if record is None:
            return LookupResult(error=GatewayError(ErrorKind.NOT_FOUND, "File not found.", {"id": file_id}))
        return LookupResult(record=record)

    def download(self, file_id: str) -> DownloadResult:
        """Open the blob for ``file_id``.

        On success the caller owns ``result.stream`` and must drain or close it.
        """
        lookup = self.describe(file_id)
        if not lookup.ok:
            return DownloadResult(error=lookup.error)
        record = lookup.record

        # Never trust a stored or client-supplied key; derive it again
        key = derive_storage_key(record.id, record.original_name)
        if key != record.storage_key:
            logger.warning(f"Record {record.id} has storage key {record.storage_key!r}, expected {key!r}")

        try:
            stream = self.blob_store.get(key)
        except BlobNotFoundError as e:
            logger.error(f"Integrity violation: record {record.id} exists but blob {key} is missing")
            return DownloadResult(
                record=record,
                error=GatewayError(
                    ErrorKind.INTEGRITY_VIOLATION,
                    "File record exists but its content is missing.",
                    {"id": record.id, "storage_key": key, "reason": str(e)},
                ),
            )
        except BlobStoreError as e:
            logger.error(f"Error opening blob {key}: {e}")
            return DownloadResult(
                record=record,
                error=GatewayError(
                    ErrorKind.STORAGE_UNAVAILABLE,
                    f"Storage failure: {e}",
                    {"id": record.id, "transient": getattr(e, "transient", False)},
                ),
            )
        return DownloadResult(record=record, stream=stream)

    def close(self) -> None:
        for component in (self.blob_store, self.index, self.users, self.notifier):
            try:
                component.close()
            except Exception as e:
                logger.warning(f"Error closing {type(component).__name__}: {e}")


@contextmanager
def _seekable(payload: Payload) -> Iterator[BinaryIO]:
    """Yield a seekable view of ``payload``, spooling it to a temp file if needed."""
    if isinstance(payload, (bytes, bytearray)):
        yield io.BytesIO(payload)
        return
    seekable = getattr(payload, "seekable", None)
    if seekable is not None and seekable():
        yield payload
        return
    with tempfile.SpooledTemporaryFile(max_size=SPOOL_MEMORY_LIMIT) as spool:
        while True:
            chunk = payload.read(64 * 1024)
            if not chunk:
                break
            spool.write(chunk)
        spool.seek(0)
        yield spool


def build_file_service(settings: Settings) -> FileService:
    """Wire a ``FileService`` from settings. The caller must ``close()`` it."""
    blob_store = create_blob_store(settings)

    index = SQLiteMetadataIndex(settings.db_path, timeout=settings.index_timeout_seconds)
    index.init()

    if settings.user_directory == "http":
        users: UserDirectory = HTTPUserDirectory(settings.users_api_url, timeout=settings.users_api_timeout)
    else:
        users = SQLiteUserDirectory(settings.db_path, timeout=settings.index_timeout_seconds)
        users.init()

    if settings.notifier == "ses":
        from file_gateway.aws_clients import build_ses_client

        notifier: Notifier = SESNotifier(build_ses_client(settings), settings.notification_sender)
    else:
        notifier = LogNotifier()

    return FileService(
        blob_store,
        index,
        users,
        notifier,
        max_upload_bytes=settings.max_upload_bytes,
        put_attempts=settings.storage_put_attempts,
        retry_delay=settings.storage_retry_delay,
    )
