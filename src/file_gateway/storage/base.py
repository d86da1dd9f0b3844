"""Blob backend interface shared by the S3 and local filesystem stores."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import PurePosixPath
from typing import BinaryIO, Callable, Iterable, Iterator, NamedTuple, Optional

from file_gateway.errors import BlobStoreError, StorageUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
KEY_SEPARATOR = "-"


def derive_storage_key(file_id: str, original_name: str) -> str:
    """Storage key for a file: ``{id}-{original_name}``.

    The id prefix keeps keys distinct for files that share a name. Callers must
    pass a name already reduced by ``clean_filename``.
    """
    return f"{file_id}{KEY_SEPARATOR}{original_name}"


def clean_filename(filename: Optional[str]) -> Optional[str]:
    """Reduce a client filename to its last path component.

    Returns None when nothing usable is left or the name holds control
    characters.
    """
    if not filename:
        return None
    if any(ord(c) < 32 or ord(c) == 127 for c in filename):
        return None
    name = PurePosixPath(filename.replace("\\", "/")).name.strip()
    if name in ("", ".", ".."):
        return None
    return name


class BlobEntry(NamedTuple):
    """A stored key and its last-modified time in UTC."""

    key: str
    modified: datetime


class BlobStream:
    """Lazy, finite, non-restartable sequence of byte chunks.

    Must be drained or closed. Closing is idempotent and also happens when the
    iterator is abandoned part way through.
    """

    def __init__(
        self,
        key: str,
        chunks: Iterable[bytes],
        close: Callable[[], None],
        content_length: Optional[int] = None,
    ):
        self.key = key
        self.content_length = content_length
        self._chunks = chunks
        self._close = close
        self._consumed = False
        self.closed = False

    def __iter__(self) -> Iterator[bytes]:
        if self._consumed:
            raise RuntimeError(f"Stream for {self.key} has already been consumed")
        self._consumed = True
        try:
            for chunk in self._chunks:
                if chunk:
                    yield chunk
        except BlobStoreError as e:
            logger.error(f"Stream for {self.key} failed mid-transfer: {e}")
            raise
        except OSError as e:
            logger.error(f"Stream for {self.key} failed mid-transfer: {e}")
            raise StorageUnavailableError(f"Error reading blob {self.key}: {e}", key=self.key) from e
        finally:
            self.close()

    def read(self) -> bytes:
        """Drain the whole stream into memory. Meant for tests and small blobs."""
        return b"".join(self)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self._close()
        except Exception as e:
            logger.warning(f"Error closing stream for {self.key}: {e}")

    def __enter__(self) -> "BlobStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class BlobStore(ABC):
    """Stores and retrieves raw byte streams keyed by a storage key."""

    kind = "abstract"

    @abstractmethod
    def put(self, key: str, content_type: str, stream: BinaryIO) -> str:
        """Store the full stream under ``key`` and return its location.

        Either the whole stream is stored or nothing is visible under ``key``.
        Existing blobs are never overwritten.

        Raises:
            BlobExistsError: something is already stored under ``key``
            StorageUnavailableError: the backend could not accept the bytes
        """

    @abstractmethod
    def get(self, key: str) -> BlobStream:
        """Open the blob stored under ``key``.

        Raises:
            BlobNotFoundError: nothing is stored under ``key``
            StorageUnavailableError: the blob exists but cannot be read
        """

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the blob under ``key``. Absent keys are ignored."""

    @abstractmethod
    def iter_entries(self) -> Iterator[BlobEntry]:
        """Yield every stored key with its last-modified time."""

    def iter_keys(self) -> Iterator[str]:
        for entry in self.iter_entries():
            yield entry.key

    def check(self) -> None:
        """Raise StorageUnavailableError if the backend is unreachable."""

    def close(self) -> None:
        """Release any client handle held by the store."""
