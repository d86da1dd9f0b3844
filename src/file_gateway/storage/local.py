"""Local filesystem blob store."""

import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Iterator

from file_gateway.errors import BlobExistsError, BlobNotFoundError, BlobStoreError, StorageUnavailableError
from file_gateway.storage.base import DEFAULT_CHUNK_SIZE, BlobEntry, BlobStore, BlobStream

logger = logging.getLogger(__name__)

TEMP_PREFIX = ".upload-"


class LocalBlobStore(BlobStore):
    """Stores each blob as a file named by its key under a root directory.

    Writes go to a temporary file in the same directory which is then hard
    linked under the key. A failed write never leaves a partial file, and the
    link fails instead of replacing a blob that is already there.
    """

    kind = "local"

    def __init__(self, root_dir: str | Path, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.root = Path(root_dir).resolve()
        self.chunk_size = chunk_size
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailableError(f"Cannot create storage directory {self.root}: {e}") from e
        logger.info(f"Local blob store initialized at: {self.root}")

    def _path_for(self, key: str) -> Path:
        if "\x00" in key:
            raise BlobStoreError(f"Invalid storage key {key!r}: embedded null byte", key=key)
        try:
            path = (self.root / key).resolve()
        except (OSError, ValueError) as e:
            raise BlobStoreError(f"Invalid storage key {key!r}: {e}", key=key) from e
        if path.parent != self.root:
            raise BlobStoreError(f"Storage key escapes the storage root: {key!r}", key=key)
        return path

    def put(self, key: str, content_type: str, stream: BinaryIO) -> str:
        dest_path = self._path_for(key)
        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(dir=self.root, prefix=TEMP_PREFIX, delete=False) as tmp:
                tmp_path = Path(tmp.name)
                shutil.copyfileobj(stream, tmp, self.chunk_size)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.link(tmp_path, dest_path)
        except FileExistsError as e:
            raise BlobExistsError(f"Blob already exists: {key}", key=key) from e
        except OSError as e:
            logger.error(f"Error writing {key} to local storage: {e}")
            raise StorageUnavailableError(f"Local storage unavailable: {e}", key=key) from e
        finally:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)

        logger.info(f"Stored {key} ({content_type}) at {dest_path}")
        return str(dest_path)

    def get(self, key: str) -> BlobStream:
        path = self._path_for(key)
        try:
            handle = open(path, "rb")
        except FileNotFoundError as e:
            raise BlobNotFoundError(f"File not found: {path}", key=key) from e
        except OSError as e:
            raise StorageUnavailableError(f"Error opening {path}: {e}", key=key) from e
        try:
            size = os.fstat(handle.fileno()).st_size
        except OSError as e:
            handle.close()
            raise StorageUnavailableError(f"Error reading {path}: {e}", key=key) from e

        def chunks():
            while True:
                chunk = handle.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk

        return BlobStream(
            key,
            chunks(),
            close=handle.close,
            content_length=size,
        )

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageUnavailableError(f"Error deleting {path}: {e}", key=key) from e
        logger.info(f"Deleted {key} from local storage")

    def iter_entries(self) -> Iterator[BlobEntry]:
        for path in sorted(self.root.iterdir()):
            if path.name.startswith(TEMP_PREFIX):
                continue
            try:
                stat = path.stat()
            except FileNotFoundError:
                continue
            if path.is_file():
                yield BlobEntry(path.name, datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc))

    def check(self) -> None:
        if not os.access(self.root, os.W_OK):
            raise StorageUnavailableError(f"Storage directory is not writable: {self.root}")
