"""
Metadata index: durable mapping from file id to ``FileRecord``.

The SQLite implementation opens a connection per call so concurrent requests
never share connection state, and commits every insert before returning so a
download issued right after an upload sees the record.
"""

import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import closing
from datetime import datetime
from typing import Iterator, Optional

from file_gateway.errors import DuplicateIdentifierError, MetadataIndexError
from file_gateway.models import FileRecord

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id",
    "original_name",
    "mime_type",
    "size",
    "upload_date",
    "owner_id",
    "storage_key",
    "location",
)


class MetadataIndex(ABC):
    """Durable file id to FileRecord mapping."""

    @abstractmethod
    def init(self) -> None:
        """Create the backing schema if it does not exist."""

    @abstractmethod
    def insert(self, record: FileRecord) -> None:
        """Persist a new record.

        Raises:
            DuplicateIdentifierError: a record with ``record.id`` exists
            MetadataIndexError: the record could not be written
        """

    @abstractmethod
    def find_by_id(self, file_id: str) -> Optional[FileRecord]:
        """Return the record for ``file_id`` or None."""

    @abstractmethod
    def iter_records(self) -> Iterator[FileRecord]:
        """Yield every record."""

    def close(self) -> None:
        """Release resources held by the index."""


class SQLiteMetadataIndex(MetadataIndex):
    """Metadata index stored in a SQLite ``files`` table."""

    def __init__(self, db_path: str = "file_gateway.db", timeout: float = 10.0):
        self.db_path = db_path
        self.timeout = timeout

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        return conn

    def init(self) -> None:
        """Initialize the files table."""
        try:
            with closing(self._get_connection()) as conn:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute('''
                    CREATE TABLE IF NOT EXISTS files (
                        id VARCHAR(36) PRIMARY KEY,
                        original_name VARCHAR(255) NOT NULL,
                        mime_type VARCHAR(255) NOT NULL,
                        size INTEGER NOT NULL,
                        upload_date TIMESTAMP NOT NULL,
                        owner_id VARCHAR(100) NOT NULL,
                        storage_key VARCHAR(300) NOT NULL UNIQUE,
                        location TEXT NOT NULL
                    )
                ''')
                conn.execute('CREATE INDEX IF NOT EXISTS idx_files_owner_id ON files(owner_id)')
                conn.commit()
            logger.info(f"Metadata index initialized at {self.db_path}")
        except sqlite3.Error as e:
            logger.error(f"Error initializing metadata index: {e}")
            raise MetadataIndexError(f"Cannot initialize metadata index: {e}") from e

    def insert(self, record: FileRecord) -> None:
        try:
            with closing(self._get_connection()) as conn:
                conn.execute(
                    f'INSERT INTO files ({", ".join(_COLUMNS)}) VALUES ({", ".join("?" * len(_COLUMNS))})',
                    (
                        record.id,
                        record.original_name,
                        record.mime_type,
                        record.size,
                        record.upload_date.isoformat(),
                        record.owner_id,
                        record.storage_key,
                        record.location,
                    ),
                )
                conn.commit()
        except sqlite3.IntegrityError as e:
            # Both the id and the key derived from it are unique
            raise DuplicateIdentifierError(record.id) from e
        except sqlite3.Error as e:
            logger.error(f"Error inserting record {record.id}: {e}")
            raise MetadataIndexError(f"Cannot insert record {record.id}: {e}") from e
        logger.info(f"Inserted record {record.id} into metadata index")

    def find_by_id(self, file_id: str) -> Optional[FileRecord]:
        try:
            with closing(self._get_connection()) as conn:
                row = conn.execute(
                    f'SELECT {", ".join(_COLUMNS)} FROM files WHERE id = ?', (file_id,)
                ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Error looking up record {file_id}: {e}")
            raise MetadataIndexError(f"Cannot look up record {file_id}: {e}") from e
        return self._row_to_record(row) if row else None

    def iter_records(self) -> Iterator[FileRecord]:
        try:
            with closing(self._get_connection()) as conn:
                rows = conn.execute(
                    f'SELECT {", ".join(_COLUMNS)} FROM files ORDER BY upload_date'
                ).fetchall()
        except sqlite3.Error as e:
            raise MetadataIndexError(f"Cannot list records: {e}") from e
        for row in rows:
            yield self._row_to_record(row)

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> FileRecord:
        data = dict(row)
        data["upload_date"] = datetime.fromisoformat(data["upload_date"])
        return FileRecord(**data)
