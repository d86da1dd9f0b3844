"""
Detect drift between the blob store and the metadata index.

Two kinds of drift are possible:

- orphaned blobs: stored content with no record, left behind when an upload
  failed at the index and its compensating delete also failed
- missing blobs: a record whose content is gone, which downloads report as an
  integrity violation

Only orphaned blobs are ever cleaned up here. Removing them keeps "record
exists iff blob exists" true; records are never deleted.

An upload stores its blob before it inserts the record, so a blob younger
than the grace period may belong to an upload still in flight. Such blobs are
reported as recent and left alone.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Set

from file_gateway.errors import BlobNotFoundError, BlobStoreError
from file_gateway.index import MetadataIndex
from file_gateway.models import utc_now
from file_gateway.storage import BlobStore, derive_storage_key

logger = logging.getLogger(__name__)

DEFAULT_ORPHAN_GRACE = timedelta(hours=1)


@dataclass
class ReconciliationReport:
    orphaned_keys: List[str] = field(default_factory=list)
    # Unreferenced but inside the grace period
    recent_keys: List[str] = field(default_factory=list)
    missing_ids: List[str] = field(default_factory=list)
    deleted_keys: List[str] = field(default_factory=list)
    failed_deletes: List[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.orphaned_keys and not self.missing_ids


def find_orphaned_blobs(
    blob_store: BlobStore,
    index: MetadataIndex,
    min_age: timedelta = DEFAULT_ORPHAN_GRACE,
    now: Optional[datetime] = None,
    recent: Optional[List[str]] = None,
) -> List[str]:
    """Keys in the blob store that no index record points at.

    Only blobs last modified at least ``min_age`` before ``now`` count.
    Younger unreferenced keys are appended to ``recent`` when it is given.
    """
    now = now or utc_now()
    known_keys: Set[str] = {
        derive_storage_key(record.id, record.original_name) for record in index.iter_records()
    }
    orphans = []
    for entry in blob_store.iter_entries():
        if entry.key in known_keys:
            continue
        if now - entry.modified < min_age:
            if recent is not None:
                recent.append(entry.key)
            continue
        orphans.append(entry.key)
    logger.info(f"Found {len(orphans)} orphaned blobs")
    return orphans


def find_missing_blobs(blob_store: BlobStore, index: MetadataIndex) -> List[str]:
    """Ids of records whose blob is absent from the store."""
    stored_keys = set(blob_store.iter_keys())
    missing = [
        record.id
        for record in index.iter_records()
        if derive_storage_key(record.id, record.original_name) not in stored_keys
    ]
    logger.info(f"Found {len(missing)} records with missing blobs")
    return missing


def delete_orphaned_blobs(blob_store: BlobStore, keys: List[str], report: ReconciliationReport) -> None:
    for key in keys:
        try:
            blob_store.delete(key)
        except BlobNotFoundError:
            pass
        except BlobStoreError as e:
            logger.error(f"Could not delete orphaned blob {key}: {e}")
            report.failed_deletes.append(key)
            continue
        report.deleted_keys.append(key)


def reconcile(
    blob_store: BlobStore,
    index: MetadataIndex,
    delete_orphans: bool = False,
    min_age: timedelta = DEFAULT_ORPHAN_GRACE,
    now: Optional[datetime] = None,
) -> ReconciliationReport:
    """Scan both stores and optionally remove orphaned blobs older than ``min_age``."""
    report = ReconciliationReport()
    report.orphaned_keys = find_orphaned_blobs(blob_store, index, min_age=min_age, now=now, recent=report.recent_keys)
    report.missing_ids = find_missing_blobs(blob_store, index)
    if report.recent_keys:
        logger.info(f"Skipped {len(report.recent_keys)} unreferenced blobs younger than {min_age}")
    if delete_orphans and report.orphaned_keys:
        delete_orphaned_blobs(blob_store, report.orphaned_keys, report)
    return report
