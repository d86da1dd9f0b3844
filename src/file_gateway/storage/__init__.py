"""
Blob backends for the file gateway.

Two interchangeable implementations of ``BlobStore``: remote object storage
(S3) and the local filesystem. The backend is picked once at startup from
settings; nothing downstream branches on which one is in use.
"""

import logging

from file_gateway.settings import Settings
from file_gateway.storage.base import BlobEntry, BlobStore, BlobStream, clean_filename, derive_storage_key
from file_gateway.storage.local import LocalBlobStore
from file_gateway.storage.s3 import S3BlobStore

logger = logging.getLogger(__name__)

__all__ = [
    "BlobEntry",
    "BlobStore",
    "BlobStream",
    "LocalBlobStore",
    "S3BlobStore",
    "clean_filename",
    "create_blob_store",
    "derive_storage_key",
]


def _create_s3_store(settings: Settings) -> S3BlobStore:
    from file_gateway.aws_clients import build_s3_client

    return S3BlobStore(
        build_s3_client(settings),
        bucket_name=settings.s3_bucket_name,
        endpoint_url=settings.aws_endpoint_url,
        region=settings.aws_region,
    )


def _create_local_store(settings: Settings) -> LocalBlobStore:
    return LocalBlobStore(settings.storage_dir)


def create_blob_store(settings: Settings) -> BlobStore:
    """Factory returning the blob backend selected by ``settings.storage_backend``."""
    store_factories = {
        "local": _create_local_store,
        "s3": _create_s3_store,
    }

    backend = settings.storage_backend
    if backend not in store_factories:
        raise ValueError(
            f"Invalid storage_backend: {backend}. "
            f"Choose from {list(store_factories.keys())}"
        )

    logger.info(f"Creating blob store for backend: {backend}")
    return store_factories[backend](settings)
