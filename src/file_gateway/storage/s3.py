"""Remote object blob store backed by S3."""

import logging
from typing import TYPE_CHECKING, BinaryIO, Iterator, Optional
from urllib.parse import quote

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    HTTPClientError,
    NoCredentialsError,
    PartialCredentialsError,
)

from file_gateway.errors import (
    BlobExistsError,
    BlobNotFoundError,
    StorageAuthorizationError,
    StorageUnavailableError,
    TransientStorageError,
)
from file_gateway.storage.base import DEFAULT_CHUNK_SIZE, BlobEntry, BlobStore, BlobStream

if TYPE_CHECKING:
    from mypy_boto3_s3 import S3Client

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
EXISTS_CODES = {"412", "PreconditionFailed"}
AUTH_ERROR_CODES = {
    "403",
    "AccessDenied",
    "AllAccessDisabled",
    "ExpiredToken",
    "InvalidAccessKeyId",
    "InvalidToken",
    "SignatureDoesNotMatch",
}
TRANSIENT_ERROR_CODES = {
    "500",
    "502",
    "503",
    "504",
    "ConditionalRequestConflict",
    "InternalError",
    "RequestTimeout",
    "RequestTimeTooSkewed",
    "ServiceUnavailable",
    "SlowDown",
    "Throttling",
}


def translate_s3_error(e: Exception, key: str, action: str) -> Exception:
    """Map a botocore failure onto the blob store error taxonomy."""
    if isinstance(e, ClientError):
        code = str(e.response.get("Error", {}).get("Code", ""))
        if code in NOT_FOUND_CODES:
            return BlobNotFoundError(f"Object not found: {key}", key=key)
        if code in EXISTS_CODES:
            return BlobExistsError(f"Object already exists: {key}", key=key)
        if code in AUTH_ERROR_CODES:
            return StorageAuthorizationError(f"Not authorized to {action} {key}: {code}", key=key)
        if code in TRANSIENT_ERROR_CODES:
            return TransientStorageError(f"S3 {action} failed for {key}: {code}", key=key)
        return StorageUnavailableError(f"S3 {action} failed for {key}: {code or e}", key=key)
    if isinstance(e, (NoCredentialsError, PartialCredentialsError)):
        return StorageAuthorizationError(f"No usable AWS credentials to {action} {key}: {e}", key=key)
    if isinstance(e, (BotoConnectionError, HTTPClientError)):
        # Covers connect and read timeouts and dropped connections
        return TransientStorageError(f"S3 {action} failed for {key}: {e}", key=key)
    return StorageUnavailableError(f"S3 {action} failed for {key}: {e}", key=key)


class S3BlobStore(BlobStore):
    """Stores each blob as one S3 object.

    ``put`` is a single conditional PutObject call, so the object is either
    fully visible under its key or not at all, and an existing object is never
    replaced.
    """

    kind = "s3"

    def __init__(
        self,
        s3_client: "S3Client",
        bucket_name: str,
        endpoint_url: Optional[str] = None,
        region: str = "us-east-1",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        owns_client: bool = True,
    ):
        self.s3_client = s3_client
        self.bucket_name = bucket_name
        self.endpoint_url = endpoint_url
        self.region = region
        self.chunk_size = chunk_size
        self._owns_client = owns_client
        logger.info(f"Using S3 bucket: {bucket_name}")

    def location_for(self, key: str) -> str:
        """Public URL of the object stored under ``key``."""
        quoted = quote(key)
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket_name}/{quoted}"
        return f"https://{self.bucket_name}.s3.{self.region}.amazonaws.com/{quoted}"

    def put(self, key: str, content_type: str, stream: BinaryIO) -> str:
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=stream,
                ContentType=content_type or "application/octet-stream",
                IfNoneMatch="*",
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error uploading to S3: {str(e)}")
            raise translate_s3_error(e, key, "put") from e
        logger.info(f"Uploaded {key} to S3 bucket {self.bucket_name}")
        return self.location_for(key)

    def get(self, key: str) -> BlobStream:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error fetching {key} from S3: {str(e)}")
            raise translate_s3_error(e, key, "get") from e

        body = response["Body"]

        def chunks():
            try:
                yield from body.iter_chunks(chunk_size=self.chunk_size)
            except (ClientError, BotoCoreError) as e:
                raise translate_s3_error(e, key, "read") from e

        return BlobStream(
            key,
            chunks(),
            close=body.close,
            content_length=response.get("ContentLength"),
        )

    def delete(self, key: str) -> None:
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error deleting {key} from S3: {str(e)}")
            raise translate_s3_error(e, key, "delete") from e
        logger.info(f"Deleted {key} from S3 bucket {self.bucket_name}")

    def iter_entries(self) -> Iterator[BlobEntry]:
        paginator = self.s3_client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self.bucket_name):
                for obj in page.get("Contents", []):
                    yield BlobEntry(obj["Key"], obj["LastModified"])
        except (ClientError, BotoCoreError) as e:
            raise translate_s3_error(e, self.bucket_name, "list") from e

    def check(self) -> None:
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
        except (ClientError, BotoCoreError) as e:
            error = translate_s3_error(e, self.bucket_name, "reach")
            if isinstance(error, BlobNotFoundError):
                error = StorageUnavailableError(f"Bucket not found: {self.bucket_name}", key=self.bucket_name)
            raise error from e

    def close(self) -> None:
        if self._owns_client:
            self.s3_client.close()
