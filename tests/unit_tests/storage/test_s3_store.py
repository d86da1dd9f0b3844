import io

import boto3
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError
from botocore.stub import Stubber

from file_gateway.errors import (
    BlobExistsError,
    BlobNotFoundError,
    StorageAuthorizationError,
    StorageUnavailableError,
    TransientStorageError,
)
from file_gateway.settings import Settings
from file_gateway.storage import S3BlobStore, create_blob_store
from file_gateway.storage.s3 import translate_s3_error
from tests.consts import (
    TEST_BUCKET_NAME,
    TEST_FILE_CONTENT,
    TEST_FILE_CONTENT_TYPE,
    TEST_PDF_CONTENT,
    TEST_PDF_CONTENT_TYPE,
    TEST_REGION,
)


def client_error(code: str, status: int = 400) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "PutObject",
    )


def test__put__stores_object_with_content_type(mocked_aws, s3_store: S3BlobStore):
    location = s3_store.put("id-report.pdf", TEST_PDF_CONTENT_TYPE, io.BytesIO(TEST_PDF_CONTENT))

    assert location == f"https://{TEST_BUCKET_NAME}.s3.{TEST_REGION}.amazonaws.com/id-report.pdf"
    obj = boto3.client("s3", region_name=TEST_REGION).get_object(Bucket=TEST_BUCKET_NAME, Key="id-report.pdf")
    assert obj["Body"].read() == TEST_PDF_CONTENT
    assert obj["ContentType"] == TEST_PDF_CONTENT_TYPE


def test__get__streams_object(mocked_aws, s3_store: S3BlobStore):
    s3_store.put("id-test.txt", TEST_FILE_CONTENT_TYPE, io.BytesIO(TEST_FILE_CONTENT))

    stream = s3_store.get("id-test.txt")

    assert stream.content_length == len(TEST_FILE_CONTENT)
    assert stream.read() == TEST_FILE_CONTENT
    assert stream.closed


def test__get__missing_key_raises_not_found(mocked_aws, s3_store: S3BlobStore):
    with pytest.raises(BlobNotFoundError):
        s3_store.get("missing")


def test__delete__removes_object(mocked_aws, s3_store: S3BlobStore):
    s3_store.put("id-a", "text/plain", io.BytesIO(b"a"))

    s3_store.delete("id-a")
    s3_store.delete("id-a")

    assert list(s3_store.iter_keys()) == []


def test__iter_keys__lists_all(mocked_aws, s3_store: S3BlobStore):
    for key in ("id-1-a.txt", "id-2-a.txt"):
        s3_store.put(key, "text/plain", io.BytesIO(b"x"))

    assert sorted(s3_store.iter_keys()) == ["id-1-a.txt", "id-2-a.txt"]


def test__put__existing_key_is_not_overwritten(mocked_aws, s3_store: S3BlobStore):
    s3_store.put("id-a.txt", "text/plain", io.BytesIO(b"first"))

    with pytest.raises(BlobExistsError):
        s3_store.put("id-a.txt", "text/plain", io.BytesIO(b"second"))

    assert s3_store.get("id-a.txt").read() == b"first"


def test__iter_entries__reports_last_modified(mocked_aws, s3_store: S3BlobStore):
    s3_store.put("id-a.txt", "text/plain", io.BytesIO(b"a"))

    [entry] = list(s3_store.iter_entries())

    assert entry.key == "id-a.txt"
    assert entry.modified.tzinfo is not None


def test__check__missing_bucket_is_unavailable(mocked_aws):
    store = S3BlobStore(boto3.client("s3", region_name=TEST_REGION), bucket_name="no-such-bucket")

    with pytest.raises(StorageUnavailableError):
        store.check()


def test__location_for__custom_endpoint():
    store = S3BlobStore(
        s3_client=None,
        bucket_name="bucket",
        endpoint_url="http://localhost:5000/",
        owns_client=False,
    )

    assert store.location_for("id-my file.txt") == "http://localhost:5000/bucket/id-my%20file.txt"


def test__put__access_denied_is_authorization_error():
    client = boto3.client(
        "s3",
        region_name=TEST_REGION,
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    store = S3BlobStore(client, bucket_name=TEST_BUCKET_NAME)

    with Stubber(client) as stubber:
        stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)
        with pytest.raises(StorageAuthorizationError) as exc_info:
            store.put("id-a", "text/plain", io.BytesIO(b"a"))

    assert not exc_info.value.transient


def test__put__slow_down_is_transient():
    client = boto3.client(
        "s3",
        region_name=TEST_REGION,
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    store = S3BlobStore(client, bucket_name=TEST_BUCKET_NAME)

    with Stubber(client) as stubber:
        stubber.add_client_error("put_object", service_error_code="SlowDown", http_status_code=503)
        with pytest.raises(TransientStorageError) as exc_info:
            store.put("id-a", "text/plain", io.BytesIO(b"a"))

    assert exc_info.value.transient
    assert exc_info.value.key == "id-a"


@pytest.mark.parametrize(
    "error, expected",
    [
        (client_error("NoSuchKey", 404), BlobNotFoundError),
        (client_error("404", 404), BlobNotFoundError),
        (client_error("PreconditionFailed", 412), BlobExistsError),
        (client_error("ConditionalRequestConflict", 409), TransientStorageError),
        (client_error("InvalidAccessKeyId", 403), StorageAuthorizationError),
        (client_error("ServiceUnavailable", 503), TransientStorageError),
        (client_error("NoSuchBucket", 404), StorageUnavailableError),
        (NoCredentialsError(), StorageAuthorizationError),
        (EndpointConnectionError(endpoint_url="http://localhost:5000"), TransientStorageError),
    ],
)
def test__translate_s3_error(error, expected):
    translated = translate_s3_error(error, "id-a", "put")

    assert type(translated) is expected
    assert translated.key == "id-a"


def test__create_blob_store__s3_backend_from_settings(mocked_aws, tmp_path):
    settings = Settings(
        _env_file=None,
        deployment_mode="aws-prod",
        s3_bucket_name=TEST_BUCKET_NAME,
        db_path=str(tmp_path / "files.db"),
    )
    store = create_blob_store(settings)
    try:
        assert store.kind == "s3"
        store.put("id-a.txt", TEST_FILE_CONTENT_TYPE, io.BytesIO(TEST_FILE_CONTENT))
        assert store.get("id-a.txt").read() == TEST_FILE_CONTENT
    finally:
        store.close()
