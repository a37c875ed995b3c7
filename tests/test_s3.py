import uuid
from datetime import datetime, timezone

import pytest
import responses

from darkroom.storage.s3 import S3Object, S3Storage, status_code_from_error
from darkroom.storage.types import (
    CommandConfig,
    GetPartiallyRequestOptions,
    HystrixCommand,
    ResponseMetadata,
)

VALID_PATH = "path/to/valid-file"
INVALID_PATH = "path/to/invalid-file"
VALID_RANGE = "bytes=0-100"
INVALID_RANGE = "none"


class FakeService:
    def download(self, bucket, key):
        if key == VALID_PATH:
            return b"someData"
        raise RuntimeError("error")

    def get_object(self, bucket, key, byte_range=None):
        if byte_range == VALID_RANGE:
            return S3Object(
                body=b"someData",
                accept_ranges="bytes",
                content_length=101,
                content_range="bytes 100-200/247103",
                content_type="image/png",
                etag="32705ce195789d7bf07f3d44783c2988",
                last_modified=datetime(2015, 10, 21, 7, 28, tzinfo=timezone.utc),
            )
        raise RuntimeError("error")


def command():
    return HystrixCommand(
        name=f"s3-{uuid.uuid4()}",
        config=CommandConfig(
            timeout=2000,
            max_concurrent_requests=100,
            request_volume_threshold=10,
            sleep_window=10,
            error_percent_threshold=25,
        ),
    )


@pytest.fixture
def storage():
    return S3Storage(
        bucket_name="bucket",
        bucket_region="region",
        access_key="placeholder",
        secret_key="secret",
        hystrix_command=command(),
        service=FakeService(),
    )


def test_options_are_set():
    hystrix_command = HystrixCommand(
        name="TestCommand",
        config=CommandConfig(
            timeout=5000,
            max_concurrent_requests=100,
            request_volume_threshold=10,
            sleep_window=10,
            error_percent_threshold=25,
        ),
    )
    s = S3Storage(
        bucket_name="bucket",
        bucket_region="region",
        access_key="placeholder",
        secret_key="secret",
        hystrix_command=hystrix_command,
    )
    assert s.bucket_name == "bucket"
    assert s.bucket_region == "region"
    assert s.access_key == "placeholder"
    assert s.secret_key == "secret"
    assert s.hystrix_command == hystrix_command


def test_get(storage):
    res = storage.get(VALID_PATH)
    assert res.error is None
    assert res.data == b"someData"
    assert res.status == 200


def test_get_failure(storage):
    res = storage.get(INVALID_PATH)
    assert isinstance(res.error, RuntimeError)
    assert res.data is None
    assert res.status == 422


def test_get_partial_object(storage):
    res = storage.get_partially(VALID_PATH, GetPartiallyRequestOptions(range=VALID_RANGE))
    metadata = ResponseMetadata(
        accept_ranges="bytes",
        content_length="101",
        content_range="bytes 100-200/247103",
        content_type="image/png",
        etag="32705ce195789d7bf07f3d44783c2988",
        last_modified="Wed, 21 Oct 2015 07:28:00 GMT",
    )
    assert res.error is None
    assert res.data == b"someData"
    assert res.status == 206
    assert res.metadata == metadata


def test_get_partial_object_failure(storage):
    res = storage.get_partially(VALID_PATH, GetPartiallyRequestOptions(range=INVALID_RANGE))
    assert isinstance(res.error, RuntimeError)
    assert res.data is None
    assert res.status == 422
    assert res.metadata is None


def test_get_partially_without_range_fetches_whole_object(storage):
    res = storage.get_partially(VALID_PATH, None)
    assert res.data == b"someData"
    assert res.status == 200
    assert res.metadata is None


@pytest.mark.parametrize(
    "message, expected",
    [
        ("status code: 403", 403),
        ("status code: 404", 404),
        ("status code: 401", 401),
        ("status code: 4xx", 422),
        ("status code: 422", 422),
    ],
)
def test_status_code_from_error(message, expected):
    assert status_code_from_error(Exception(message), 0) == expected


def test_status_code_without_error():
    assert status_code_from_error(None, None) == 200
    assert status_code_from_error(None, 206) == 206


def test_signed_request_to_endpoint():
    s = S3Storage(
        bucket_name="bucket",
        bucket_region="region",
        access_key="placeholder",
        secret_key="secret",
        endpoint="http://localhost:9000",
        hystrix_command=command(),
    )
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            f"http://localhost:9000/bucket/{VALID_PATH}",
            body=b"someData",
            status=206,
            content_type="image/png",
            headers={
                "Accept-Ranges": "bytes",
                "Content-Range": "bytes 0-100/247103",
                "ETag": "abc",
                "Last-Modified": "Wed, 21 Oct 2015 07:28:00 GMT",
            },
        )
        res = s.get_partially(VALID_PATH, GetPartiallyRequestOptions(range=VALID_RANGE))
        sent = rsps.calls[0].request.headers

    assert sent["Range"] == VALID_RANGE
    assert sent["Authorization"].startswith("AWS4-HMAC-SHA256 Credential=placeholder/")
    assert "/region/s3/aws4_request" in sent["Authorization"]
    assert res.status == 206
    assert res.data == b"someData"
    assert res.metadata.content_range == "bytes 0-100/247103"
    assert res.metadata.content_type == "image/png"
    assert res.metadata.etag == "abc"
    assert res.metadata.last_modified == "Wed, 21 Oct 2015 07:28:00 GMT"


def test_missing_object_maps_to_not_found():
    s = S3Storage(
        bucket_name="bucket",
        bucket_region="region",
        access_key="placeholder",
        secret_key="secret",
        endpoint="http://localhost:9000",
        hystrix_command=command(),
    )
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            f"http://localhost:9000/bucket/{INVALID_PATH}",
            body="<Error><Code>NoSuchKey</Code></Error>",
            status=404,
        )
        res = s.get(INVALID_PATH)

    assert res.status == 404
    assert res.data is None
    assert "NoSuchKey" in str(res.error)