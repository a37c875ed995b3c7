import uuid

import pytest
import requests
import responses

from darkroom.storage.http_client import HttpClient, HttpResponse
from darkroom.storage.types import GetPartiallyRequestOptions, HystrixCommand
from darkroom.storage.webfolder import WebFolderStorage

VALID_BASE_URL = "https://example.com/path/to/images"
VALID_PATH = "/path/to/valid-file"
INVALID_PATH = "/path/to/invalid-file"
VALID_RANGE = "bytes=100-200"


class FakeClient:
    def __init__(self):
        self.replies = {}
        self.calls = []

    def on(self, url, headers, outcome):
        self.replies[(url, headers)] = outcome

    def get(self, url, headers=None):
        self.calls.append((url, headers))
        outcome = self.replies[(url, headers)]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def storage(client):
    return WebFolderStorage(base_url=VALID_BASE_URL, client=client)


def test_options_are_set():
    hc = HttpClient()
    s = WebFolderStorage(base_url="https://example.com/path/to/images", client=hc)
    assert s.base_url == "https://example.com/path/to/images"
    assert s.client is hc


def test_get_not_found(storage, client):
    error = requests.HTTPError("not found", response=HttpResponse(status_code=404))
    client.on(f"{VALID_BASE_URL}{INVALID_PATH}", None, error)

    res = storage.get(INVALID_PATH)

    assert res.error is error
    assert res.status == 404
    assert res.data is None


def test_get_no_response(storage, client):
    client.on(
        f"{VALID_BASE_URL}{INVALID_PATH}",
        None,
        requests.ConnectionError("response body read failure"),
    )

    res = storage.get(INVALID_PATH)

    assert isinstance(res.error, requests.ConnectionError)
    assert res.status == 422
    assert res.data is None


def test_get_success_response(storage, client):
    client.on(
        f"{VALID_BASE_URL}{VALID_PATH}",
        None,
        HttpResponse(status_code=200, body=b"response body"),
    )

    res = storage.get(VALID_PATH)

    assert res.error is None
    assert res.status == 200
    assert res.data == b"response body"


def test_get_partial_object_success_response(storage, client):
    client.on(
        f"{VALID_BASE_URL}{VALID_PATH}",
        None,
        HttpResponse(status_code=200, body=b"response body"),
    )

    res = storage.get_partially(VALID_PATH, GetPartiallyRequestOptions(range=VALID_RANGE))

    assert res.error is None
    assert res.status == 200
    assert res.data == b"response body"
    assert res.metadata is None
    assert client.calls == [(f"{VALID_BASE_URL}{VALID_PATH}", None)]


def test_get_through_http_client():
    hc = HttpClient(HystrixCommand(name=f"webfolder-{uuid.uuid4()}"))
    s = WebFolderStorage(base_url=VALID_BASE_URL, client=hc)
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, f"{VALID_BASE_URL}{VALID_PATH}", body=b"image bytes", status=200)
        res = s.get(VALID_PATH)

    assert res.error is None
    assert res.status == 200
    assert res.data == b"image bytes"