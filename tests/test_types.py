from http import HTTPStatus

import pytest

from darkroom.storage.types import (
    CommandConfig,
    GetPartiallyRequestOptions,
    HystrixCommand,
    Response,
    ResponseMetadata,
    Storage,
)


def test_new_response():
    err = Exception("randomError")
    metadata = ResponseMetadata(
        accept_ranges="bytes",
        content_length="101",
        content_range="bytes 100-200/247103",
        content_type="image/png",
        etag="32705ce195789d7bf07f3d44783c2988",
        last_modified="Wed, 21 Oct 2015 07:28:00 GMT ",
    )
    r = Response(b"randomBytes", HTTPStatus.BAD_REQUEST, err).with_metadata(metadata)

    assert r.data == b"randomBytes"
    assert r.status == HTTPStatus.BAD_REQUEST
    assert r.error is err
    assert r.metadata == metadata


def test_response_without_metadata_has_none():
    r = Response(b"x", 200, None)
    assert r.metadata is None
    assert r.error is None


def test_with_metadata_returns_same_response():
    r = Response(None, 200)
    md = ResponseMetadata(content_type="image/png")
    assert r.with_metadata(md) is r
    assert r.metadata.content_type == "image/png"


def test_metadata_defaults_are_empty_strings():
    md = ResponseMetadata()
    assert (md.accept_ranges, md.etag, md.last_modified) == ("", "", "")


def test_hystrix_command_defaults():
    cmd = HystrixCommand(name="cmd")
    assert cmd.config == CommandConfig()
    assert cmd.config.timeout == 0


def test_partial_options_hold_range():
    assert GetPartiallyRequestOptions(range="bytes=0-100").range == "bytes=0-100"
    assert GetPartiallyRequestOptions().range == ""


def test_storage_is_abstract():
    with pytest.raises(TypeError):
        Storage()