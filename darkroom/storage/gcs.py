"""Storage backed by a Google Cloud Storage bucket."""

from __future__ import annotations

import io
import json
import re
from contextlib import closing
from dataclasses import dataclass
from datetime import datetime, timezone
from http import HTTPStatus
from typing import BinaryIO, Protocol
from urllib.parse import quote

import requests

from darkroom.storage.http_client import HttpClient, HttpResponse
from darkroom.storage.types import GetPartiallyRequestOptions, Response, ResponseMetadata, Storage

_RANGE_PATTERN = re.compile(r"bytes=(\d+)-(\d+)")
_API_ROOT = "https://storage.googleapis.com/storage/v1"
_DAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


class ObjectNotExistError(Exception):
    """The requested object does not exist in the bucket."""

    def __init__(self, message: str = "storage: object doesn't exist") -> None:
        super().__init__(message)


class GoogleAPIError(Exception):
    """An error reply from the storage API, carrying its HTTP status code."""

    def __init__(self, code: int, message: str = "") -> None:
        super().__init__(f"googleapi: Error {code}: {message}")
        self.code = code
        self.message = message


class InvalidRangeError(ValueError):
    """A Range value that is not of the form ``bytes=<start>-<end>``."""

    def __init__(self, message: str = "invalid range") -> None:
        super().__init__(message)


@dataclass
class ObjectAttrs:
    """Attributes of a stored object."""

    bucket: str = ""
    name: str = ""
    content_type: str = ""
    size: int = 0
    updated: datetime | None = None
    etag: str = ""


class _ObjectHandle(Protocol):
    def new_reader(self) -> BinaryIO: ...

    def new_range_reader(self, offset: int, length: int) -> BinaryIO: ...

    def attrs(self) -> ObjectAttrs: ...


class _BucketHandle(Protocol):
    def object(self, name: str) -> _ObjectHandle: ...


def parse_range(value: str) -> tuple[int, int]:
    """Return ``(offset, length)`` for a ``bytes=<start>-<end>`` range."""
    match = _RANGE_PATTERN.search(value)
    if match is None:
        raise InvalidRangeError("range parse error")
    start, end = int(match.group(1)), int(match.group(2))
    return start, end - start + 1


def _format_rfc1123(moment: datetime) -> str:
    zone = moment.tzname() or "UTC"
    return (
        f"{_DAYS[moment.weekday()]}, {moment.day:02d} {_MONTHS[moment.month - 1]} "
        f"{moment.year:04d} {moment:%H:%M:%S} {zone}"
    )


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class _HttpObject:
    """An object read through the storage JSON API."""

    def __init__(self, bucket: str, name: str, client: HttpClient, token: str | None) -> None:
        self._bucket = bucket
        self._name = name
        self._client = client
        self._token = token

    @property
    def _url(self) -> str:
        return f"{_API_ROOT}/b/{quote(self._bucket, safe='')}/o/{quote(self._name, safe='')}"

    def _request(self, url: str, extra: dict[str, str] | None = None) -> HttpResponse:
        headers = dict(extra or {})
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        try:
            reply = self._client.get(url, headers or None)
        except requests.HTTPError as error:
            reply = error.response
            if not isinstance(reply, HttpResponse):
                raise
        if reply.status_code == HTTPStatus.NOT_FOUND:
            raise ObjectNotExistError()
        if reply.status_code >= 400:
            raise GoogleAPIError(reply.status_code, _error_message(reply))
        return reply

    def new_reader(self) -> BinaryIO:
        return io.BytesIO(self._request(f"{self._url}?alt=media").body)

    def new_range_reader(self, offset: int, length: int) -> BinaryIO:
        if length == 0:
            return io.BytesIO(b"")
        byte_range = f"bytes={offset}-" if length < 0 else f"bytes={offset}-{offset + length - 1}"
        return io.BytesIO(self._request(f"{self._url}?alt=media", {"Range": byte_range}).body)

    def attrs(self) -> ObjectAttrs:
        reply = self._request(self._url)
        try:
            document = json.loads(reply.body or b"{}")
        except ValueError as error:
            raise GoogleAPIError(reply.status_code, f"malformed attributes: {error}") from error
        return ObjectAttrs(
            bucket=document.get("bucket", self._bucket),
            name=document.get("name", self._name),
            content_type=document.get("contentType", ""),
            size=int(document.get("size", 0) or 0),
            updated=_parse_timestamp(document.get("updated")),
            etag=document.get("etag", ""),
        )


def _error_message(reply: HttpResponse) -> str:
    try:
        return json.loads(reply.body)["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return reply.body.decode("utf-8", "replace")


class _HttpBucket:
    def __init__(self, name: str, client: HttpClient, token: str | None) -> None:
        self._name = name
        self._client = client
        self._token = token

    def object(self, name: str) -> _HttpObject:
        return _HttpObject(self._name, name, self._client, self._token)


def _read_all(reader: BinaryIO) -> bytes:
    with closing(reader):
        return reader.read()


def _open_error_response(error: Exception) -> Response:
    if isinstance(error, ObjectNotExistError):
        return Response(data=None, status=HTTPStatus.NOT_FOUND, error=error)
    if isinstance(error, GoogleAPIError):
        return Response(data=None, status=error.code, error=error)
    return Response(data=None, status=HTTPStatus.UNPROCESSABLE_ENTITY, error=error)


class GCSStorage(Storage):
    """Reads objects from a Google Cloud Storage bucket.

    ``credentials_json`` must be a JSON object when given; its ``access_token``,
    if present, is sent as a bearer token.
    """

    def __init__(
        self,
        bucket_name: str = "",
        credentials_json: bytes | str = b"",
        client: HttpClient | None = None,
        *,
        bucket: _BucketHandle | None = None,
    ) -> None:
        token = None
        if credentials_json:
            credentials = json.loads(credentials_json)
            if not isinstance(credentials, dict):
                raise ValueError("credentials must be a JSON object")
            token = credentials.get("access_token")
        self.bucket_name = bucket_name
        self.bucket: _BucketHandle = bucket or _HttpBucket(
            bucket_name, client if client is not None else HttpClient(), token
        )

    def get(self, path: str) -> Response:
        """Fetch the whole object at ``path``."""
        path = path.removeprefix("/")
        try:
            reader = self.bucket.object(path).new_reader()
        except Exception as error:
            return _open_error_response(error)
        try:
            data = _read_all(reader)
        except Exception as error:
            return Response(data=None, status=HTTPStatus.UNPROCESSABLE_ENTITY, error=error)
        return Response(data=data, status=HTTPStatus.OK)

    def get_partially(
        self, path: str, options: GetPartiallyRequestOptions | None
    ) -> Response:
        """Fetch the byte range in ``options``; without one, the whole object."""
        path = path.removeprefix("/")
        if options is None or not options.range:
            return self.get(path)
        try:
            offset, length = parse_range(options.range)
        except InvalidRangeError:
            return Response(
                data=None, status=HTTPStatus.UNPROCESSABLE_ENTITY, error=InvalidRangeError()
            )
        handle = self.bucket.object(path)
        try:
            reader = handle.new_range_reader(offset, length)
        except Exception as error:
            return _open_error_response(error)
        try:
            data = _read_all(reader)
        except Exception as error:
            return Response(data=None, status=HTTPStatus.UNPROCESSABLE_ENTITY, error=error)
        try:
            attrs = handle.attrs()
        except Exception as error:
            return Response(data=None, status=HTTPStatus.NOT_FOUND, error=error)
        return Response(data=data, status=HTTPStatus.PARTIAL_CONTENT).with_metadata(
            self._metadata(attrs, offset, length)
        )

    @staticmethod
    def _metadata(attrs: ObjectAttrs, offset: int, length: int) -> ResponseMetadata:
        return ResponseMetadata(
            accept_ranges="bytes",
            content_length=str(abs(offset - length)),
            content_range=f"bytes {offset}-{length - 1}/{attrs.size}",
            content_type=attrs.content_type,
            etag=attrs.etag,
            last_modified=_format_rfc1123(attrs.updated) if attrs.updated else "",
        )