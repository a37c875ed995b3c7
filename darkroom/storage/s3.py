"""Storage backed by an S3 bucket."""

from __future__ import annotations

import hashlib
import hmac
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from http import HTTPStatus
from typing import Protocol
from urllib.parse import quote, urlsplit

import requests

from darkroom.storage.circuit import make_network_call
from darkroom.storage.types import (
    HEADER_ACCEPT_RANGES,
    HEADER_CONTENT_LENGTH,
    HEADER_CONTENT_RANGE,
    HEADER_CONTENT_TYPE,
    HEADER_ETAG,
    HEADER_LAST_MODIFIED,
    HEADER_RANGE,
    GetPartiallyRequestOptions,
    HystrixCommand,
    Response,
    ResponseMetadata,
    Storage,
)

_STATUS_PATTERN = re.compile(r"status code: ([0-9]{3})")
_ERROR_CODE_PATTERN = re.compile(r"<Code>([^<]+)</Code>")
_DEFAULT_REGION = "us-east-1"
_EMPTY_PAYLOAD_HASH = hashlib.sha256(b"").hexdigest()


def status_code_from_error(
    error: BaseException | None, success_status: int | None = None
) -> int:
    """Map an S3 error to an HTTP status; without an error, the success status."""
    if error is None:
        return HTTPStatus.OK if success_status is None else success_status
    match = _STATUS_PATTERN.search(str(error))
    if match:
        return int(match.group(1))
    return HTTPStatus.UNPROCESSABLE_ENTITY


@dataclass
class S3Object:
    """An object, or part of one, as returned by S3."""

    body: bytes = b""
    accept_ranges: str = ""
    content_length: int = 0
    content_range: str = ""
    content_type: str = ""
    etag: str = ""
    last_modified: datetime | None = None


class _S3Service(Protocol):
    def download(self, bucket: str, key: str) -> bytes: ...

    def get_object(self, bucket: str, key: str, byte_range: str | None = None) -> S3Object: ...


def _hmac(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode(), hashlib.sha256).digest()


class _S3Client:
    """Minimal S3 reader signing requests with AWS signature version 4."""

    def __init__(
        self,
        region: str,
        access_key: str,
        secret_key: str,
        endpoint: str = "",
        session: requests.Session | None = None,
    ) -> None:
        self.region = region or _DEFAULT_REGION
        self.access_key = access_key
        self.secret_key = secret_key
        self.endpoint = endpoint
        self._session = session or requests.Session()

    def _locate(self, bucket: str, key: str) -> tuple[str, str, str]:
        quoted_key = quote(key.lstrip("/"), safe="/~")
        if self.endpoint:
            base = self.endpoint if "://" in self.endpoint else "https://" + self.endpoint
            parts = urlsplit(base)
            uri = f"{parts.path.rstrip('/')}/{quote(bucket, safe='')}/{quoted_key}"
            return f"{parts.scheme}://{parts.netloc}{uri}", parts.netloc, uri
        host = f"{bucket}.s3.{self.region}.amazonaws.com"
        uri = f"/{quoted_key}"
        return f"https://{host}{uri}", host, uri

    def _signed_headers(self, host: str, uri: str) -> dict[str, str]:
        now = datetime.now(timezone.utc)
        amz_date = now.strftime("%Y%m%dT%H%M%SZ")
        date_stamp = now.strftime("%Y%m%d")
        headers = {
            "host": host,
            "x-amz-content-sha256": _EMPTY_PAYLOAD_HASH,
            "x-amz-date": amz_date,
        }
        names = sorted(headers)
        canonical_headers = "".join(f"{name}:{headers[name]}\n" for name in names)
        signed_names = ";".join(names)
        canonical_request = "\n".join(
            ["GET", uri, "", canonical_headers, signed_names, _EMPTY_PAYLOAD_HASH]
        )
        scope = f"{date_stamp}/{self.region}/s3/aws4_request"
        string_to_sign = "\n".join(
            [
                "AWS4-HMAC-SHA256",
                amz_date,
                scope,
                hashlib.sha256(canonical_request.encode()).hexdigest(),
            ]
        )
        key = _hmac(("AWS4" + self.secret_key).encode(), date_stamp)
        for part in (self.region, "s3", "aws4_request"):
            key = _hmac(key, part)
        signature = hmac.new(key, string_to_sign.encode(), hashlib.sha256).hexdigest()
        return {
            "x-amz-content-sha256": _EMPTY_PAYLOAD_HASH,
            "x-amz-date": amz_date,
            "Authorization": (
                f"AWS4-HMAC-SHA256 Credential={self.access_key}/{scope}, "
                f"SignedHeaders={signed_names}, Signature={signature}"
            ),
        }

    def get_object(self, bucket: str, key: str, byte_range: str | None = None) -> S3Object:
        url, host, uri = self._locate(bucket, key)
        headers = self._signed_headers(host, uri)
        if byte_range:
            headers[HEADER_RANGE] = byte_range
        reply = self._session.get(url, headers=headers)
        if reply.status_code not in (HTTPStatus.OK, HTTPStatus.PARTIAL_CONTENT):
            match = _ERROR_CODE_PATTERN.search(reply.text or "")
            code = match.group(1) if match else reply.reason or "RequestFailure"
            raise requests.HTTPError(
                f"{code}: status code: {reply.status_code}", response=reply
            )
        return S3Object(
            body=reply.content,
            accept_ranges=reply.headers.get(HEADER_ACCEPT_RANGES, ""),
            content_length=int(reply.headers.get(HEADER_CONTENT_LENGTH, 0) or 0),
            content_range=reply.headers.get(HEADER_CONTENT_RANGE, ""),
            content_type=reply.headers.get(HEADER_CONTENT_TYPE, ""),
            etag=reply.headers.get(HEADER_ETAG, ""),
            last_modified=_parse_http_date(reply.headers.get(HEADER_LAST_MODIFIED)),
        )

    def download(self, bucket: str, key: str) -> bytes:
        return self.get_object(bucket, key).body


def _parse_http_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None


def _format_http_date(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return format_datetime(moment.astimezone(timezone.utc), usegmt=True)


class S3Storage(Storage):
    """Reads objects from an S3 bucket through a circuit breaker."""

    def __init__(
        self,
        *,
        bucket_name: str = "",
        bucket_region: str = "",
        access_key: str = "",
        secret_key: str = "",
        endpoint: str = "",
        hystrix_command: HystrixCommand | None = None,
        service: _S3Service | None = None,
    ) -> None:
        self.bucket_name = bucket_name
        self.bucket_region = bucket_region
        self.access_key = access_key
        self.secret_key = secret_key
        self.endpoint = endpoint
        self.hystrix_command = hystrix_command or HystrixCommand()
        self.service: _S3Service = service or _S3Client(
            bucket_region, access_key, secret_key, endpoint
        )

    def _call(self, run):
        command = self.hystrix_command
        return make_network_call(
            command.name,
            command.config,
            lambda: (run(), None),
            lambda error: (None, error),
        )

    def get(self, path: str) -> Response:
        """Download the whole object at ``path``."""
        data, error = self._call(lambda: self.service.download(self.bucket_name, path))
        return Response(
            data=data or None, status=status_code_from_error(error), error=error
        )

    def get_partially(
        self, path: str, options: GetPartiallyRequestOptions | None
    ) -> Response:
        """Fetch the byte range in ``options``; without one, the whole object."""
        if options is None or not options.range:
            return self.get(path)
        output, error = self._call(
            lambda: self.service.get_object(self.bucket_name, path, options.range)
        )
        if error is not None:
            return Response(data=None, status=status_code_from_error(error), error=error)
        return Response(
            data=output.body,
            status=status_code_from_error(None, HTTPStatus.PARTIAL_CONTENT),
        ).with_metadata(self._metadata(output))

    @staticmethod
    def _metadata(output: S3Object) -> ResponseMetadata:
        return ResponseMetadata(
            accept_ranges=output.accept_ranges,
            content_length=str(output.content_length),
            content_range=output.content_range,
            content_type=output.content_type,
            etag=output.etag,
            last_modified=(
                _format_http_date(output.last_modified) if output.last_modified else ""
            ),
        )