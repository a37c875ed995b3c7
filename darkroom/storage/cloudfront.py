"""Storage backed by a CloudFront distribution fetched over HTTP."""

from __future__ import annotations

from http import HTTPStatus

from darkroom.storage.http_client import HttpClient, HttpResponse
from darkroom.storage.types import (
    HEADER_ACCEPT_RANGES,
    HEADER_CONTENT_LENGTH,
    HEADER_CONTENT_RANGE,
    HEADER_CONTENT_TYPE,
    HEADER_ETAG,
    HEADER_LAST_MODIFIED,
    HEADER_RANGE,
    GetPartiallyRequestOptions,
    Response,
    ResponseMetadata,
    Storage,
)


def _error_response(error: Exception) -> Response:
    reply = getattr(error, "response", None)
    status = reply.status_code if reply is not None else HTTPStatus.UNPROCESSABLE_ENTITY
    return Response(data=None, status=int(status), error=error)


class CloudfrontStorage(Storage):
    """Fetches objects from a CloudFront host; the host may end with a slash."""

    def __init__(
        self,
        host: str = "",
        client: HttpClient | None = None,
        secure_protocol: bool = False,
    ) -> None:
        self.host = host
        self.client = client if client is not None else HttpClient()
        self.secure_protocol = secure_protocol

    @property
    def protocol(self) -> str:
        return "https" if self.secure_protocol else "http"

    def url_for(self, path: str) -> str:
        """Build the URL of ``path`` on the configured host."""
        host = self.host[:-1] if self.host.endswith("/") else self.host
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.protocol}://{host}{path}"

    def _fetch(self, path: str, headers: dict[str, str] | None) -> HttpResponse | Response:
        try:
            reply = self.client.get(self.url_for(path), headers)
        except Exception as error:
            return _error_response(error)
        if reply.status_code == HTTPStatus.FORBIDDEN:
            return Response(
                data=None, status=reply.status_code, error=PermissionError("forbidden")
            )
        return reply

    def get(self, path: str) -> Response:
        """Fetch the whole object at ``path``."""
        reply = self._fetch(path, None)
        if isinstance(reply, Response):
            return reply
        return Response(data=reply.body, status=reply.status_code)

    def get_partially(
        self, path: str, options: GetPartiallyRequestOptions | None
    ) -> Response:
        """Fetch the byte range in ``options``; without one, the whole object."""
        if options is None or not options.range:
            return self.get(path)
        reply = self._fetch(path, {HEADER_RANGE: options.range})
        if isinstance(reply, Response):
            return reply
        headers = reply.headers
        metadata = ResponseMetadata(
            accept_ranges=headers.get(HEADER_ACCEPT_RANGES, ""),
            content_length=headers.get(HEADER_CONTENT_LENGTH, ""),
            content_range=headers.get(HEADER_CONTENT_RANGE, ""),
            content_type=headers.get(HEADER_CONTENT_TYPE, ""),
            etag=headers.get(HEADER_ETAG, ""),
            last_modified=headers.get(HEADER_LAST_MODIFIED, ""),
        )
        return Response(data=reply.body, status=reply.status_code).with_metadata(metadata)