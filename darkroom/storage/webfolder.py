"""Storage backed by a plain web folder reachable over HTTP."""

from __future__ import annotations

from http import HTTPStatus

from darkroom.storage.http_client import HttpClient
from darkroom.storage.types import GetPartiallyRequestOptions, Response, Storage


def _error_response(error: Exception) -> Response:
    reply = getattr(error, "response", None)
    status = reply.status_code if reply is not None else HTTPStatus.UNPROCESSABLE_ENTITY
    return Response(data=None, status=int(status), error=error)


class WebFolderStorage(Storage):
    """Fetches objects by appending the path to a base URL."""

    def __init__(self, base_url: str = "", client: HttpClient | None = None) -> None:
        self.base_url = base_url
        self.client = client if client is not None else HttpClient()

    def get(self, path: str) -> Response:
        """Fetch the object at ``path`` below the base URL."""
        try:
            reply = self.client.get(f"{self.base_url}{path}", None)
        except Exception as error:
            return _error_response(error)
        return Response(data=reply.body, status=reply.status_code)

    def get_partially(
        self, path: str, options: GetPartiallyRequestOptions | None
    ) -> Response:
        """Fetch the whole object; range requests are not supported here."""
        return self.get(path)