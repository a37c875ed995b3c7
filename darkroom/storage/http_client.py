"""HTTP client whose requests go through a named circuit breaker."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field

import requests
from requests.structures import CaseInsensitiveDict

from darkroom.storage.circuit import breaker_for
from darkroom.storage.types import HystrixCommand

DEFAULT_COMMAND_NAME = "http"
DEFAULT_HTTP_TIMEOUT_MS = 30000


@dataclass
class HttpResponse:
    """Status, headers (case-insensitive) and body of an HTTP reply."""

    status_code: int
    headers: Mapping[str, str] = field(default_factory=CaseInsensitiveDict)
    body: bytes = b""


class HttpClient:
    """Fetches URLs with a timeout, guarded by a circuit breaker.

    Replies with a 5xx status raise ``requests.HTTPError`` whose ``response``
    is the ``HttpResponse``; transport failures raise the ``requests`` error
    with no response, and rejected calls raise ``CircuitOpenError``.
    """

    def __init__(
        self,
        command: HystrixCommand | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.command = command or HystrixCommand(name=DEFAULT_COMMAND_NAME)
        self._session = session or requests.Session()

    @property
    def timeout(self) -> float:
        """Request timeout in seconds."""
        return (self.command.config.timeout or DEFAULT_HTTP_TIMEOUT_MS) / 1000

    def get(self, url: str, headers: Mapping[str, str] | None = None) -> HttpResponse:
        """Send a GET request for ``url`` with the given headers."""
        config = dataclasses.replace(
            self.command.config, timeout=round(self.timeout * 1000)
        )
        breaker = breaker_for(self.command.name, config)
        return breaker.call(lambda: self._fetch(url, headers))

    def _fetch(self, url: str, headers: Mapping[str, str] | None) -> HttpResponse:
        reply = self._session.get(
            url,
            headers=dict(headers) if headers else None,
            timeout=self.timeout,
        )
        response = HttpResponse(
            status_code=reply.status_code,
            headers=CaseInsensitiveDict(reply.headers),
            body=reply.content,
        )
        if reply.status_code >= 500:
            raise requests.HTTPError(
                f"server error: {reply.status_code}", response=response
            )
        return response