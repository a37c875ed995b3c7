"""Shared storage types: responses, metadata, circuit settings and the storage contract."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field

HEADER_ACCEPT_RANGES = "Accept-Ranges"
HEADER_CONTENT_LENGTH = "Content-Length"
HEADER_CONTENT_RANGE = "Content-Range"
HEADER_CONTENT_TYPE = "Content-Type"
HEADER_ETAG = "ETag"
HEADER_LAST_MODIFIED = "Last-Modified"
HEADER_RANGE = "Range"


@dataclass
class ResponseMetadata:
    """Metadata of a storage response, as HTTP header values."""

    accept_ranges: str = ""
    content_length: str = ""
    content_range: str = ""
    content_type: str = ""
    etag: str = ""
    last_modified: str = ""


@dataclass
class Response:
    """Result of a storage lookup: the data, the HTTP status and any error."""

    data: bytes | None = None
    status: int = 0
    error: Exception | None = None
    metadata: ResponseMetadata | None = None

    def with_metadata(self, metadata: ResponseMetadata | None) -> Response:
        """Attach metadata and return the same response."""
        self.metadata = metadata
        return self


@dataclass(frozen=True)
class CommandConfig:
    """Circuit breaker settings; a value of 0 selects the breaker's default.

    ``timeout`` and ``sleep_window`` are in milliseconds.
    """

    timeout: int = 0
    max_concurrent_requests: int = 0
    request_volume_threshold: int = 0
    sleep_window: int = 0
    error_percent_threshold: int = 0


@dataclass(frozen=True)
class HystrixCommand:
    """A circuit breaker command name together with its settings."""

    name: str = ""
    config: CommandConfig = field(default_factory=CommandConfig)


@dataclass(frozen=True)
class GetPartiallyRequestOptions:
    """Options for a partial fetch; ``range`` is an HTTP Range header value."""

    range: str = ""


class Storage(abc.ABC):
    """A backend that images are fetched from."""

    @abc.abstractmethod
    def get(self, path: str) -> Response:
        """Fetch the whole object at ``path``."""

    @abc.abstractmethod
    def get_partially(
        self, path: str, options: GetPartiallyRequestOptions | None
    ) -> Response:
        """Fetch part of the object at ``path`` as described by ``options``."""