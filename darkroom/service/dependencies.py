"""Builds the storage backends and HTTP clients the service depends on."""

from __future__ import annotations

from collections.abc import Iterable

from darkroom.storage.cloudfront import CloudfrontStorage
from darkroom.storage.http_client import HttpClient
from darkroom.storage.types import HystrixCommand
from darkroom.storage.webfolder import WebFolderStorage


def default_params(entries: Iterable[str]) -> dict[str, str]:
    """Turn ``key=value`` entries into a mapping; entries without ``=`` are skipped."""
    params: dict[str, str] = {}
    for entry in entries:
        if "=" in entry:
            key, value = entry.split("=")[:2]
            params[key] = value
    return params


def new_http_client(hystrix_command: HystrixCommand | None) -> HttpClient:
    """Return an HTTP client guarded by the circuit breaker of ``hystrix_command``."""
    return HttpClient(command=hystrix_command)


def new_web_folder_storage(
    base_url: str, hystrix_command: HystrixCommand | None
) -> WebFolderStorage:
    """Return a web folder storage rooted at ``base_url``."""
    return WebFolderStorage(base_url=base_url, client=new_http_client(hystrix_command))


def new_cloudfront_storage(
    host: str, secure_protocol: bool, hystrix_command: HystrixCommand | None
) -> CloudfrontStorage:
    """Return a CloudFront storage for ``host``, using HTTPS when asked to."""
    return CloudfrontStorage(
        host=host,
        client=new_http_client(hystrix_command),
        secure_protocol=bool(secure_protocol),
    )