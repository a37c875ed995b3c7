"""Description of an image processing job."""

from __future__ import annotations

from dataclasses import dataclass, field

WEBP_MIME_TYPE = "image/webp"


@dataclass
class ProcessSpec:
    """The image to process, the parameters to apply and the accepted formats."""

    scope: str = ""
    image_data: bytes = b""
    params: dict[str, str] = field(default_factory=dict)
    formats: list[str] = field(default_factory=list)

    def is_webp_supported(self) -> bool:
        """Whether the caller accepts WebP images."""
        return WEBP_MIME_TYPE in self.formats


class SpecBuilder:
    """Builds a ProcessSpec step by step."""

    def __init__(self) -> None:
        self._scope = ""
        self._image_data = b""
        self._params: dict[str, str] = {}
        self._formats: list[str] = []

    def with_scope(self, scope: str) -> SpecBuilder:
        self._scope = scope
        return self

    def with_image_data(self, image_data: bytes) -> SpecBuilder:
        self._image_data = image_data
        return self

    def with_params(self, params: dict[str, str] | None) -> SpecBuilder:
        self._params = params if params is not None else {}
        return self

    def with_formats(self, formats: list[str] | None) -> SpecBuilder:
        self._formats = formats if formats is not None else []
        return self

    def build(self) -> ProcessSpec:
        """Return the spec described so far."""
        return ProcessSpec(
            scope=self._scope,
            image_data=self._image_data,
            params=self._params,
            formats=self._formats,
        )