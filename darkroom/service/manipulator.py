"""Applies the image operations requested by a ProcessSpec."""

from __future__ import annotations

import enum
import math
import re
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any, Protocol

from darkroom.service.spec import ProcessSpec

WIDTH = "w"
HEIGHT = "h"
FIT = "fit"
CROP = "crop"
MONO = "mono"
BLACK_HEX_CODE = "000000"
FLIP = "flip"
ROTATE = "rot"
AUTO = "auto"
BLUR = "blur"
COMPRESS = "compress"
FORMAT = "format"
SCALE = "scale"

EXTENSION_WEBP = "webp"
EXTENSION_PNG = "png"

CROP_DURATION_KEY = "cropDuration"
DECODE_DURATION_KEY = "decodeDuration"
ENCODE_DURATION_KEY = "encodeDuration"
GRAY_SCALE_DURATION_KEY = "grayScaleDuration"
BLUR_DURATION_KEY = "blurDuration"
RESIZE_DURATION_KEY = "resizeDuration"
FLIP_DURATION_KEY = "flipDuration"
ROTATE_DURATION_KEY = "rotateDuration"
FIX_ORIENTATION_KEY = "fixOrientation"
SCALE_DURATION_KEY = "scaleDuration"

_INT_PATTERN = re.compile(r"[+-]?\d+")
_INT64_MAX = 2**63 - 1
_INT64_MIN = -(2**63)
_ORIENTATION_TAG = 0x0112


class CropPoint(enum.Enum):
    """The anchor of a crop."""

    TOP_LEFT = "top,left"
    TOP = "top"
    TOP_RIGHT = "top,right"
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"
    BOTTOM_LEFT = "bottom,left"
    BOTTOM = "bottom"
    BOTTOM_RIGHT = "bottom,right"


class _Processor(Protocol):
    def decode(self, data: bytes) -> tuple[Any, str]: ...

    def encode(self, image: Any, fmt: str) -> bytes: ...

    def crop(self, image: Any, width: int, height: int, point: CropPoint) -> Any: ...

    def resize(self, image: Any, width: int, height: int) -> Any: ...

    def scale(self, image: Any, width: int, height: int) -> Any: ...

    def grayscale(self, image: Any) -> Any: ...

    def blur(self, image: Any, radius: float) -> Any: ...

    def flip(self, image: Any, mode: str) -> Any: ...

    def rotate(self, image: Any, angle: float) -> Any: ...

    def fix_orientation(self, image: Any, orientation: int) -> Any: ...


class _MetricService(Protocol):
    def track_duration(self, name: str, start: float, data: bytes) -> None: ...


def clean_int(value: str) -> int:
    """Parse a positive integer below 10000; anything else gives 0."""
    if not _INT_PATTERN.fullmatch(value or ""):
        return 0
    number = min(max(int(value), _INT64_MIN), _INT64_MAX)
    if number <= 0:
        return 0
    return number % 10000


def clean_float(value: str, bound: float) -> float:
    """Parse a positive number and wrap it below ``bound``; anything else gives 0."""
    if not value or value != value.strip() or "_" in value:
        return 0.0
    try:
        number = float(value)
    except ValueError:
        return 0.0
    if number <= 0:
        return 0.0
    if math.isinf(number):
        return math.nan
    return math.fmod(number, bound)


def crop_point(value: str) -> CropPoint:
    """Map a crop parameter to its anchor; unknown values give the centre."""
    try:
        return CropPoint(value)
    except ValueError:
        return CropPoint.CENTER


def join_params(
    params: Mapping[str, str] | None, default_params: Mapping[str, str] | None
) -> dict[str, str]:
    """Merge request parameters over defaults, appending to non-empty defaults."""
    joined = dict(default_params or {})
    for key, value in (params or {}).items():
        joined[key] = f"{joined[key]},{value}" if joined.get(key) else value
    return joined


def _tiff_orientation(tiff: bytes) -> int:
    order = {b"II": "little", b"MM": "big"}.get(tiff[:2])
    if order is None or len(tiff) < 8:
        return 0

    def u16(offset: int) -> int:
        return int.from_bytes(tiff[offset : offset + 2], order)

    ifd = int.from_bytes(tiff[4:8], order)
    if ifd + 2 > len(tiff):
        return 0
    for entry in range(ifd + 2, ifd + 2 + 12 * u16(ifd), 12):
        if entry + 12 > len(tiff):
            return 0
        if u16(entry) == _ORIENTATION_TAG:
            value = u16(entry + 8)
            return value if 1 <= value <= 8 else 0
    return 0


def _exif_orientation(data: bytes) -> int:
    """Read the EXIF orientation of a JPEG image; 0 when there is none."""
    if data[:2] != b"\xff\xd8":
        return 0
    position = 2
    while position + 4 <= len(data):
        if data[position] != 0xFF:
            return 0
        marker = data[position + 1]
        if marker in (0xD9, 0xDA):
            return 0
        length = int.from_bytes(data[position + 2 : position + 4], "big")
        if length < 2:
            return 0
        segment = data[position + 4 : position + 2 + length]
        if marker == 0xE1 and segment.startswith(b"Exif\x00\x00"):
            return _tiff_orientation(segment[6:])
        position += 2 + length
    return 0


class Manipulator:
    """Runs the operations named in a spec's parameters through a processor."""

    def __init__(
        self,
        processor: _Processor,
        default_params: Mapping[str, str] | None = None,
        metric_service: _MetricService | None = None,
    ) -> None:
        self.processor = processor
        self.default_params = dict(default_params or {})
        self.metric_service = metric_service

    def has_default_params(self) -> bool:
        """Whether default parameters are configured."""
        return bool(self.default_params)

    @contextmanager
    def _tracked(self, key: str, data: bytes) -> Iterator[None]:
        start = time.time()
        yield
        if self.metric_service is not None:
            self.metric_service.track_duration(key, start, data)

    def process(self, spec: ProcessSpec) -> bytes:
        """Decode the image, apply the requested operations and encode it."""
        params = join_params(spec.params, self.default_params)
        source = spec.image_data
        processor = self.processor

        with self._tracked(DECODE_DURATION_KEY, source):
            image, fmt = processor.decode(source)

        fit = params.get(FIT, "")
        width = clean_int(params.get(WIDTH, ""))
        height = clean_int(params.get(HEIGHT, ""))
        if fit == CROP:
            with self._tracked(CROP_DURATION_KEY, source):
                image = processor.crop(image, width, height, crop_point(params.get(CROP, "")))
        elif fit == SCALE:
            with self._tracked(SCALE_DURATION_KEY, source):
                image = processor.scale(image, width, height)
        elif not fit and (width or height):
            with self._tracked(RESIZE_DURATION_KEY, source):
                image = processor.resize(image, width, height)

        if params.get(MONO, "") == BLACK_HEX_CODE:
            with self._tracked(GRAY_SCALE_DURATION_KEY, source):
                image = processor.grayscale(image)

        radius = clean_float(params.get(BLUR, ""), 1000)
        if radius > 0:
            with self._tracked(BLUR_DURATION_KEY, source):
                image = processor.blur(image, radius)

        for option in params.get(AUTO, "").split(","):
            if option == COMPRESS:
                orientation = _exif_orientation(source)
                with self._tracked(FIX_ORIENTATION_KEY, source):
                    image = processor.fix_orientation(image, orientation)
            elif option == FORMAT:
                if spec.is_webp_supported():
                    fmt = EXTENSION_WEBP
                elif fmt == EXTENSION_WEBP:
                    fmt = EXTENSION_PNG

        mode = params.get(FLIP, "")
        if mode:
            with self._tracked(FLIP_DURATION_KEY, source):
                image = processor.flip(image, mode)

        angle = clean_float(params.get(ROTATE, ""), 360)
        if angle > 0:
            with self._tracked(ROTATE_DURATION_KEY, source):
                image = processor.rotate(image, angle)

        with self._tracked(ENCODE_DURATION_KEY, source):
            return processor.encode(image, fmt)