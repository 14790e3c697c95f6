"""Domain models produced by the PDF/raster reader."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PixelFormat(str, Enum):
    """Pixel formats a PDF/raster page may declare."""

    BITONAL = "bitonal"
    GRAY8 = "gray8"
    GRAY16 = "gray16"
    RGB24 = "rgb24"
    RGB48 = "rgb48"

    @property
    def channels(self) -> int:
        return 3 if self in (PixelFormat.RGB24, PixelFormat.RGB48) else 1

    @property
    def bits_per_component(self) -> int:
        return {
            PixelFormat.BITONAL: 1,
            PixelFormat.GRAY8: 8,
            PixelFormat.GRAY16: 16,
            PixelFormat.RGB24: 8,
            PixelFormat.RGB48: 16,
        }[self]


class Compression(str, Enum):
    """Encodings of strip payloads, named after the stream filter that applies."""

    UNCOMPRESSED = "uncompressed"
    CCITTG4 = "ccittg4"
    JPEG = "jpeg"
    FLATE = "flate"


@dataclass(frozen=True, slots=True)
class XRefEntry:
    """Location of one object as recorded by the cross-reference data."""

    number: int
    generation: int
    offset: int
    in_use: bool = True
    container: int | None = None
    index: int | None = None

    @property
    def compressed(self) -> bool:
        return self.container is not None


@dataclass(frozen=True, slots=True)
class StripDescriptor:
    """Byte range of one strip inside the source."""

    index: int
    offset: int
    length: int
    height: int
    top: int


@dataclass(frozen=True, slots=True)
class PageRecord:
    """Raster attributes of a single page."""

    index: int
    object_number: int
    format: PixelFormat
    compression: Compression
    width: int
    height: int
    rotation: int
    horizontal_dpi: float
    vertical_dpi: float
    media_box: tuple[float, float, float, float]
    strips: tuple[StripDescriptor, ...]

    @property
    def strip_count(self) -> int:
        return len(self.strips)

    @property
    def max_strip_size(self) -> int:
        return max(strip.length for strip in self.strips)


@dataclass(slots=True)
class RasterDocument:
    """Fully validated document owned by an open reader."""

    size: int
    version: str
    raster_version: tuple[int, int] | None
    xref_kind: str
    xref: dict[int, XRefEntry]
    trailer: dict[str, Any]
    root_ref: tuple[int, int]
    pages: tuple[PageRecord, ...] = field(default_factory=tuple)

    @property
    def page_count(self) -> int:
        return len(self.pages)


__all__ = [
    "PixelFormat",
    "Compression",
    "XRefEntry",
    "StripDescriptor",
    "PageRecord",
    "RasterDocument",
]
