"""Strip discovery and raw strip reads.

A PDF/raster page draws its image as a column of image XObjects named
``/strip0``, ``/strip1``, ... in its resource dictionary, top to bottom.  The
locator records where each strip's encoded bytes live; the reader copies those
bytes straight from the byte source without decoding them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pypdf.generic import ArrayObject, DictionaryObject, IndirectObject, NameObject

from .config import DEFAULT_LIMITS, ReaderLimits
from .exceptions import PageFormatError, RasterRangeError
from .model import Compression, PageRecord, PixelFormat, StripDescriptor
from .objects import ObjectStore
from .source import SourceReader

__all__ = [
    "StripImage",
    "locate_strips",
    "pixel_format",
    "compression",
    "strip_at",
    "read_raw_strip",
    "read_strip",
]

_GRAY_SPACES = {"/DeviceGray", "/CalGray", "/G"}
_RGB_SPACES = {"/DeviceRGB", "/CalRGB", "/RGB"}
_FORMATS = {
    (1, 1): PixelFormat.BITONAL,
    (1, 8): PixelFormat.GRAY8,
    (1, 16): PixelFormat.GRAY16,
    (3, 8): PixelFormat.RGB24,
    (3, 16): PixelFormat.RGB48,
}
_FILTERS = {
    "/CCITTFaxDecode": Compression.CCITTG4,
    "/CCF": Compression.CCITTG4,
    "/DCTDecode": Compression.JPEG,
    "/DCT": Compression.JPEG,
    "/FlateDecode": Compression.FLATE,
    "/Fl": Compression.FLATE,
}


@dataclass(frozen=True, slots=True)
class StripImage:
    """One strip as found on the page, before page-level validation."""

    descriptor: StripDescriptor
    width: int
    format: PixelFormat
    compression: Compression


def _positive_int(store: ObjectStore, image: DictionaryObject, key: str, where: str) -> int:
    value = store.resolve(image.get(NameObject(key)))
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise PageFormatError(f"{where} has no positive {key}")
    return int(value)


def _channels(store: ObjectStore, colorspace: Any, where: str) -> int:
    colorspace = store.resolve(colorspace)
    if isinstance(colorspace, NameObject):
        if colorspace in _GRAY_SPACES:
            return 1
        if colorspace in _RGB_SPACES:
            return 3
        raise PageFormatError(f"{where} uses unsupported colour space {colorspace}")
    if isinstance(colorspace, ArrayObject) and colorspace:
        family = store.resolve(colorspace[0])
        if family == "/CalGray":
            return 1
        if family == "/CalRGB":
            return 3
        if family == "/ICCBased" and len(colorspace) > 1:
            profile = store.resolve(colorspace[1])
            if isinstance(profile, DictionaryObject):
                components = store.resolve(profile.get(NameObject("/N")))
                if components in (1, 3):
                    return int(components)
        raise PageFormatError(f"{where} uses unsupported colour space {family}")
    raise PageFormatError(f"{where} has no usable /ColorSpace")


def pixel_format(store: ObjectStore, image: DictionaryObject, where: str) -> PixelFormat:
    """Map an image's colour space and bits per component to a :class:`PixelFormat`."""

    bits = _positive_int(store, image, "/BitsPerComponent", where)
    channels = _channels(store, image.get(NameObject("/ColorSpace")), where)
    try:
        return _FORMATS[(channels, bits)]
    except KeyError:
        raise PageFormatError(
            f"{where} declares {bits} bits per component for {channels} channel(s)"
        ) from None


def compression(store: ObjectStore, image: DictionaryObject, where: str) -> Compression:
    """Map an image's stream filter to a :class:`Compression`."""

    filters = store.resolve(image.get(NameObject("/Filter")))
    if isinstance(filters, ArrayObject):
        if len(filters) > 1:
            raise PageFormatError(f"{where} chains {len(filters)} filters")
        filters = store.resolve(filters[0]) if filters else None
    if filters is None:
        return Compression.UNCOMPRESSED
    try:
        return _FILTERS[str(filters)]
    except KeyError:
        raise PageFormatError(f"{where} uses unsupported filter {filters}") from None


def locate_strips(
    store: ObjectStore,
    xobjects: DictionaryObject,
    *,
    page_index: int,
    limits: ReaderLimits = DEFAULT_LIMITS,
) -> tuple[StripImage, ...]:
    """Collect ``/strip0..N`` from a page's XObject resources, top to bottom."""

    strips: list[StripImage] = []
    top = 0
    while True:
        key = NameObject(f"/strip{len(strips)}")
        reference = xobjects.get(key)
        if reference is None:
            break
        if len(strips) >= limits.max_strips_per_page:
            raise PageFormatError(
                f"Page {page_index} has more than {limits.max_strips_per_page} strips"
            )
        where = f"Page {page_index} {key}"
        if not isinstance(reference, IndirectObject):
            raise PageFormatError(f"{where} is not an indirect stream")
        record = store.fetch(reference.idnum)
        image = record.value
        if not record.is_stream or image.get(NameObject("/Subtype")) != "/Image":
            raise PageFormatError(f"{where} is not an image XObject")
        assert record.stream_offset is not None and record.stream_length is not None
        width = _positive_int(store, image, "/Width", where)
        height = _positive_int(store, image, "/Height", where)
        descriptor = StripDescriptor(
            index=len(strips),
            offset=record.stream_offset,
            length=record.stream_length,
            height=height,
            top=top,
        )
        strips.append(
            StripImage(
                descriptor=descriptor,
                width=width,
                format=pixel_format(store, image, where),
                compression=compression(store, image, where),
            )
        )
        top += height
    if not strips:
        raise PageFormatError(f"Page {page_index} has no /strip0 image")
    return tuple(strips)


def strip_at(page: PageRecord, strip_index: int) -> StripDescriptor:
    if not 0 <= strip_index < page.strip_count:
        raise RasterRangeError("strip", strip_index, page.strip_count)
    return page.strips[strip_index]


def read_raw_strip(
    reader: SourceReader,
    page: PageRecord,
    strip_index: int,
    buffer: bytearray | memoryview,
    capacity: int | None = None,
) -> int:
    """Copy a strip's encoded bytes into ``buffer`` and return how many were written.

    At most ``capacity`` bytes (default: the buffer's size) are copied; a
    strip longer than that is truncated.
    """

    strip = strip_at(page, strip_index)
    view = memoryview(buffer).cast("B")
    if view.readonly:
        raise TypeError("read_raw_strip needs a writable buffer")
    limit = view.nbytes if capacity is None else min(capacity, view.nbytes)
    if limit < 0:
        raise ValueError("capacity must not be negative")
    count = min(strip.length, limit)
    view[:count] = reader.read_exact(strip.offset, count)
    return count


def read_strip(reader: SourceReader, page: PageRecord, strip_index: int) -> bytes:
    """Return a strip's encoded bytes as a new ``bytes`` object."""

    strip = strip_at(page, strip_index)
    return reader.read_exact(strip.offset, strip.length)
