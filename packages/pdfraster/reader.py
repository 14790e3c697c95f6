"""Reader sessions over a PDF/raster byte source.

A :class:`RasterReader` owns one byte-source capability, the source token it
is bound to while open, and the fully validated :class:`RasterDocument` parsed
from that source.  Opening either produces a complete document or leaves the
reader untouched; there is no partially usable state.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from .core.config import API_LEVEL, DEFAULT_LIMITS, MIN_API_LEVEL, ReaderLimits, is_supported_api_level
from .core.exceptions import PdfRasterError, RasterRangeError, ReaderStateError, SourceReadError, VersionError
from .core.model import Compression, PageRecord, PixelFormat, RasterDocument
from .core.objects import ObjectStore
from .core.pages import walk_pages
from .core.signature import check_signature
from .core.source import FILE_SOURCE, ByteSource, CloseFunc, ReadFunc, SourceReader, as_byte_source, close_file, open_file
from .core.strips import read_raw_strip, read_strip, strip_at
from .core.utils import get_logger
from .core.xref import resolve_xref

LOGGER = get_logger("pdfraster.reader")

__all__ = ["ReaderState", "RasterReader", "create", "load_document", "open_path", "page_count_path"]


class ReaderState(str, Enum):
    """Lifecycle states of a :class:`RasterReader`."""

    CREATED = "created"
    OPEN = "open"
    CLOSED = "closed"
    DESTROYED = "destroyed"


def load_document(reader: SourceReader, limits: ReaderLimits = DEFAULT_LIMITS) -> RasterDocument:
    """Run signature, cross-reference and page-tree stages over ``reader``."""

    version, raster_version = check_signature(reader, limits)
    resolution = resolve_xref(reader, limits)
    store = ObjectStore(reader, resolution.entries, limits)
    pages = walk_pages(store, resolution.root_ref, limits)
    return RasterDocument(
        size=reader.size,
        version=version,
        raster_version=raster_version,
        xref_kind=resolution.kind,
        xref=resolution.entries,
        trailer=dict(resolution.trailer),
        root_ref=resolution.root_ref,
        pages=pages,
    )


class RasterReader:
    """Session reading one PDF/raster source at a time."""

    def __init__(
        self,
        api_level: int = API_LEVEL,
        read: ByteSource | ReadFunc = FILE_SOURCE,
        close: CloseFunc | None = None,
        *,
        limits: ReaderLimits | None = None,
    ) -> None:
        if not is_supported_api_level(api_level):
            raise VersionError(
                f"API level {api_level} is outside the supported range "
                f"[{MIN_API_LEVEL}, {API_LEVEL}]"
            )
        self.api_level = api_level
        self.limits = limits or DEFAULT_LIMITS
        self._capability = as_byte_source(read, close)
        self._state = ReaderState.CREATED
        self._source: Any = None
        self._reader: SourceReader | None = None
        self._document: RasterDocument | None = None

    def __enter__(self) -> "RasterReader":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.destroy()

    def __repr__(self) -> str:
        return f"RasterReader(api_level={self.api_level}, state={self._state.value})"

    # -- Lifecycle -----------------------------------------------------------

    @property
    def state(self) -> ReaderState:
        return self._state

    def open(self, source: Any) -> bool:
        """Bind ``source`` and parse it; ``False`` leaves the reader not open."""

        self._require_alive()
        if self._state is ReaderState.OPEN:
            raise ReaderStateError("Reader is already open; close it before opening another source")
        if source is None:
            return False
        reader = SourceReader(self._capability, source)
        try:
            document = load_document(reader, self.limits)
        except PdfRasterError as exc:
            LOGGER.debug("Rejected source %r: %s", source, exc)
            return False
        self._source = source
        self._reader = reader
        self._document = document
        self._state = ReaderState.OPEN
        LOGGER.debug(
            "Opened PDF-%s raster source with %s page(s), %s cross-reference",
            document.version,
            document.page_count,
            document.xref_kind,
        )
        return True

    def is_open(self) -> bool:
        return self._state is ReaderState.OPEN

    def source(self) -> Any:
        """Return the bound source token, or ``None`` when nothing is bound."""

        return self._source

    def close(self) -> bool:
        """Release the document and the bound source; ``True`` iff it was open."""

        self._require_alive()
        if self._state is not ReaderState.OPEN:
            return False
        source = self._source
        self._document = None
        self._reader = None
        self._source = None
        self._state = ReaderState.CLOSED
        try:
            self._capability.close(source)
        except Exception as exc:
            raise SourceReadError(f"Byte source failed to close: {exc}") from exc
        return True

    def destroy(self) -> None:
        """Close if open and retire the reader; later calls are rejected."""

        if self._state is ReaderState.DESTROYED:
            return
        try:
            self.close()
        finally:
            self._state = ReaderState.DESTROYED

    # -- Document queries ----------------------------------------------------

    @property
    def document(self) -> RasterDocument:
        self._require_open()
        assert self._document is not None
        return self._document

    def page_count(self) -> int:
        """Number of pages of the open document.

        An open document always passed full page-tree validation, so the count
        is never the ``-1`` that :func:`page_count_path` reports for failures.
        """

        return self.document.page_count

    def page_info(self, page: int) -> PageRecord:
        pages = self.document.pages
        if not 0 <= page < len(pages):
            raise RasterRangeError("page", page, len(pages))
        return pages[page]

    def page_format(self, page: int) -> PixelFormat:
        return self.page_info(page).format

    def page_compression(self, page: int) -> Compression:
        return self.page_info(page).compression

    def page_width(self, page: int) -> int:
        return self.page_info(page).width

    def page_height(self, page: int) -> int:
        return self.page_info(page).height

    def page_rotation(self, page: int) -> int:
        return self.page_info(page).rotation

    def page_horizontal_dpi(self, page: int) -> float:
        return self.page_info(page).horizontal_dpi

    def page_vertical_dpi(self, page: int) -> float:
        return self.page_info(page).vertical_dpi

    # -- Strips --------------------------------------------------------------

    def strip_count(self, page: int) -> int:
        return self.page_info(page).strip_count

    def max_strip_size(self, page: int) -> int:
        return self.page_info(page).max_strip_size

    def strip_height(self, page: int, strip: int) -> int:
        return strip_at(self.page_info(page), strip).height

    def read_raw_strip(
        self,
        page: int,
        strip: int,
        buffer: bytearray | memoryview,
        capacity: int | None = None,
    ) -> int:
        """Copy the encoded bytes of one strip into ``buffer``; returns the count."""

        record = self.page_info(page)
        assert self._reader is not None
        return read_raw_strip(self._reader, record, strip, buffer, capacity)

    def raw_strip(self, page: int, strip: int) -> bytes:
        record = self.page_info(page)
        assert self._reader is not None
        return read_strip(self._reader, record, strip)

    # -- Internal helpers ----------------------------------------------------

    def _require_alive(self) -> None:
        if self._state is ReaderState.DESTROYED:
            raise ReaderStateError("Reader has been destroyed")

    def _require_open(self) -> None:
        self._require_alive()
        if self._state is not ReaderState.OPEN:
            raise ReaderStateError("Reader is not open")


def create(
    api_level: int = API_LEVEL,
    read: ByteSource | ReadFunc = FILE_SOURCE,
    close: CloseFunc | None = None,
    *,
    limits: ReaderLimits | None = None,
) -> RasterReader:
    """Create a reader bound to a byte-source capability."""

    return RasterReader(api_level, read, close, limits=limits)


def open_path(
    path: str | Path,
    api_level: int = API_LEVEL,
    *,
    limits: ReaderLimits | None = None,
) -> RasterReader | None:
    """Open ``path`` with the file source; ``None`` if it cannot be read as PDF/raster."""

    reader = RasterReader(api_level, FILE_SOURCE, limits=limits)
    try:
        handle = open_file(path)
    except (OSError, ValueError) as exc:
        LOGGER.debug("Unable to open %s: %s", path, exc)
        reader.destroy()
        return None
    if reader.open(handle):
        return reader
    close_file(handle)
    reader.destroy()
    return None


def page_count_path(path: str | Path | None, *, limits: ReaderLimits | None = None) -> int:
    """Page count of the file at ``path``, or ``-1`` on any failure."""

    if path is None:
        return -1
    reader = open_path(path, limits=limits)
    if reader is None:
        return -1
    try:
        return reader.page_count()
    finally:
        reader.destroy()
