"""Reader for PDF/raster files: page metadata and raw strip access."""

from __future__ import annotations

from .core.config import API_LEVEL, DEFAULT_LIMITS, MIN_API_LEVEL, ReaderLimits
from .core.exceptions import (
    PageFormatError,
    PdfRasterError,
    RasterRangeError,
    ReaderStateError,
    SignatureError,
    SourceReadError,
    StructuralError,
    VersionError,
)
from .core.model import Compression, PageRecord, PixelFormat, RasterDocument, StripDescriptor
from .core.signature import recognize, recognize_path
from .core.source import FILE_SOURCE, ByteSource, CallbackSource
from .reader import RasterReader, ReaderState, create, open_path, page_count_path

__all__ = [
    "API_LEVEL",
    "MIN_API_LEVEL",
    "DEFAULT_LIMITS",
    "ReaderLimits",
    "PdfRasterError",
    "SignatureError",
    "StructuralError",
    "PageFormatError",
    "RasterRangeError",
    "SourceReadError",
    "VersionError",
    "ReaderStateError",
    "PixelFormat",
    "Compression",
    "StripDescriptor",
    "PageRecord",
    "RasterDocument",
    "ByteSource",
    "CallbackSource",
    "FILE_SOURCE",
    "RasterReader",
    "ReaderState",
    "create",
    "open_path",
    "page_count_path",
    "recognize",
    "recognize_path",
]
