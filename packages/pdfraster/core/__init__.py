"""Parsing engine behind the PDF/raster reader."""

from __future__ import annotations

from .config import API_LEVEL, DEFAULT_LIMITS, MIN_API_LEVEL, ReaderLimits
from .exceptions import (
    PageFormatError,
    PdfRasterError,
    RasterRangeError,
    ReaderStateError,
    SignatureError,
    SourceReadError,
    StructuralError,
    VersionError,
)
from .model import Compression, PageRecord, PixelFormat, RasterDocument, StripDescriptor, XRefEntry
from .objects import ObjectRecord, ObjectStore
from .pages import PageTreeWalker, walk_pages
from .signature import recognize, recognize_path, scan_signature
from .source import FILE_SOURCE, ByteSource, CallbackSource, SourceReader
from .xref import XRefResolution, XRefResolver, resolve_xref

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
    "XRefEntry",
    "StripDescriptor",
    "PageRecord",
    "RasterDocument",
    "ObjectRecord",
    "ObjectStore",
    "PageTreeWalker",
    "walk_pages",
    "recognize",
    "recognize_path",
    "scan_signature",
    "ByteSource",
    "CallbackSource",
    "SourceReader",
    "FILE_SOURCE",
    "XRefResolution",
    "XRefResolver",
    "resolve_xref",
]
