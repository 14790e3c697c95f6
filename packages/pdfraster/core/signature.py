"""PDF/raster signature recognition.

Recognition only looks at bounded windows at both ends of the source and never
depends on the cross-reference data being intact.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from .config import DEFAULT_LIMITS, ReaderLimits
from .exceptions import PdfRasterError, SignatureError
from .source import FILE_SOURCE, ByteSource, SourceReader, open_file

PDF_HEADER = b"%PDF-"
RASTER_MARKER = re.compile(rb"%PDF-raster-(\d+)\.(\d+)")
_VERSION = re.compile(rb"%PDF-(\d+\.\d+)")

__all__ = ["PDF_HEADER", "scan_signature", "check_signature", "header_version", "recognize", "recognize_path"]


def header_version(prefix: bytes) -> str:
    match = _VERSION.match(prefix)
    if not match:
        raise SignatureError("Missing %PDF- header")
    return match.group(1).decode("ascii")


def scan_signature(reader: SourceReader, limits: ReaderLimits = DEFAULT_LIMITS) -> tuple[int, int] | None:
    """Return the raster profile version found in ``reader``, or ``None``."""

    prefix = reader.read(0, limits.signature_window)
    if not prefix.startswith(PDF_HEADER):
        return None
    match = RASTER_MARKER.search(prefix)
    if match is None:
        _, suffix = reader.tail(limits.signature_window)
        match = RASTER_MARKER.search(suffix)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


def check_signature(reader: SourceReader, limits: ReaderLimits = DEFAULT_LIMITS) -> tuple[str, tuple[int, int]]:
    """Return header and profile versions, raising :class:`SignatureError` if absent."""

    version = scan_signature(reader, limits)
    if version is None:
        raise SignatureError("Source lacks the %PDF- header or the %PDF-raster- marker")
    prefix = reader.read(0, 16)
    return header_version(prefix), version


def recognize(
    source: Any,
    byte_source: ByteSource = FILE_SOURCE,
    *,
    limits: ReaderLimits = DEFAULT_LIMITS,
) -> bool:
    """Return ``True`` if ``source`` looks like a PDF/raster file.

    Never raises: a ``None`` or unreadable source simply is not recognized.
    """

    if source is None:
        return False
    try:
        return scan_signature(SourceReader(byte_source, source), limits) is not None
    except PdfRasterError:
        return False


def recognize_path(path: str | Path | None, *, limits: ReaderLimits = DEFAULT_LIMITS) -> bool:
    """Path flavour of :func:`recognize`; unopenable paths are not recognized."""

    if path is None:
        return False
    try:
        handle = open_file(path)
    except (OSError, ValueError):
        return False
    with handle:
        return recognize(handle, FILE_SOURCE, limits=limits)
