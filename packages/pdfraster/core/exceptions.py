"""Custom exceptions raised by :mod:`pdfraster`."""

from __future__ import annotations


class PdfRasterError(Exception):
    """Base exception for all PDF/raster reader errors."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def default_message(self) -> str:
        return "An unknown PDF/raster reader error occurred."


class SignatureError(PdfRasterError):
    """Raised when the PDF header or the raster profile marker is absent."""

    @property
    def default_message(self) -> str:
        return "Source does not carry a PDF/raster signature."


class StructuralError(PdfRasterError):
    """Raised when the trailer, cross-reference data or page tree is unusable."""

    @property
    def default_message(self) -> str:
        return "PDF structure is invalid or corrupted."


class PageFormatError(PdfRasterError):
    """Raised when a page lacks mandatory raster attributes."""

    @property
    def default_message(self) -> str:
        return "Page does not describe a valid PDF/raster image."


class RasterRangeError(PdfRasterError, IndexError):
    """Raised when a page or strip index falls outside its valid interval."""

    def __init__(self, kind: str, index: int, count: int) -> None:
        self.kind = kind
        self.index = index
        self.count = count
        super().__init__(f"{kind} index {index} out of range [0, {count})")


class SourceReadError(PdfRasterError, OSError):
    """Raised when the byte source fails or returns a short read before EOF."""

    @property
    def default_message(self) -> str:
        return "Byte source read failed."


class VersionError(PdfRasterError, ValueError):
    """Raised when a requested API level is not supported."""

    @property
    def default_message(self) -> str:
        return "Unsupported API level."


class ReaderStateError(PdfRasterError, RuntimeError):
    """Raised when a reader is used in a state that does not allow the call."""

    @property
    def default_message(self) -> str:
        return "Reader is not in a state that allows this operation."


__all__ = [
    "PdfRasterError",
    "SignatureError",
    "StructuralError",
    "PageFormatError",
    "RasterRangeError",
    "SourceReadError",
    "VersionError",
    "ReaderStateError",
]
