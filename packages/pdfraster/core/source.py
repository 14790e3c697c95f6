"""Byte source capability and the bounded reader the parser reads through.

A byte source is anything offering two operations on an opaque token:
``read(source, offset, length) -> bytes`` and ``close(source)``.  A read that
returns fewer bytes than requested signals end of file; the reader treats a
short read that does not end at EOF as a source failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Callable, Protocol

from .exceptions import SourceReadError
from .utils import resolve_path

ReadFunc = Callable[[Any, int, int], bytes]
CloseFunc = Callable[[Any], None]

__all__ = [
    "ByteSource",
    "CallbackSource",
    "SourceReader",
    "FILE_SOURCE",
    "read_file",
    "close_file",
    "open_file",
    "as_byte_source",
]


class ByteSource(Protocol):
    """Protocol for random-access byte providers bound to a source token."""

    def read(self, source: Any, offset: int, length: int) -> bytes:
        """Return up to ``length`` bytes starting at ``offset``."""

    def close(self, source: Any) -> None:
        """Release whatever ``source`` holds."""


@dataclass(frozen=True)
class CallbackSource:
    """Adapts a pair of plain callables to :class:`ByteSource`."""

    reader: ReadFunc
    closer: CloseFunc | None = None

    def read(self, source: Any, offset: int, length: int) -> bytes:
        return self.reader(source, offset, length)

    def close(self, source: Any) -> None:
        if self.closer is not None:
            self.closer(source)


def read_file(source: BinaryIO, offset: int, length: int) -> bytes:
    source.seek(offset)
    return source.read(length)


def close_file(source: BinaryIO | None) -> None:
    if source is not None:
        source.close()


FILE_SOURCE = CallbackSource(read_file, close_file)


def open_file(path: str | Path) -> BinaryIO:
    """Open ``path`` for use with :data:`FILE_SOURCE`."""

    return resolve_path(path).open("rb")


def as_byte_source(read: ByteSource | ReadFunc, close: CloseFunc | None = None) -> ByteSource:
    """Normalise either a :class:`ByteSource` or a bare read callable."""

    if hasattr(read, "read") and hasattr(read, "close"):
        if close is not None:
            raise TypeError("close callable given alongside a ByteSource object")
        return read  # type: ignore[return-value]
    if not callable(read):
        raise TypeError(f"Expected a ByteSource or read callable, got {type(read).__name__}")
    return CallbackSource(read, close)


class SourceReader:
    """Bounded random access over one bound source token."""

    # Beyond 2**48 bytes the size probe gives up.
    _MAX_PROBE_EXPONENT = 48

    def __init__(self, capability: ByteSource, source: Any) -> None:
        self.capability = capability
        self.source = source
        self._size: int | None = None

    def _raw_read(self, offset: int, length: int) -> bytes:
        if offset < 0 or length < 0:
            raise SourceReadError(f"Invalid read of {length} bytes at offset {offset}")
        if length == 0:
            return b""
        try:
            data = self.capability.read(self.source, offset, length)
        except Exception as exc:
            raise SourceReadError(
                f"Byte source failed reading {length} bytes at offset {offset}: {exc}"
            ) from exc
        if not data:
            return b""
        return bytes(data[:length])

    @property
    def size(self) -> int:
        """Total byte length of the source, found by probing reads."""

        if self._size is None:
            sizer = getattr(self.capability, "size", None)
            if callable(sizer):
                try:
                    self._size = int(sizer(self.source))
                except Exception as exc:
                    raise SourceReadError(f"Byte source failed reporting its size: {exc}") from exc
            else:
                self._size = self._probe_size()
        return self._size

    def _probe_size(self) -> int:
        if not self._raw_read(0, 1):
            return 0
        low, high = 0, 1
        exponent = 0
        while self._raw_read(high, 1):
            low, high = high, high * 2
            exponent += 1
            if exponent > self._MAX_PROBE_EXPONENT:
                raise SourceReadError("Byte source is too large to size")
        while high - low > 1:
            middle = (low + high) // 2
            if self._raw_read(middle, 1):
                low = middle
            else:
                high = middle
        return low + 1

    def read(self, offset: int, length: int) -> bytes:
        """Read up to ``length`` bytes, clamped to the end of the source."""

        if offset >= self.size:
            return b""
        wanted = min(length, self.size - offset)
        data = self._raw_read(offset, wanted)
        if len(data) < wanted:
            raise SourceReadError(
                f"Short read at offset {offset}: expected {wanted} bytes, got {len(data)}"
            )
        return data

    def read_exact(self, offset: int, length: int) -> bytes:
        """Read exactly ``length`` bytes or fail."""

        data = self.read(offset, length)
        if len(data) != length:
            raise SourceReadError(
                f"Unexpected end of source at offset {offset}: wanted {length} bytes, got {len(data)}"
            )
        return data

    def tail(self, length: int) -> tuple[int, bytes]:
        """Return the offset and bytes of the last ``length`` bytes."""

        start = max(0, self.size - length)
        return start, self.read(start, self.size - start)
