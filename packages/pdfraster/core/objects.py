"""Indirect object access on top of a cross-reference map.

Object bodies are parsed with :mod:`pypdf.generic` readers, but only inside
bounded windows read from the byte source.  Stream objects are returned as
their dictionary plus the location of the stream data; the data itself is read
only when a caller asks for it.
"""

from __future__ import annotations

import re
import zlib
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Mapping

from pypdf.errors import PyPdfError
from pypdf.generic import (
    DictionaryObject,
    IndirectObject,
    NameObject,
    NullObject,
    PdfObject,
    StreamObject,
    read_object,
)

from .config import DEFAULT_LIMITS, ReaderLimits
from .exceptions import StructuralError
from .model import XRefEntry
from .source import SourceReader

__all__ = ["ObjectRecord", "ObjectStore", "parse_object", "skip_whitespace", "as_int"]

_WHITESPACE = b"\x00\t\n\r\f "
_OBJECT_HEADER = re.compile(rb"[\x00\t\n\r\f ]*(\d+)[\x00\t\n\r\f ]+(\d+)[\x00\t\n\r\f ]+obj")
_EOL = re.compile(rb"[\r\n]")
_PARSE_ERRORS = (PyPdfError, ValueError, TypeError, KeyError)
_DECODE_ERRORS = (PyPdfError, ValueError, TypeError, KeyError, NotImplementedError, zlib.error)


@dataclass(frozen=True, slots=True)
class ObjectRecord:
    """A parsed indirect object and, for streams, where its data lives."""

    number: int
    generation: int
    value: Any
    stream_offset: int | None = None
    stream_length: int | None = None

    @property
    def is_stream(self) -> bool:
        return self.stream_offset is not None


class _NeedMoreData(Exception):
    """The current window ends before the object does."""


def skip_whitespace(buffer: bytes, index: int) -> int:
    while index < len(buffer) and buffer[index] in _WHITESPACE:
        index += 1
    return index


def as_int(value: Any, what: str) -> int:
    """Coerce a PDF number to ``int``, rejecting non-integral values."""

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise StructuralError(f"{what} must be an integer, got {value!r}")
    if isinstance(value, float):
        if not float(value).is_integer():
            raise StructuralError(f"{what} must be an integer, got {value!r}")
    return int(value)


def _skip_literal_string(data: bytes, index: int) -> int | None:
    depth = 0
    length = len(data)
    while index < length:
        byte = data[index]
        if byte == 0x5C:  # backslash escapes the next byte
            index += 2
            continue
        if byte == 0x28:
            depth += 1
        elif byte == 0x29:
            depth -= 1
            if depth == 0:
                return index + 1
        index += 1
    return None


def _dictionary_end(data: bytes, start: int) -> int | None:
    """Return the index just past the ``>>`` closing the dictionary at ``start``."""

    depth = 0
    index = start
    length = len(data)
    while index < length:
        if data.startswith(b"<<", index):
            depth += 1
            index += 2
            continue
        if data.startswith(b">>", index):
            depth -= 1
            index += 2
            if depth == 0:
                return index
            continue
        byte = data[index]
        if byte == 0x3C:  # hex string
            close = data.find(b">", index + 1)
            if close == -1:
                return None
            index = close + 1
            continue
        if byte == 0x28:
            skipped = _skip_literal_string(data, index)
            if skipped is None:
                return None
            index = skipped
            continue
        if byte == 0x25:  # comment runs to end of line
            match = _EOL.search(data, index)
            if match is None:
                return None
            index = match.end()
            continue
        index += 1
    return None


def parse_object(data: bytes, pdf: Any) -> PdfObject:
    """Parse one direct object from ``data`` using pypdf's object grammar."""

    stream = BytesIO(data + b"\n")
    index = skip_whitespace(data, 0)
    stream.seek(index)
    try:
        return read_object(stream, pdf)
    except _PARSE_ERRORS as exc:
        raise StructuralError(f"Unable to parse PDF object: {exc}") from exc


class ObjectStore:
    """Resolves object numbers to parsed objects for one open source.

    The store doubles as the ``pdf`` handle pypdf attaches to every
    :class:`IndirectObject` it parses, so ``ref.get_object()`` resolves through
    the cross-reference map built for this source.
    """

    strict = True

    def __init__(
        self,
        reader: SourceReader,
        xref: Mapping[int, XRefEntry] | None = None,
        limits: ReaderLimits = DEFAULT_LIMITS,
    ) -> None:
        self.reader = reader
        self.xref: Mapping[int, XRefEntry] = xref if xref is not None else {}
        self.limits = limits
        self._cache: dict[int, ObjectRecord] = {}
        self._containers: dict[int, tuple[bytes, list[tuple[int, int]]]] = {}
        self._pending: set[int] = set()

    # -- pypdf reader hook ---------------------------------------------------

    def get_object(self, reference: IndirectObject | int) -> PdfObject | None:
        number = reference if isinstance(reference, int) else reference.idnum
        return self.fetch(number).value

    # -- Lookups -------------------------------------------------------------

    def resolve(self, obj: Any) -> Any:
        """Follow an indirect reference, returning direct objects unchanged."""

        if isinstance(obj, IndirectObject):
            return self.fetch(obj.idnum).value
        return obj

    def fetch(self, number: int) -> ObjectRecord:
        cached = self._cache.get(number)
        if cached is not None:
            return cached
        entry = self.xref.get(number)
        if entry is None or not entry.in_use:
            raise StructuralError(f"Object {number} is not present in the cross-reference table")
        if number in self._pending:
            raise StructuralError(f"Object {number} refers to itself while being resolved")
        self._pending.add(number)
        try:
            if entry.compressed:
                record = self._fetch_compressed(entry)
            else:
                record = self.parse_at(entry.offset, expected=number)
        finally:
            self._pending.discard(number)
        self._cache[number] = record
        return record

    # -- Parsing -------------------------------------------------------------

    def parse_at(self, offset: int, *, expected: int | None = None) -> ObjectRecord:
        """Parse the indirect object whose ``N G obj`` header starts at ``offset``."""

        size = self.reader.size
        if offset < 0 or offset >= size:
            raise StructuralError(f"Object offset {offset} lies outside the source ({size} bytes)")
        window_size = self.limits.object_window
        while True:
            window = self.reader.read(offset, window_size)
            at_eof = offset + len(window) >= size
            header = _OBJECT_HEADER.match(window)
            if header is None:
                raise StructuralError(f"No object header at offset {offset}")
            number, generation = int(header.group(1)), int(header.group(2))
            if expected is not None and number != expected:
                raise StructuralError(
                    f"Expected object {expected} at offset {offset}, found object {number}"
                )
            try:
                return self._parse_body(window, header.end(), offset, number, generation, at_eof)
            except _NeedMoreData:
                if at_eof or window_size >= self.limits.max_object_size:
                    raise StructuralError(
                        f"Object {number} at offset {offset} is truncated or exceeds "
                        f"{self.limits.max_object_size} bytes"
                    ) from None
                window_size = min(window_size * 2, self.limits.max_object_size)

    def parse_dictionary_at(self, offset: int) -> DictionaryObject:
        """Parse a bare dictionary (such as a trailer) starting at ``offset``."""

        size = self.reader.size
        window_size = self.limits.object_window
        while True:
            window = self.reader.read(offset, window_size)
            at_eof = offset + len(window) >= size
            body = skip_whitespace(window, 0)
            if not window.startswith(b"<<", body):
                raise StructuralError(f"Expected a dictionary at offset {offset}")
            end = _dictionary_end(window, body)
            if end is not None:
                break
            if at_eof or window_size >= self.limits.max_object_size:
                raise StructuralError(f"Dictionary at offset {offset} is truncated")
            window_size = min(window_size * 2, self.limits.max_object_size)
        dictionary = parse_object(window[body:end], self)
        if not isinstance(dictionary, DictionaryObject):
            raise StructuralError(f"Expected a dictionary at offset {offset}")
        return dictionary

    def _parse_body(
        self,
        window: bytes,
        start: int,
        offset: int,
        number: int,
        generation: int,
        at_eof: bool,
    ) -> ObjectRecord:
        body = skip_whitespace(window, start)
        if body >= len(window) and not at_eof:
            raise _NeedMoreData
        if not window.startswith(b"<<", body):
            end = window.find(b"endobj", body)
            if end == -1:
                raise _NeedMoreData
            return ObjectRecord(number, generation, parse_object(window[body:end], self))

        end = _dictionary_end(window, body)
        if end is None:
            raise _NeedMoreData
        dictionary = parse_object(window[body:end], self)
        if not isinstance(dictionary, DictionaryObject):
            raise StructuralError(f"Object {number} does not hold a dictionary")
        after = skip_whitespace(window, end)
        if len(window) - after < len(b"stream") + 2 and not at_eof:
            raise _NeedMoreData
        if not window.startswith(b"stream", after):
            return ObjectRecord(number, generation, dictionary)

        data_start = after + len(b"stream")
        if window.startswith(b"\r\n", data_start):
            data_start += 2
        elif window[data_start : data_start + 1] in (b"\n", b"\r"):
            data_start += 1
        else:
            raise StructuralError(f"Stream keyword of object {number} is not followed by EOL")
        length = self._stream_length(dictionary, number)
        absolute = offset + data_start
        if absolute + length > self.reader.size:
            raise StructuralError(
                f"Stream data of object {number} runs past the end of the source"
            )
        return ObjectRecord(number, generation, dictionary, absolute, length)

    def _stream_length(self, dictionary: DictionaryObject, number: int) -> int:
        length = dictionary.get(NameObject("/Length"))
        if isinstance(length, IndirectObject):
            length = self.fetch(length.idnum).value
        if length is None or isinstance(length, NullObject):
            raise StructuralError(f"Stream object {number} has no /Length")
        value = as_int(length, f"/Length of object {number}")
        if value < 0:
            raise StructuralError(f"Stream object {number} has a negative /Length")
        return value

    # -- Stream data ---------------------------------------------------------

    def read_stream(self, record: ObjectRecord, limit: int) -> bytes:
        """Return the raw (still encoded) data of a stream object."""

        if not record.is_stream:
            raise StructuralError(f"Object {record.number} is not a stream")
        assert record.stream_offset is not None and record.stream_length is not None
        if record.stream_length > limit:
            raise StructuralError(
                f"Stream object {record.number} is {record.stream_length} bytes, limit is {limit}"
            )
        return self.reader.read_exact(record.stream_offset, record.stream_length)

    def decode_stream(self, record: ObjectRecord, limit: int) -> bytes:
        """Return the data of a stream object with its filters applied."""

        raw = self.read_stream(record, limit)
        stream = StreamObject.initialize_from_dictionary({**record.value, "__streamdata__": raw})
        try:
            return stream.get_data()
        except _DECODE_ERRORS as exc:
            raise StructuralError(f"Unable to decode stream object {record.number}: {exc}") from exc

    # -- Object streams ------------------------------------------------------

    def _fetch_compressed(self, entry: XRefEntry) -> ObjectRecord:
        assert entry.container is not None and entry.index is not None
        data, offsets = self._object_stream(entry.container)
        if entry.index >= len(offsets):
            raise StructuralError(
                f"Object {entry.number} index {entry.index} exceeds object stream {entry.container}"
            )
        number, start = offsets[entry.index]
        if number != entry.number:
            raise StructuralError(
                f"Object stream {entry.container} holds object {number} where {entry.number} was expected"
            )
        end = offsets[entry.index + 1][1] if entry.index + 1 < len(offsets) else len(data)
        return ObjectRecord(number, 0, parse_object(data[start:end], self))

    def _object_stream(self, container: int) -> tuple[bytes, list[tuple[int, int]]]:
        cached = self._containers.get(container)
        if cached is not None:
            return cached
        record = self.fetch(container)
        dictionary = record.value
        if not record.is_stream or dictionary.get(NameObject("/Type")) != "/ObjStm":
            raise StructuralError(f"Object {container} is not an object stream")
        count = as_int(self.resolve(dictionary.get(NameObject("/N"))), "/N")
        first = as_int(self.resolve(dictionary.get(NameObject("/First"))), "/First")
        decoded = self.decode_stream(record, self.limits.max_xref_stream_size)
        if first < 0 or first > len(decoded):
            raise StructuralError(f"Object stream {container} has an invalid /First")
        numbers = decoded[:first].split()
        if count < 0 or len(numbers) < 2 * count:
            raise StructuralError(f"Object stream {container} header is truncated")
        offsets: list[tuple[int, int]] = []
        try:
            for position in range(count):
                number = int(numbers[2 * position])
                relative = int(numbers[2 * position + 1])
                offsets.append((number, first + relative))
        except ValueError as exc:
            raise StructuralError(f"Object stream {container} header is malformed") from exc
        if any(start > len(decoded) for _, start in offsets):
            raise StructuralError(f"Object stream {container} offsets exceed its data")
        self._containers[container] = (decoded, offsets)
        return decoded, offsets
