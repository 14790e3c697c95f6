"""Trailer and cross-reference resolution.

Builds the object-number to byte-offset map for a source by following the
``startxref`` pointer and any ``/Prev`` chain behind it.  Both the classic
``xref`` table and cross-reference streams are understood.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from pypdf.generic import ArrayObject, DictionaryObject, IndirectObject, NameObject

from .config import DEFAULT_LIMITS, ReaderLimits
from .exceptions import StructuralError
from .model import XRefEntry
from .objects import ObjectStore, as_int, skip_whitespace
from .source import SourceReader
from .utils import get_logger

LOGGER = get_logger("pdfraster.xref")

__all__ = ["XRefResolution", "XRefResolver", "resolve_xref"]

_STARTXREF = re.compile(rb"startxref[\x00\t\n\r\f ]+(\d+)")
_SUBSECTION = re.compile(rb"(\d+)[ \t]+(\d+)[ \t]*(?:\r\n|\r|\n)")
_TABLE_ENTRY = re.compile(rb"(\d{10}) (\d{5}) ([nf])(?: \r| \n|\r\n)")
_ENTRY_SIZE = 20
_HEADER_PEEK = 64


@dataclass(slots=True)
class XRefResolution:
    """Outcome of resolving the cross-reference chain of a source."""

    kind: str
    startxref: int
    entries: dict[int, XRefEntry]
    trailer: DictionaryObject
    root_ref: tuple[int, int]
    sections: int


def _decode_be_integer(buffer: bytes) -> int:
    value = 0
    for byte in buffer:
        value = (value << 8) | byte
    return value


class XRefResolver:
    """Resolve the trailer and cross-reference data of one source."""

    def __init__(self, reader: SourceReader, limits: ReaderLimits = DEFAULT_LIMITS) -> None:
        self.reader = reader
        self.limits = limits
        # Sections are parsed before any map exists, so the store starts empty.
        self.store = ObjectStore(reader, {}, limits)
        self._entry_budget = limits.max_xref_entries

    # -- Entry point ---------------------------------------------------------

    def resolve(self) -> XRefResolution:
        startxref = self.locate_startxref()
        entries: dict[int, XRefEntry] = {}
        trailers: list[DictionaryObject] = []
        visited: set[int] = set()
        kind: str | None = None
        offset: int | None = startxref

        while offset is not None:
            if offset in visited:
                LOGGER.debug("Cross-reference chain loops back to offset %s", offset)
                break
            if len(visited) >= self.limits.max_xref_sections:
                raise StructuralError(
                    f"Cross-reference chain exceeds {self.limits.max_xref_sections} sections"
                )
            visited.add(offset)
            section_kind, section_entries, trailer = self._parse_section(offset)
            if kind is None:
                kind = section_kind
            section = dict(section_entries)
            trailers.append(trailer)

            hybrid = trailer.get(NameObject("/XRefStm"))
            if section_kind == "table" and hybrid is not None:
                hybrid_offset = self._checked_offset(hybrid, "/XRefStm")
                if hybrid_offset not in visited:
                    visited.add(hybrid_offset)
                    _, stream_entries, _ = self._parse_section(hybrid_offset)
                    for number, entry in stream_entries.items():
                        # Hybrid tables list objects held in object streams as free.
                        current = section.get(number)
                        if current is None or not current.in_use:
                            section[number] = entry

            for number, entry in section.items():
                # Sections are visited newest first; the first entry seen wins.
                entries.setdefault(number, entry)

            previous = trailer.get(NameObject("/Prev"))
            offset = self._checked_offset(previous, "/Prev") if previous is not None else None

        assert kind is not None
        trailer = trailers[0]
        if NameObject("/Encrypt") in trailer:
            raise StructuralError("Encrypted documents are not supported")
        root_ref = self._root_reference(trailer, entries)
        LOGGER.debug(
            "Resolved %s cross-reference with %s entries across %s section(s)",
            kind,
            len(entries),
            len(trailers),
        )
        return XRefResolution(
            kind=kind,
            startxref=startxref,
            entries=entries,
            trailer=trailer,
            root_ref=root_ref,
            sections=len(trailers),
        )

    def locate_startxref(self) -> int:
        """Find the ``startxref`` offset within the tail window."""

        tail_start, tail = self.reader.tail(self.limits.tail_window)
        index = tail.rfind(b"startxref")
        if index == -1:
            raise StructuralError(
                f"startxref keyword not found in the last {self.limits.tail_window} bytes"
            )
        match = _STARTXREF.match(tail, index)
        if match is None:
            raise StructuralError(f"startxref at offset {tail_start + index} has no offset")
        return self._checked_offset(int(match.group(1)), "startxref")

    # -- Section parsing -----------------------------------------------------

    def _parse_section(self, offset: int) -> tuple[str, dict[int, XRefEntry], DictionaryObject]:
        peek = self.reader.read(offset, _HEADER_PEEK)
        start = skip_whitespace(peek, 0)
        if peek.startswith(b"xref", start):
            entries, trailer = self._parse_table_section(offset + start)
            return "table", entries, trailer
        entries, trailer = self._parse_stream_section(offset)
        return "stream", entries, trailer

    def _parse_table_section(self, offset: int) -> tuple[dict[int, XRefEntry], DictionaryObject]:
        entries: dict[int, XRefEntry] = {}
        size = self.reader.size
        position = offset + len(b"xref")

        while True:
            chunk = self.reader.read(position, _HEADER_PEEK)
            index = skip_whitespace(chunk, 0)
            if chunk.startswith(b"trailer", index):
                position += index + len(b"trailer")
                break
            match = _SUBSECTION.match(chunk, index)
            if match is None:
                raise StructuralError(
                    f"Malformed cross-reference subsection header at offset {position + index}"
                )
            first, count = int(match.group(1)), int(match.group(2))
            position += match.end()
            self._spend(count)
            span = count * _ENTRY_SIZE
            if position + span > size:
                raise StructuralError(f"Cross-reference subsection at offset {position} is truncated")
            raw = self.reader.read_exact(position, span)
            for i in range(count):
                record = raw[i * _ENTRY_SIZE : (i + 1) * _ENTRY_SIZE]
                entry_match = _TABLE_ENTRY.fullmatch(record)
                if entry_match is None:
                    raise StructuralError(
                        f"Malformed cross-reference entry at offset {position + i * _ENTRY_SIZE}"
                    )
                number = first + i
                entry_offset = int(entry_match.group(1))
                generation = int(entry_match.group(2))
                if entry_match.group(3) == b"f":
                    entries[number] = XRefEntry(number, generation, entry_offset, in_use=False)
                    continue
                if entry_offset >= size:
                    raise StructuralError(
                        f"Object {number} offset {entry_offset} lies outside the source"
                    )
                entries[number] = XRefEntry(number, generation, entry_offset)
            position += span

        trailer = self.store.parse_dictionary_at(position)
        return entries, trailer

    def _parse_stream_section(self, offset: int) -> tuple[dict[int, XRefEntry], DictionaryObject]:
        record = self.store.parse_at(offset)
        dictionary = record.value
        if not record.is_stream or dictionary.get(NameObject("/Type")) != "/XRef":
            raise StructuralError(f"No cross-reference table or stream at offset {offset}")

        widths_obj = dictionary.get(NameObject("/W"))
        if not isinstance(widths_obj, ArrayObject) or len(widths_obj) != 3:
            raise StructuralError("Cross-reference stream /W must hold three widths")
        widths = [as_int(width, "/W entry") for width in widths_obj]
        if any(width < 0 or width > 8 for width in widths) or sum(widths) == 0:
            raise StructuralError(f"Cross-reference stream /W {widths} is invalid")
        entry_width = sum(widths)

        size = as_int(dictionary.get(NameObject("/Size")), "/Size")
        index_obj = dictionary.get(NameObject("/Index"))
        if index_obj is None:
            subsections = [(0, size)]
        elif isinstance(index_obj, ArrayObject) and len(index_obj) % 2 == 0:
            subsections = [
                (as_int(index_obj[i], "/Index"), as_int(index_obj[i + 1], "/Index"))
                for i in range(0, len(index_obj), 2)
            ]
        else:
            raise StructuralError("Cross-reference stream /Index is malformed")

        decoded = self.store.decode_stream(record, self.limits.max_xref_stream_size)
        source_size = self.reader.size
        entries: dict[int, XRefEntry] = {}
        position = 0
        for first, count in subsections:
            self._spend(count)
            if position + count * entry_width > len(decoded):
                raise StructuralError("Cross-reference stream data is shorter than its /Index")
            for i in range(count):
                fields = []
                cursor = position
                for width in widths:
                    fields.append(_decode_be_integer(decoded[cursor : cursor + width]))
                    cursor += width
                position = cursor
                entry_type = fields[0] if widths[0] else 1
                number = first + i
                if entry_type == 0:
                    entries[number] = XRefEntry(number, fields[2], 0, in_use=False)
                elif entry_type == 1:
                    if fields[1] >= source_size:
                        raise StructuralError(
                            f"Object {number} offset {fields[1]} lies outside the source"
                        )
                    entries[number] = XRefEntry(number, fields[2], fields[1])
                elif entry_type == 2:
                    entries[number] = XRefEntry(
                        number, 0, 0, container=fields[1], index=fields[2]
                    )
        return entries, dictionary

    # -- Helpers -------------------------------------------------------------

    def _spend(self, count: int) -> None:
        self._entry_budget -= count
        if self._entry_budget < 0:
            raise StructuralError(
                f"Cross-reference data exceeds {self.limits.max_xref_entries} entries"
            )

    def _checked_offset(self, value: object, what: str) -> int:
        offset = as_int(value, what)
        if offset < 0 or offset >= self.reader.size:
            raise StructuralError(f"{what} offset {offset} lies outside the source")
        return offset

    @staticmethod
    def _root_reference(trailer: DictionaryObject, entries: dict[int, XRefEntry]) -> tuple[int, int]:
        root = trailer.get(NameObject("/Root"))
        if not isinstance(root, IndirectObject):
            raise StructuralError("Trailer has no indirect /Root reference")
        entry = entries.get(root.idnum)
        if entry is None or not entry.in_use:
            raise StructuralError(f"/Root object {root.idnum} is not in the cross-reference table")
        return root.idnum, root.generation


def resolve_xref(reader: SourceReader, limits: ReaderLimits = DEFAULT_LIMITS) -> XRefResolution:
    """Resolve the trailer and cross-reference chain of ``reader``."""

    return XRefResolver(reader, limits).resolve()
