from __future__ import annotations

import re
import struct
import sys
import zlib
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Callable, Mapping, Sequence

import pytest
from pypdf.generic import (
    ArrayObject,
    DictionaryObject,
    FloatObject,
    IndirectObject,
    NameObject,
    NumberObject,
    PdfObject,
)

PROJECT_ROOT = Path(__file__).resolve().parents[1]
PACKAGE_ROOT = PROJECT_ROOT / "packages"
if str(PACKAGE_ROOT) not in sys.path:
    sys.path.insert(0, str(PACKAGE_ROOT))

RASTER_MARKER = b"%PDF-raster-1.0"


def _serialize(value: PdfObject) -> bytes:
    buffer = BytesIO()
    value.write_to_stream(buffer)
    return buffer.getvalue()


def _number(value: float) -> PdfObject:
    if float(value).is_integer():
        return NumberObject(int(value))
    return FloatObject(value)


def _box(values: Sequence[float]) -> ArrayObject:
    return ArrayObject(_number(value) for value in values)


@dataclass
class _Body:
    value: PdfObject
    data: bytes | None = None


@dataclass
class PagesNode:
    ref: IndirectObject
    parent: "PagesNode | None" = None
    kids: list[IndirectObject] = field(default_factory=list)
    attributes: dict[str, PdfObject] = field(default_factory=dict)


class RasterPdfBuilder:
    """Writes small PDF/raster files object by object for the tests."""

    def __init__(self, *, version: str = "1.7", marker: str | None = "header") -> None:
        self.version = version
        self.marker = marker
        self._bodies: dict[int, _Body] = {}
        self._next = 1
        self.catalog = self.reserve()
        self.root = PagesNode(self.reserve())
        self._nodes: list[PagesNode] = [self.root]

    # -- Objects -------------------------------------------------------------

    def reserve(self) -> IndirectObject:
        ref = IndirectObject(self._next, 0, None)
        self._next += 1
        return ref

    def set(self, ref: IndirectObject, value: PdfObject, data: bytes | None = None) -> IndirectObject:
        self._bodies[ref.idnum] = _Body(value, data)
        return ref

    def add(self, value: PdfObject, data: bytes | None = None) -> IndirectObject:
        return self.set(self.reserve(), value, data)

    def value(self, ref: IndirectObject) -> PdfObject:
        return self._bodies[ref.idnum].value

    # -- Raster pages --------------------------------------------------------

    def image(
        self,
        width: int,
        height: int,
        data: bytes,
        *,
        colorspace: str | PdfObject = "/DeviceGray",
        bits: int = 8,
        filters: str | None = None,
    ) -> IndirectObject:
        image = DictionaryObject(
            {
                NameObject("/Type"): NameObject("/XObject"),
                NameObject("/Subtype"): NameObject("/Image"),
                NameObject("/Width"): NumberObject(width),
                NameObject("/Height"): NumberObject(height),
                NameObject("/BitsPerComponent"): NumberObject(bits),
                NameObject("/ColorSpace"): (
                    NameObject(colorspace) if isinstance(colorspace, str) else colorspace
                ),
            }
        )
        if filters is not None:
            image[NameObject("/Filter")] = NameObject(filters)
        if filters == "/CCITTFaxDecode":
            image[NameObject("/DecodeParms")] = DictionaryObject(
                {
                    NameObject("/K"): NumberObject(-1),
                    NameObject("/Columns"): NumberObject(width),
                    NameObject("/Rows"): NumberObject(height),
                }
            )
        return self.add(image, data)

    def pages_node(self, parent: PagesNode | None = None, **attributes: PdfObject) -> PagesNode:
        parent = parent or self.root
        node = PagesNode(self.reserve(), parent, attributes={f"/{k}": v for k, v in attributes.items()})
        parent.kids.append(node.ref)
        self._nodes.append(node)
        return node

    def add_page(
        self,
        *,
        width: int,
        strips: Sequence[tuple[int, bytes]],
        media_box: Sequence[float] | None,
        colorspace: str | PdfObject = "/DeviceGray",
        bits: int = 8,
        filters: str | None = None,
        rotate: int | None = None,
        user_unit: float | None = None,
        parent: PagesNode | None = None,
        resources: bool = True,
    ) -> IndirectObject:
        parent = parent or self.root
        xobjects = DictionaryObject()
        operators = []
        total = sum(height for height, _ in strips)
        top = 0
        for index, (height, data) in enumerate(strips):
            name = NameObject(f"/strip{index}")
            xobjects[name] = self.image(
                width, height, data, colorspace=colorspace, bits=bits, filters=filters
            )
            operators.append(
                f"q {width} 0 0 {height} 0 {total - top - height} cm {name} Do Q"
            )
            top += height
        contents = self.add(DictionaryObject(), "\n".join(operators).encode("ascii"))

        page = DictionaryObject(
            {
                NameObject("/Type"): NameObject("/Page"),
                NameObject("/Parent"): parent.ref,
                NameObject("/Contents"): contents,
            }
        )
        if resources:
            page[NameObject("/Resources")] = DictionaryObject({NameObject("/XObject"): xobjects})
        if media_box is not None:
            page[NameObject("/MediaBox")] = _box(media_box)
        if rotate is not None:
            page[NameObject("/Rotate")] = NumberObject(rotate)
        if user_unit is not None:
            page[NameObject("/UserUnit")] = _number(user_unit)
        ref = self.add(page)
        parent.kids.append(ref)
        return ref

    # -- Serialisation -------------------------------------------------------

    def _finish_tree(self) -> None:
        nodes = {node.ref.idnum: node for node in self._nodes}

        # Tests may wire cycles into /Kids; the count only follows each node once.
        def count(node: PagesNode, seen: frozenset[int]) -> int:
            total = 0
            for kid in node.kids:
                child = nodes.get(kid.idnum)
                if child is None:
                    total += 1
                elif kid.idnum not in seen:
                    total += count(child, seen | {kid.idnum})
            return total

        for node in self._nodes:
            dictionary = DictionaryObject(
                {
                    NameObject("/Type"): NameObject("/Pages"),
                    NameObject("/Kids"): ArrayObject(node.kids),
                    NameObject("/Count"): NumberObject(count(node, frozenset({node.ref.idnum}))),
                }
            )
            if node.parent is not None:
                dictionary[NameObject("/Parent")] = node.parent.ref
            for key, value in node.attributes.items():
                dictionary[NameObject(key)] = value
            self.set(node.ref, dictionary)
        self.set(
            self.catalog,
            DictionaryObject(
                {
                    NameObject("/Type"): NameObject("/Catalog"),
                    NameObject("/Pages"): self.root.ref,
                }
            ),
        )

    def _header(self) -> bytearray:
        out = bytearray(f"%PDF-{self.version}\n".encode("ascii"))
        if self.marker == "header":
            out += RASTER_MARKER + b"\n"
        out += b"%\xe2\xe3\xcf\xd3\n"
        return out

    @staticmethod
    def _object_bytes(number: int, body: _Body) -> bytes:
        if body.data is None:
            return f"{number} 0 obj\n".encode("ascii") + _serialize(body.value) + b"\nendobj\n"
        dictionary = DictionaryObject(body.value)
        dictionary[NameObject("/Length")] = NumberObject(len(body.data))
        return (
            f"{number} 0 obj\n".encode("ascii")
            + _serialize(dictionary)
            + b"\nstream\n"
            + body.data
            + b"\nendstream\nendobj\n"
        )

    def _trailer_tail(self, startxref: int) -> bytes:
        tail = b""
        if self.marker == "tail":
            tail += RASTER_MARKER + b"\n"
        return tail + f"startxref\n{startxref}\n%%EOF\n".encode("ascii")

    def build(self, xref: str = "table") -> bytes:
        """Serialise the document with a ``table``, ``stream`` or ``objstm`` cross-reference."""

        self._finish_tree()
        out = self._header()
        offsets: dict[int, int] = {}
        compressed: dict[int, tuple[int, int]] = {}

        bodies = dict(self._bodies)
        if xref == "objstm":
            container = self.reserve()
            packed = [n for n in sorted(bodies) if bodies[n].data is None]
            header = []
            payload = b""
            for index, number in enumerate(packed):
                header.append(f"{number} {len(payload)}")
                payload += _serialize(bodies.pop(number).value) + b"\n"
                compressed[number] = (container.idnum, index)
            prefix = (" ".join(header) + "\n").encode("ascii")
            bodies[container.idnum] = _Body(
                DictionaryObject(
                    {
                        NameObject("/Type"): NameObject("/ObjStm"),
                        NameObject("/N"): NumberObject(len(packed)),
                        NameObject("/First"): NumberObject(len(prefix)),
                        NameObject("/Filter"): NameObject("/FlateDecode"),
                    }
                ),
                zlib.compress(prefix + payload),
            )

        for number in sorted(bodies):
            offsets[number] = len(out)
            out += self._object_bytes(number, bodies[number])

        if xref == "table":
            size = self._next
            startxref = len(out)
            out += f"xref\n0 {size}\n".encode("ascii")
            for number in range(size):
                if number in offsets:
                    out += f"{offsets[number]:010d} 00000 n\r\n".encode("ascii")
                else:
                    out += b"0000000000 65535 f\r\n"
            trailer = DictionaryObject(
                {NameObject("/Size"): NumberObject(size), NameObject("/Root"): self.catalog}
            )
            out += b"trailer\n" + _serialize(trailer) + b"\n"
            out += self._trailer_tail(startxref)
            return bytes(out)

        xref_ref = self.reserve()
        size = self._next
        startxref = len(out)
        offsets[xref_ref.idnum] = startxref
        rows = b""
        for number in range(size):
            if number in offsets:
                rows += struct.pack(">BIH", 1, offsets[number], 0)
            elif number in compressed:
                rows += struct.pack(">BIH", 2, *compressed[number])
            else:
                rows += struct.pack(">BIH", 0, 0, 65535)
        dictionary = DictionaryObject(
            {
                NameObject("/Type"): NameObject("/XRef"),
                NameObject("/Size"): NumberObject(size),
                NameObject("/W"): ArrayObject([NumberObject(1), NumberObject(4), NumberObject(2)]),
                NameObject("/Root"): self.catalog,
                NameObject("/Filter"): NameObject("/FlateDecode"),
            }
        )
        out += self._object_bytes(xref_ref.idnum, _Body(dictionary, zlib.compress(rows)))
        out += self._trailer_tail(startxref)
        return bytes(out)

    def incremental(self, base: bytes, changes: Mapping[IndirectObject, PdfObject]) -> bytes:
        """Append an update section redefining ``changes`` with a ``/Prev`` link."""

        previous = int(re.findall(rb"startxref\s+(\d+)", base)[-1])
        out = bytearray(base)
        offsets = {}
        for ref, value in changes.items():
            offsets[ref.idnum] = len(out)
            out += self._object_bytes(ref.idnum, _Body(value))
        startxref = len(out)
        out += b"xref\n"
        for number in sorted(offsets):
            out += f"{number} 1\n{offsets[number]:010d} 00000 n\r\n".encode("ascii")
        trailer = DictionaryObject(
            {
                NameObject("/Size"): NumberObject(self._next),
                NameObject("/Root"): self.catalog,
                NameObject("/Prev"): NumberObject(previous),
            }
        )
        out += b"trailer\n" + _serialize(trailer) + b"\n"
        out += self._trailer_tail(startxref)
        return bytes(out)


# -- Reference documents -----------------------------------------------------


def _gray_page(builder: RasterPdfBuilder, width: int, height: int, dpi: float, **kwargs) -> IndirectObject:
    box = (0, 0, width * 72 / dpi, height * 72 / dpi)
    return builder.add_page(
        width=width, strips=[(height, bytes(width * height))], media_box=box, **kwargs
    )


def build_three_page(builder: RasterPdfBuilder) -> RasterPdfBuilder:
    for _ in range(3):
        _gray_page(builder, 8, 11, 2)
    return builder


def build_reference(builder: RasterPdfBuilder) -> RasterPdfBuilder:
    """Six pages covering every pixel format family, rotation and compression."""

    # 0: GRAY8 8x11 at 2 dpi
    builder.add_page(width=8, strips=[(11, bytes(range(88)))], media_box=(0, 0, 288, 396))
    # 1: GRAY16 64x512 at 16 x 128 dpi, two strips
    builder.add_page(
        width=64,
        strips=[(256, b"\x12\x34" * 64 * 256), (256, b"\x56\x78" * 64 * 256)],
        media_box=(0, 0, 288, 288),
        bits=16,
    )
    # 2: BITONAL 850x1100 at 100 dpi, CCITT
    builder.add_page(
        width=850,
        strips=[(1100, b"\x26\xa0\x1b" * 40)],
        media_box=(0, 0, 612, 792),
        bits=1,
        filters="/CCITTFaxDecode",
    )
    # 3: BITONAL 2521x3279 at 300 dpi, four strips
    builder.add_page(
        width=2521,
        strips=[(1000, b"\x26\xa0" * 90), (1000, b"\x26\xa1" * 95), (1000, b"\x26\xa2" * 80), (279, b"\x26\xa3" * 30)],
        media_box=(0, 0, 605.04, 786.96),
        bits=1,
        filters="/CCITTFaxDecode",
    )
    # 4: RGB24 175x100 at 50 dpi, rotated 90, JPEG
    builder.add_page(
        width=175,
        strips=[(100, b"\xff\xd8\xff\xe0" + bytes(300) + b"\xff\xd9")],
        media_box=(0, 0, 252, 144),
        colorspace="/DeviceRGB",
        filters="/DCTDecode",
        rotate=90,
    )
    # 5: RGB24 850x1100 at 100 dpi, rotated 180, four Flate strips
    builder.add_page(
        width=850,
        strips=[(275, zlib.compress(bytes([shade]) * 850 * 3 * 275)) for shade in (0, 64, 128, 255)],
        media_box=(0, 0, 612, 792),
        colorspace="/DeviceRGB",
        filters="/FlateDecode",
        rotate=180,
    )
    return builder


# -- Fixtures ----------------------------------------------------------------


@pytest.fixture()
def builder() -> RasterPdfBuilder:
    return RasterPdfBuilder()


@pytest.fixture()
def write_pdf(tmp_path: Path) -> Callable[[str, bytes], Path]:
    def _write(filename: str, data: bytes) -> Path:
        path = tmp_path / filename
        path.write_bytes(data)
        return path

    return _write


@pytest.fixture()
def reference_bytes() -> bytes:
    return build_reference(RasterPdfBuilder()).build("table")


@pytest.fixture()
def reference_pdf(write_pdf: Callable[[str, bytes], Path], reference_bytes: bytes) -> Path:
    return write_pdf("reference.pdf", reference_bytes)


@pytest.fixture()
def three_page_pdf(write_pdf: Callable[[str, bytes], Path]) -> Path:
    return write_pdf("three.pdf", build_three_page(RasterPdfBuilder()).build("table"))


@pytest.fixture()
def bad_trailer_pdf(write_pdf: Callable[[str, bytes], Path]) -> Path:
    data = build_three_page(RasterPdfBuilder()).build("table")
    return write_pdf("bad_trailer.pdf", data.replace(b"trailer", b"trai1er"))


@pytest.fixture()
def bad_xref_pdf(write_pdf: Callable[[str, bytes], Path]) -> Path:
    data = build_three_page(RasterPdfBuilder()).build("table")
    return write_pdf("bad_xref.pdf", data.replace(b" 00000 n\r\n", b" 0000x n\r\n", 1))


class MemorySource:
    """In-memory byte source that records how often each token is closed."""

    def __init__(self, payloads: Mapping[str, bytes] | None = None) -> None:
        self.payloads = dict(payloads or {})
        self.closed: list[str] = []
        self.reads = 0

    def read(self, source: str, offset: int, length: int) -> bytes:
        self.reads += 1
        return self.payloads[source][offset : offset + length]

    def close(self, source: str) -> None:
        self.closed.append(source)


@pytest.fixture()
def memory_source(reference_bytes: bytes) -> MemorySource:
    return MemorySource({"reference": reference_bytes})


@pytest.fixture()
def make_builder() -> type[RasterPdfBuilder]:
    return RasterPdfBuilder


@pytest.fixture()
def reference_builder() -> RasterPdfBuilder:
    return build_reference(RasterPdfBuilder())


@pytest.fixture()
def three_page_builder() -> RasterPdfBuilder:
    return build_three_page(RasterPdfBuilder())


@pytest.fixture()
def make_memory_source() -> type[MemorySource]:
    return MemorySource


@pytest.fixture()
def reader_for() -> Callable[[bytes], object]:
    from pdfraster.core.source import SourceReader

    def _make(data: bytes) -> SourceReader:
        return SourceReader(MemorySource({"doc": data}), "doc")

    return _make
