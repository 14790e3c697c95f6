"""Page tree traversal and per-page raster attribute extraction."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pypdf.generic import ArrayObject, DictionaryObject, IndirectObject, NameObject

from .config import DEFAULT_LIMITS, ReaderLimits
from .exceptions import PageFormatError, StructuralError
from .model import PageRecord
from .objects import ObjectStore
from .strips import locate_strips
from .utils import get_logger

LOGGER = get_logger("pdfraster.pages")

__all__ = ["PageTreeWalker", "walk_pages"]

_INHERITABLE = ("/Resources", "/MediaBox", "/Rotate", "/UserUnit")
_POINTS_PER_INCH = 72.0
# Media boxes carry a handful of decimals; resolution is reported to match.
_DPI_DIGITS = 6


@dataclass(slots=True)
class _Leaf:
    object_number: int
    inherited: dict[str, Any] = field(default_factory=dict)


class PageTreeWalker:
    """Flatten a catalog's page tree into validated :class:`PageRecord` objects."""

    def __init__(self, store: ObjectStore, limits: ReaderLimits = DEFAULT_LIMITS) -> None:
        self.store = store
        self.limits = limits

    def walk(self, root_ref: tuple[int, int]) -> tuple[PageRecord, ...]:
        catalog = self.store.fetch(root_ref[0]).value
        if not isinstance(catalog, DictionaryObject):
            raise StructuralError(f"Catalog object {root_ref[0]} is not a dictionary")
        pages_ref = catalog.get(NameObject("/Pages"))
        if not isinstance(pages_ref, IndirectObject):
            raise StructuralError("Catalog has no indirect /Pages reference")

        leaves = self.collect_leaves(pages_ref)
        declared = self.store.resolve(self.store.resolve(pages_ref).get(NameObject("/Count")))
        if declared != len(leaves):
            LOGGER.warning(
                "Page tree declares /Count %s but holds %s page(s)", declared, len(leaves)
            )
        return tuple(self._build_page(index, leaf) for index, leaf in enumerate(leaves))

    # -- Traversal -----------------------------------------------------------

    def collect_leaves(self, root: IndirectObject) -> list[_Leaf]:
        """Depth-first, left-to-right list of the leaf pages under ``root``."""

        leaves: list[_Leaf] = []
        visited: set[int] = set()

        def visit(reference: Any, inherited: dict[str, Any], depth: int) -> None:
            if depth > self.limits.max_tree_depth:
                raise StructuralError(
                    f"Page tree is deeper than {self.limits.max_tree_depth} levels"
                )
            if not isinstance(reference, IndirectObject):
                raise StructuralError("Page tree node is not an indirect reference")
            if reference.idnum in visited:
                raise StructuralError(f"Page tree revisits object {reference.idnum}")
            visited.add(reference.idnum)

            node = self.store.resolve(reference)
            if not isinstance(node, DictionaryObject):
                raise StructuralError(f"Page tree node {reference.idnum} is not a dictionary")
            merged = dict(inherited)
            for key in _INHERITABLE:
                if key in node:
                    merged[key] = node.raw_get(key)

            node_type = node.get(NameObject("/Type"))
            if node_type == "/Pages" or (node_type is None and "/Kids" in node):
                kids = self.store.resolve(node.get(NameObject("/Kids")))
                if not isinstance(kids, ArrayObject):
                    raise StructuralError(f"Pages node {reference.idnum} has no /Kids array")
                for kid in kids:
                    visit(kid, merged, depth + 1)
            elif node_type == "/Page" or node_type is None:
                leaves.append(_Leaf(reference.idnum, merged))
            else:
                raise StructuralError(
                    f"Page tree node {reference.idnum} has unexpected type {node_type}"
                )

        visit(root, {}, 0)
        return leaves

    # -- Page construction ---------------------------------------------------

    def _build_page(self, index: int, leaf: _Leaf) -> PageRecord:
        resources = self.store.resolve(leaf.inherited.get("/Resources"))
        if not isinstance(resources, DictionaryObject):
            raise PageFormatError(f"Page {index} has no /Resources dictionary")
        xobjects = self.store.resolve(resources.get(NameObject("/XObject")))
        if not isinstance(xobjects, DictionaryObject):
            raise PageFormatError(f"Page {index} has no /XObject resources")

        strips = locate_strips(self.store, xobjects, page_index=index, limits=self.limits)
        first = strips[0]
        for strip in strips[1:]:
            if (strip.width, strip.format, strip.compression) != (
                first.width,
                first.format,
                first.compression,
            ):
                raise PageFormatError(
                    f"Page {index} strip {strip.descriptor.index} does not match strip 0"
                )
        width = first.width
        height = sum(strip.descriptor.height for strip in strips)

        media_box = self._media_box(leaf.inherited.get("/MediaBox"), index)
        user_unit = self._user_unit(leaf.inherited.get("/UserUnit"), index)
        box_width = (media_box[2] - media_box[0]) * user_unit
        box_height = (media_box[3] - media_box[1]) * user_unit
        horizontal_dpi = round(width * _POINTS_PER_INCH / box_width, _DPI_DIGITS)
        vertical_dpi = round(height * _POINTS_PER_INCH / box_height, _DPI_DIGITS)
        if horizontal_dpi <= 0 or vertical_dpi <= 0:
            raise PageFormatError(f"Page {index} has a non-positive resolution")

        return PageRecord(
            index=index,
            object_number=leaf.object_number,
            format=first.format,
            compression=first.compression,
            width=width,
            height=height,
            rotation=self._rotation(leaf.inherited.get("/Rotate"), index),
            horizontal_dpi=horizontal_dpi,
            vertical_dpi=vertical_dpi,
            media_box=media_box,
            strips=tuple(strip.descriptor for strip in strips),
        )

    def _media_box(self, value: Any, index: int) -> tuple[float, float, float, float]:
        box = self.store.resolve(value)
        if not isinstance(box, ArrayObject) or len(box) != 4:
            raise PageFormatError(f"Page {index} has no valid /MediaBox")
        numbers = [self.store.resolve(item) for item in box]
        if any(isinstance(item, bool) or not isinstance(item, (int, float)) for item in numbers):
            raise PageFormatError(f"Page {index} /MediaBox holds non-numeric values")
        left, bottom, right, top = (float(item) for item in numbers)
        normalized = (min(left, right), min(bottom, top), max(left, right), max(bottom, top))
        if normalized[2] - normalized[0] <= 0 or normalized[3] - normalized[1] <= 0:
            raise PageFormatError(f"Page {index} /MediaBox is degenerate")
        return normalized

    def _user_unit(self, value: Any, index: int) -> float:
        value = self.store.resolve(value)
        if value is None:
            return 1.0
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise PageFormatError(f"Page {index} has an invalid /UserUnit")
        return float(value)

    def _rotation(self, value: Any, index: int) -> int:
        rotate = self.store.resolve(value)
        if rotate is None:
            return 0
        if isinstance(rotate, bool) or not isinstance(rotate, (int, float)):
            raise PageFormatError(f"Page {index} has a non-numeric /Rotate")
        if float(rotate) % 90:
            raise PageFormatError(f"Page {index} /Rotate {rotate} is not a multiple of 90")
        return int(rotate) % 360


def walk_pages(
    store: ObjectStore,
    root_ref: tuple[int, int],
    limits: ReaderLimits = DEFAULT_LIMITS,
) -> tuple[PageRecord, ...]:
    """Walk the page tree under ``root_ref`` and return every page in order."""

    return PageTreeWalker(store, limits).walk(root_ref)
