"""Reader configuration: API levels and bounded search windows."""

from __future__ import annotations

from dataclasses import dataclass

API_LEVEL = 1
MIN_API_LEVEL = 1


@dataclass(frozen=True)
class ReaderLimits:
    """Ceilings applied to every scan so that truncated or hostile input fails fast.

    Attributes:
        signature_window: Bytes inspected at each end of the source for the header
            and the raster profile marker.
        tail_window: Bytes searched backwards from EOF for ``startxref``.
        object_window: Initial window read when parsing an indirect object.
        max_object_size: Largest window an indirect object body may need.
        max_xref_entries: Total cross-reference entries accepted across all sections.
        max_xref_stream_size: Largest encoded cross-reference or object stream.
        max_xref_sections: Longest ``/Prev`` chain followed.
        max_tree_depth: Deepest page tree accepted.
        max_strips_per_page: Most ``/stripN`` XObjects accepted on one page.
    """

    signature_window: int = 1024
    tail_window: int = 1024
    object_window: int = 1024
    max_object_size: int = 1 << 20
    max_xref_entries: int = 1_000_000
    max_xref_stream_size: int = 16 << 20
    max_xref_sections: int = 64
    max_tree_depth: int = 64
    max_strips_per_page: int = 65536

    def __post_init__(self) -> None:
        for name in (
            "signature_window",
            "tail_window",
            "object_window",
            "max_object_size",
            "max_xref_entries",
            "max_xref_stream_size",
            "max_xref_sections",
            "max_tree_depth",
            "max_strips_per_page",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.object_window > self.max_object_size:
            raise ValueError("object_window must not exceed max_object_size")


DEFAULT_LIMITS = ReaderLimits()


def is_supported_api_level(api_level: int) -> bool:
    return MIN_API_LEVEL <= api_level <= API_LEVEL


__all__ = ["API_LEVEL", "MIN_API_LEVEL", "ReaderLimits", "DEFAULT_LIMITS", "is_supported_api_level"]
