"""Utilities shared by the PDF/raster reader."""

from __future__ import annotations

import logging
from pathlib import Path


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.propagate = False
    return logger


def resolve_path(path: str | Path | None) -> Path:
    if path is None:
        raise ValueError("Path must not be None")
    resolved = Path(path).expanduser().resolve()
    return resolved


def format_file_size(size_bytes: int) -> str:
    """Format a byte count for display, e.g. ``"1.5 KB"``."""

    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024.0:
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} TB"
