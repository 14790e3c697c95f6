"""Command line entry points for the PDF/raster reader."""

from .main import cli

__all__ = ["cli"]
