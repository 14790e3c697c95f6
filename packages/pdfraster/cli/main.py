"""
Command-line interface for the PDF/raster reader.
"""

import logging
import os
import sys

import click
from rich.console import Console
from rich.table import Table

from pdfraster.core.exceptions import PdfRasterError
from pdfraster.core.signature import recognize_path
from pdfraster.core.utils import format_file_size, get_logger
from pdfraster.reader import open_path

LOGGER = get_logger("pdfraster.cli")

console = Console()

_LOGGER_NAMES = ("pdfraster.reader", "pdfraster.xref", "pdfraster.pages", "pdfraster.cli")


@click.group()
@click.version_option(version="1.0.0")
@click.option("--verbose", "-v", is_flag=True, help="Log parser diagnostics to stderr")
def cli(verbose):
    """
    PDF/raster reader - inspect raster pages and extract raw strips.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    for name in _LOGGER_NAMES:
        get_logger(name).setLevel(level)


@cli.command(name="recognize")
@click.argument("files", nargs=-1, required=True, type=click.Path())
def recognize_files(files):
    """
    Report whether each file looks like a PDF/raster file.

    Example:

        pdfraster recognize scan1.pdf scan2.pdf
    """
    rejected = 0
    for path in files:
        if recognize_path(path):
            console.print(f"[green]✓[/green] {path}: PDF/raster", soft_wrap=True)
        else:
            rejected += 1
            console.print(f"[red]✗[/red] {path}: not PDF/raster", soft_wrap=True)
    if rejected:
        sys.exit(1)


@cli.command(name="info")
@click.argument("input_pdf", type=click.Path(exists=True, dir_okay=False))
def show_info(input_pdf):
    """
    Display the raster attributes of every page.

    Example:

        pdfraster info scan.pdf
    """
    reader = open_path(input_pdf)
    if reader is None:
        console.print(
            f"[bold red]✗ Error:[/bold red] {input_pdf} is not a readable PDF/raster file",
            soft_wrap=True,
        )
        sys.exit(1)

    with reader:
        document = reader.document
        console.print()
        console.print(f"[bold]File:[/bold] {os.path.abspath(input_pdf)}", soft_wrap=True)
        console.print(f"[bold]Size:[/bold] {format_file_size(document.size)}")
        console.print(
            f"[bold]Version:[/bold] PDF-{document.version}, "
            f"raster {document.raster_version[0]}.{document.raster_version[1]}"
        )
        console.print(f"[bold]Pages:[/bold] {document.page_count}")

        table = Table(title=f"Pages: {os.path.basename(input_pdf)}")
        table.add_column("Page", style="cyan", no_wrap=True)
        table.add_column("Format", style="green")
        table.add_column("Size (px)")
        table.add_column("Rotation")
        table.add_column("DPI")
        table.add_column("Compression")
        table.add_column("Strips")
        table.add_column("Max strip")

        for page in document.pages:
            table.add_row(
                str(page.index),
                page.format.value,
                f"{page.width}x{page.height}",
                str(page.rotation),
                f"{page.horizontal_dpi:g}x{page.vertical_dpi:g}",
                page.compression.value,
                str(page.strip_count),
                format_file_size(page.max_strip_size),
            )

        console.print(table)
        console.print()


@cli.command(name="strip")
@click.argument("input_pdf", type=click.Path(exists=True, dir_okay=False))
@click.option("--page", "-p", "page_index", default=0, type=int, help="Page index (0-based)")
@click.option("--strip", "-s", "strip_index", default=0, type=int, help="Strip index (0-based)")
@click.option(
    "--output", "-o",
    required=True,
    type=click.Path(dir_okay=False, writable=True),
    help="File that receives the raw strip bytes",
)
def extract_strip(input_pdf, page_index, strip_index, output):
    """
    Write the raw (still encoded) bytes of one strip to a file.

    Example:

        pdfraster strip scan.pdf --page 0 --strip 2 -o strip.bin
    """
    reader = open_path(input_pdf)
    if reader is None:
        console.print(
            f"[bold red]✗ Error:[/bold red] {input_pdf} is not a readable PDF/raster file",
            soft_wrap=True,
        )
        sys.exit(1)

    with reader:
        try:
            data = reader.raw_strip(page_index, strip_index)
            compression = reader.page_compression(page_index)
        except PdfRasterError as e:
            LOGGER.debug("Strip extraction failed: %s", e)
            console.print(f"[bold red]✗ Error:[/bold red] {e}")
            sys.exit(1)

    with open(output, "wb") as handle:
        handle.write(data)
    console.print(
        f"[bold green]✓ Wrote {len(data)} bytes[/bold green] "
        f"({compression.value}) to {os.path.abspath(output)}",
        soft_wrap=True,
    )


if __name__ == "__main__":  # pragma: no cover
    cli()
