# === NAVMAP v1 ===
# {
#   "module": "SafeUnzip.cli",
#   "purpose": "Typer CLI for extracting, inspecting, and sanitising archive entries",
#   "sections": [
#     {"id": "context", "name": "CLI Context", "anchor": "CTX", "kind": "helpers"},
#     {"id": "extract", "name": "extract", "anchor": "EXT", "kind": "command"},
#     {"id": "info", "name": "info", "anchor": "INF", "kind": "command"},
#     {"id": "sanitize", "name": "sanitize", "anchor": "SAN", "kind": "command"}
#   ]
# }
# === /NAVMAP ===

"""Typer CLI for SafeUnzip.

Commands:
- ``extract ARCHIVE [OUTPUT]``: extract an archive concurrently and report failures
- ``info ARCHIVE``: list catalog entries with their sizes and compression
- ``sanitize NAME...``: show how entry names are rewritten

Exit codes: 0 on success, 1 when at least one entry failed, 2 for invalid
arguments, settings, or unreadable archives.

Example:
    $ safeunzip extract upload.zip ./out --workers 8
    $ safeunzip -vv info upload.tar.gz
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .errors import ConfigError
from .io import extract_archive, open_catalog, sanitize
from .logging_utils import setup_logging
from .settings import ExtractionSettings, get_default_settings

_console = Console()

app = typer.Typer(
    name="safeunzip",
    help="SafeUnzip CLI - Extract untrusted archives without path traversal",
    no_args_is_help=True,
)


class CliContext:
    """Per-invocation state shared by the commands."""

    def __init__(self, verbosity: int = 0, log_dir: Optional[Path] = None) -> None:
        self.verbosity = verbosity
        self.console = _console
        level = "WARNING"
        if verbosity == 1:
            level = "INFO"
        elif verbosity >= 2:
            level = "DEBUG"
        self.logger = setup_logging(level=level, log_dir=log_dir)

    def log_debug(self, message: str) -> None:
        """Log debug message if verbosity >= 2."""
        if self.verbosity >= 2:
            self.console.print(f"[dim]DEBUG: {message}[/dim]")


_context: Optional[CliContext] = None


def get_context() -> CliContext:
    """Return the current CLI context, creating a quiet one if needed."""
    global _context
    if _context is None:
        _context = CliContext()
    return _context


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"safeunzip {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    verbosity: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v for INFO, -vv for DEBUG)",
    ),
    log_dir: Optional[Path] = typer.Option(
        None,
        "--log-dir",
        help="Also write JSON log lines to this directory",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """SafeUnzip - concurrent, traversal-safe archive extraction."""
    global _context
    _context = CliContext(verbosity=verbosity, log_dir=log_dir)


def _build_settings(overrides: Dict[str, Any]) -> ExtractionSettings:
    base = get_default_settings().model_dump()
    base.update({key: value for key, value in overrides.items() if value is not None})
    return ExtractionSettings(**base)


@app.command()
def extract(
    archive: Path = typer.Argument(..., help="Archive to extract"),
    output: Path = typer.Argument(Path("."), help="Output directory (default: current directory)"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Worker threads"),
    max_in_flight: Optional[int] = typer.Option(
        None, "--max-in-flight", help="Maximum queued or running entry tasks"
    ),
    no_fsync: bool = typer.Option(False, "--no-fsync", help="Skip fsync of extracted files"),
    json_output: bool = typer.Option(False, "--json", help="Print the report as JSON"),
) -> None:
    """Extract ARCHIVE into OUTPUT, sanitising every entry name."""
    ctx = get_context()
    try:
        settings = _build_settings(
            {
                "max_workers": workers,
                "max_in_flight": max_in_flight,
                "fsync": False if no_fsync else None,
            }
        )
    except (ValidationError, ConfigError) as exc:
        ctx.console.print(f"[red]Invalid settings: {escape(str(exc))}[/red]")
        raise typer.Exit(2)

    ctx.log_debug(f"Settings hash: {settings.config_hash()}")
    started = time.perf_counter()
    try:
        report = extract_archive(archive, output, settings=settings, logger=ctx.logger)
    except ConfigError as exc:
        ctx.console.print(f"[red]✗ {escape(str(exc))}[/red]")
        raise typer.Exit(2)
    elapsed = time.perf_counter() - started

    if json_output:
        typer.echo(json.dumps(report.to_dict(), indent=2, sort_keys=True))
    else:
        metrics = report.metrics
        ctx.console.print(
            f"Extracted {metrics.files_written} files and {metrics.dirs_ensured} directories "
            f"({metrics.bytes_written} bytes) into {escape(str(report.output_root))} "
            f"in {elapsed:.2f} seconds."
        )
        for failure in report.failures:
            label = escape(f"entry #{failure.index} {failure.name!r}: {failure.message}")
            ctx.console.print(f"[red]✗ {label}[/red]", highlight=False)
    if not report.ok:
        raise typer.Exit(1)


@app.command()
def info(
    archive: Path = typer.Argument(..., help="Archive to inspect"),
) -> None:
    """List the entries of ARCHIVE without extracting anything."""
    ctx = get_context()
    try:
        catalog = open_catalog(archive)
    except ConfigError as exc:
        ctx.console.print(f"[red]✗ {escape(str(exc))}[/red]")
        raise typer.Exit(2)

    with catalog:
        table = Table(title=escape(f"{archive.name} ({catalog.format_name or 'unknown'})"))
        table.add_column("#", justify="right")
        table.add_column("Kind")
        table.add_column("Name")
        table.add_column("Compression")
        table.add_column("Size", justify="right")
        table.add_column("Compressed", justify="right")
        table.add_column("Comment")
        for index in range(len(catalog)):
            entry = catalog.entry(index)
            table.add_row(
                str(index),
                entry.kind,
                escape(entry.name),
                escape(entry.compression or "-"),
                "-" if entry.size is None else str(entry.size),
                "-" if entry.compressed_size is None else str(entry.compressed_size),
                escape(entry.comment),
            )
        ctx.console.print(f"file-count: {len(catalog)}")
        ctx.console.print(table)


@app.command("sanitize")
def sanitize_cmd(
    names: List[str] = typer.Argument(..., help="Entry names to sanitise"),
) -> None:
    """Print the sanitised relative path for each NAME."""
    for name in names:
        result = sanitize(name)
        rendered = result.as_posix() if not result.is_empty else "<empty>"
        typer.echo(f"{name!r} -> {rendered}")


