"""
Root Typer application for the resguard CLI.

Commands wrap the library guards so they can be used from shell scripts
and CI jobs: vet an upload before it reaches a service, print the review
checklist, or check a quota computation by hand.
"""

from __future__ import annotations

import json
import shutil
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from resguard import __version__
from resguard.core.errors import GuardError
from resguard.core.logging import configure_logging
from resguard.core.settings import get_settings

app = typer.Typer(
    name="resguard",
    help="resguard: guards against disproportionate resource consumption.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()
err_console = Console(stderr=True)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"resguard {__version__}")
        raise typer.Exit()


def _fail(error: GuardError) -> None:
    err_console.print(f"[bold red]Rejected[/bold red] ({error.category.value}): {error.message}")
    raise typer.Exit(code=1)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override RESGUARD_LOG_LEVEL."),
) -> None:
    """resguard CLI: vet untrusted files and inspect resource limits."""
    settings = get_settings()
    configure_logging(
        level=log_level or settings.log_level,
        json_format=settings.log_json,
        max_events_per_second=settings.max_log_events_per_second,
        stream=sys.stderr,
    )


@app.command("checklist")
def checklist(
    fmt: str = typer.Option("table", "--format", "-f", help="table, markdown or json"),
) -> None:
    """Print the disproportionate-resource-consumption checklist."""
    from resguard.core.checklist import CHECKLIST, render_json, render_markdown

    if fmt == "markdown":
        typer.echo(render_markdown())
    elif fmt == "json":
        typer.echo(render_json())
    elif fmt == "table":
        table = Table(title="Resource consumption checklist")
        table.add_column("Threat")
        table.add_column("Guidance")
        table.add_column("Guard", style="cyan")
        for item in CHECKLIST:
            table.add_row(item.title, item.guidance, item.guard or "-")
        console.print(table)
    else:
        err_console.print(f"[red]Unknown format {fmt!r}[/red]")
        raise typer.Exit(code=2)


@app.command("admit")
def admit(
    current: int = typer.Argument(..., help="Running total."),
    maximum: int = typer.Argument(..., help="Ceiling for the total."),
    extra: int = typer.Argument(..., help="Proposed increment."),
) -> None:
    """Run the overflow-safe admission check and print the new total."""
    from resguard.core.limits import check_admission

    try:
        total = check_admission(current, maximum, extra, operation="cli")
    except GuardError as exc:
        _fail(exc)
    typer.echo(str(total))


@app.command("inspect-archive")
def inspect_archive(
    path: Path = typer.Argument(..., exists=True, dir_okay=False),
    max_total: int | None = typer.Option(None, "--max-total", help="Cap on declared uncompressed bytes."),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Validate a zip archive's central directory without extracting it."""
    from resguard.parsing.archives import inspect_zip

    try:
        report = inspect_zip(path, max_total_bytes=max_total)
    except GuardError as exc:
        _fail(exc)

    if json_out:
        console.print_json(json.dumps(report.to_dict()))
        return
    table = Table(title=str(path))
    table.add_column("Member")
    table.add_column("Compressed", justify="right")
    table.add_column("Size", justify="right")
    for entry in report.entries:
        table.add_row(entry.name, str(entry.compressed_size), str(entry.file_size))
    console.print(table)
    console.print(f"{report.entry_count} members, {report.total_uncompressed} bytes declared")


@app.command("inspect-image")
def inspect_image(
    path: Path = typer.Argument(..., exists=True, dir_okay=False),
    max_pixels: int | None = typer.Option(None, "--max-pixels"),
) -> None:
    """Check an image's declared dimensions without decoding it."""
    from resguard.parsing.images import inspect_image as _inspect

    try:
        info = _inspect(path, max_pixels=max_pixels)
    except GuardError as exc:
        _fail(exc)
    typer.echo(f"{info.format} {info.width}x{info.height} {info.mode}")


@app.command("decompress")
def decompress(
    path: Path = typer.Argument(..., exists=True, dir_okay=False),
    out: Path = typer.Option(..., "--out", "-o"),
    codec: str | None = typer.Option(None, "--codec", help="gzip, bz2, xz, zlib or deflate (default: sniff)."),
    max_output: int | None = typer.Option(None, "--max-output"),
) -> None:
    """Decompress a file with output and ratio caps."""
    from resguard.execution.scoped import ResourceScope, flushing
    from resguard.parsing.decompress import iter_decompress, sniff_codec

    try:
        with ResourceScope("decompress") as scope:
            src = scope.enter(open(path, "rb"), label="source")
            codec = codec or sniff_codec(src.read(6))
            if codec is None:
                err_console.print("[red]Could not detect codec; pass --codec[/red]")
                raise typer.Exit(code=2)
            src.seek(0)
            dst = scope.enter(flushing(open(out, "wb"), label="output"), label="output")
            for chunk in iter_decompress(src, codec, max_output=max_output):
                dst.write(chunk)
    except GuardError as exc:
        out.unlink(missing_ok=True)
        _fail(exc)
    typer.echo(f"wrote {out}")


@app.command("compress")
def compress(
    path: Path = typer.Argument(..., exists=True, dir_okay=False),
    out: Path = typer.Option(..., "--out", "-o"),
    codec: str = typer.Option("gzip", "--codec", help="gzip, bz2 or xz."),
) -> None:
    """Compress a file; the compressor is closed before the output file."""
    from resguard.execution.scoped import open_compressed_writer

    try:
        with open(path, "rb") as src, open_compressed_writer(out, codec=codec) as dst:
            shutil.copyfileobj(src, dst)
    except GuardError as exc:
        _fail(exc)
    typer.echo(f"wrote {out}")


if __name__ == "__main__":
    app()
