"""CLI entry point for fcupdater."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table as RichTable

from fcupdater import DEFAULT_MASTER, DEFAULT_SOURCES_PREFIX, __version__
from fcupdater.config import Settings
from fcupdater.errors import FcupdaterError
from fcupdater.io import write_json
from fcupdater.models import RunSummary
from fcupdater.pipeline import UpdateOptions, run_update, validate_options

app = typer.Typer(
    name="fcupdater",
    help="fcupdater: update the fuel-price master from portal exports.",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)
console = Console()

TOP_N = 20


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"fcupdater v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False, show_time=False)],
        force=True,
    )


def _station_table(title: str, stations: list[dict[str, str]]) -> RichTable:
    tbl = RichTable(title=title, show_lines=False)
    tbl.add_column("지역", style="bold")
    tbl.add_column("상호")
    tbl.add_column("주소")
    for station in stations[:TOP_N]:
        tbl.add_row(station["region"], station["name"], station["address"])
    if len(stations) > TOP_N:
        tbl.add_row("…", f"+{len(stations) - TOP_N} more", "")
    return tbl


def _print_summary(summary: RunSummary) -> None:
    tbl = RichTable(title="Update Summary", show_lines=True)
    tbl.add_column("Item", style="bold")
    tbl.add_column("Value")
    tbl.add_row("Source files", str(len(summary.source_files)))
    tbl.add_row("Master rows", str(summary.master_rows))
    tbl.add_row("Source rows", str(summary.source_rows))
    tbl.add_row("Changed", str(summary.changed))
    tbl.add_row("Added (신규)", str(summary.added))
    tbl.add_row("Removed (폐업)", str(summary.removed))
    tbl.add_row("Change-log rows", str(summary.change_log_rows))
    if summary.conflicts.count:
        tbl.add_row("Duplicate addresses", f"[yellow]{summary.conflicts.count}[/yellow]")
        for sample in summary.conflicts.samples:
            tbl.add_row(
                "  duplicate",
                f"{sample.address} (kept {sample.kept_source}, dropped {sample.dropped_source})",
            )
    else:
        tbl.add_row("Duplicate addresses", "[green]none[/green]")
    tbl.add_row("Save mode", summary.save_mode)
    if summary.backup_path:
        tbl.add_row("Backup", summary.backup_path)
    console.print(tbl)

    if summary.added_stations:
        console.print(_station_table("Added stations", summary.added_stations))
    if summary.removed_stations:
        console.print(_station_table("Removed stations", summary.removed_stations))


# ── Command ──────────────────────────────────────────────────────


@app.command()
def main(
    master: Path = typer.Option(
        Path(DEFAULT_MASTER), "--master",
        help="Master workbook (.xlsx or legacy .xls).",
    ),
    sources_dir: Path = typer.Option(
        Path("."), "--sources-dir",
        help="Directory holding the portal exports.",
    ),
    sources_prefix: str = typer.Option(
        DEFAULT_SOURCES_PREFIX, "--sources-prefix",
        help="Filename prefix of the exports (case-insensitive).",
    ),
    output: Path | None = typer.Option(
        None, "--output", "-o",
        help="Output path (default: <master>_updated_<date>.xlsx).",
    ),
    in_place: bool = typer.Option(
        False, "--in-place",
        help="Overwrite the master after writing a backup copy.",
    ),
    no_change_log: bool = typer.Option(
        False, "--no-change-log",
        help="Do not append rows to the 변경내역 sheet.",
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run",
        help="Compute and report changes without writing any file.",
    ),
    fast_save: bool = typer.Option(
        False, "--fast-save",
        help="Skip post-write integrity verification.",
    ),
    summary_json: Path | None = typer.Option(
        None, "--summary-json",
        help="Also write the run summary as JSON.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log progress of each stage.",
    ),
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Reconcile the master price sheet against the latest source exports."""
    echo = _printer(quiet)
    options = UpdateOptions(
        master=master,
        sources_dir=sources_dir,
        sources_prefix=sources_prefix,
        output=output,
        in_place=in_place,
        change_log=not no_change_log,
        dry_run=dry_run,
        fast_save=fast_save,
    )
    try:
        validate_options(options)
    except FcupdaterError as exc:
        _err(f"{exc.code}: {exc}")
        raise typer.Exit(code=exc.exit_code)

    load_dotenv()
    _configure_logging(verbose)

    if not quiet:
        console.print(Panel(
            f"[bold]fcupdater[/bold] v{__version__}\n"
            f"Master:  {master}\nSources: {sources_dir} ({sources_prefix}*)",
            title="Update Start", border_style="blue",
        ))

    try:
        summary = run_update(options, Settings.from_env())
    except FcupdaterError as exc:
        _err(f"{exc.code}: {exc}")
        raise typer.Exit(code=exc.exit_code)
    except Exception as exc:
        _err(f"Unexpected internal error: {exc}")
        raise typer.Exit(code=1)

    if summary_json is not None:
        path = write_json(summary_json, summary.to_dict())
        echo(f"  Summary JSON -> {path}")

    if not quiet:
        _print_summary(summary)
        if dry_run:
            console.print(Panel(
                f"[yellow]Dry run[/yellow]: would write {summary.output_path}",
                title="Update Complete", border_style="yellow",
            ))
        else:
            console.print(Panel(
                f"[green]Done[/green]: {summary.updated_rows} rows -> {summary.output_path}",
                title="Update Complete", border_style="green",
            ))
