"""One update run: read, reconcile, record, write."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

from fcupdater import CHANGE_LOG_SHEET, DEFAULT_MASTER, DEFAULT_SOURCES_PREFIX, __version__
from fcupdater.changelog import append_change_log, find_change_log_layout
from fcupdater.config import Settings
from fcupdater.decode import Decoder
from fcupdater.errors import ArgumentConflictError, ContainerNotFoundError, FormatError
from fcupdater.io import ContainerKind, detect_container_kind, open_master_workbook, read_master_table
from fcupdater.master import apply_to_sheet
from fcupdater.models import ChangeRecord, ReconcileResult, RunSummary
from fcupdater.reconcile import reconcile
from fcupdater.sources import build_source_set, discover_source_files
from fcupdater.utils import sha256_file
from fcupdater.writer import (
    SaveMode,
    WriteResult,
    default_output_path,
    make_backup,
    release_reservation,
    resolve_output_path,
    save_workbook,
)

logger = logging.getLogger(__name__)


@dataclass
class UpdateOptions:
    master: Path = Path(DEFAULT_MASTER)
    sources_dir: Path = Path(".")
    sources_prefix: str = DEFAULT_SOURCES_PREFIX
    output: Path | None = None
    in_place: bool = False
    change_log: bool = True
    dry_run: bool = False
    fast_save: bool = False
    run_date: date = field(default_factory=date.today)

    @property
    def save_mode(self) -> SaveMode:
        if self.dry_run:
            return SaveMode.DRY_RUN
        return SaveMode.FAST if self.fast_save else SaveMode.VERIFY


def validate_options(options: UpdateOptions) -> None:
    """Reject mutually exclusive options before anything touches the disk."""
    if options.in_place and options.output is not None:
        raise ArgumentConflictError("--in-place and --output cannot be used together")
    if options.dry_run and options.fast_save:
        raise ArgumentConflictError("--dry-run and --fast-save cannot be used together")


def _resolve_destination(options: UpdateOptions, master: Path, reserve: bool) -> tuple[Path, bool]:
    """Return the save target and whether it was reserved for this run.

    In-place runs overwrite an xlsx master. An xls master cannot be
    overwritten with xlsx content, so its upgraded copy is written beside it
    under a free ``.xlsx`` name; an existing file of that name is kept.
    """
    if options.in_place:
        if detect_container_kind(master) is not ContainerKind.XLS:
            return master, False
        requested = master.with_suffix(".xlsx")
    else:
        requested = options.output or default_output_path(master, options.run_date)
    return resolve_output_path(requested, reserve=reserve), reserve


def _station_list(records: list[ChangeRecord]) -> list[dict[str, str]]:
    return [{"region": r.region, "name": r.name, "address": r.address} for r in records]


def _summarize(
    options: UpdateOptions,
    result: ReconcileResult,
    *,
    source_files: list[Path],
    master_rows: int,
    source_rows: int,
    master_sha256: str,
    write: WriteResult | None,
    destination: Path,
    backup: Path | None,
    log_rows: int,
) -> RunSummary:
    return RunSummary(
        version=__version__,
        master_path=str(options.master),
        master_sha256=master_sha256,
        sources_dir=str(options.sources_dir),
        sources_prefix=options.sources_prefix,
        source_files=[p.name for p in source_files],
        master_rows=master_rows,
        source_rows=source_rows,
        updated_rows=len(result.table.records),
        changed=len(result.changes),
        added=result.added_count,
        removed=result.removed_count,
        conflicts=result.conflicts,
        output_path=str(destination),
        backup_path=str(backup) if backup else "",
        save_mode=options.save_mode.value,
        verified=bool(write and write.verified),
        change_log_rows=log_rows,
        added_stations=_station_list(result.added),
        removed_stations=_station_list(result.removed),
    )


def run_update(options: UpdateOptions, settings: Settings | None = None) -> RunSummary:
    """Run the whole update and return what happened.

    Raises
    ------
    ArgumentConflictError
        Mutually exclusive options were combined.
    FormatError
        The master, a source, or the change-log sheet could not be read.
    IntegrityError
        The written workbook failed verification (never in dry-run).
    IoError
        Backup, reservation or save failed (never in dry-run).
    """
    validate_options(options)
    settings = settings or Settings.from_env()
    decoder = Decoder.from_settings(settings)

    source_files = discover_source_files(options.sources_dir, options.sources_prefix)
    if not source_files:
        raise ContainerNotFoundError(
            "no source files found",
            directory=options.sources_dir,
            prefix=options.sources_prefix,
        )
    logger.info("Found %d source files", len(source_files))

    master_path = Path(options.master)
    wb = open_master_workbook(master_path, decoder)
    ws, master_table = read_master_table(wb, settings)
    master_sha256 = sha256_file(master_path)

    source_set = build_source_set(source_files, settings, decoder)
    result = reconcile(master_table, source_set)

    log_ws = None
    layout = None
    if options.change_log:
        if CHANGE_LOG_SHEET not in wb.sheetnames:
            raise FormatError(f"master has no '{CHANGE_LOG_SHEET}' sheet", path=master_path)
        log_ws = wb[CHANGE_LOG_SHEET]
        layout = find_change_log_layout(log_ws, settings)

    apply_to_sheet(ws, result.table, [r.row for r in master_table.records if r.row is not None])
    log_rows = 0
    if log_ws is not None and layout is not None:
        log_rows = append_change_log(
            log_ws,
            result.log_records,
            layout,
            run_date=options.run_date,
            template_row=settings.changelog_style_template_row,
        )

    mode = options.save_mode
    backup: Path | None = None
    write: WriteResult | None = None
    destination, reserved = _resolve_destination(
        options, master_path, reserve=mode is not SaveMode.DRY_RUN
    )

    if mode is not SaveMode.DRY_RUN:
        try:
            if options.in_place:
                backup = make_backup(master_path, options.run_date)
            write = save_workbook(
                wb, destination, mode, durability_strict=settings.durability_strict
            )
        except BaseException:
            if reserved:
                release_reservation(destination)
            raise

    return _summarize(
        options,
        result,
        source_files=source_files,
        master_rows=len(master_table.records),
        source_rows=len(source_set.records),
        master_sha256=master_sha256,
        write=write,
        destination=destination,
        backup=backup,
        log_rows=log_rows,
    )
