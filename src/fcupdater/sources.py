"""Source export discovery and the merged source set."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from pathlib import Path

from fcupdater.config import Settings
from fcupdater.decode import Decoder
from fcupdater.errors import ContainerNotFoundError
from fcupdater.io import read_source_table
from fcupdater.models import ConflictSample, ConflictSummary, Record, SourceFileSet
from fcupdater.utils import natural_sort_key

logger = logging.getLogger(__name__)

SOURCE_SUFFIXES = frozenset({".xls", ".xlsx"})


def discover_source_files(directory: Path, prefix: str) -> list[Path]:
    """Return spreadsheets in *directory* whose name starts with *prefix*.

    The prefix comparison ignores case; results come in natural order so
    ``..._2.xls`` sorts before ``..._10.xls``.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise ContainerNotFoundError("sources directory not found", path=directory)
    wanted = prefix.casefold()
    found = [
        p
        for p in directory.iterdir()
        if p.is_file()
        and p.suffix.lower() in SOURCE_SUFFIXES
        and p.name.casefold().startswith(wanted)
    ]
    return sorted(found, key=lambda p: natural_sort_key(p.name))


def index_records(
    records: Iterable[Record],
) -> tuple[list[tuple[str, Record]], ConflictSummary]:
    """First-seen wins per normalized address; later duplicates are conflicts.

    Returns the kept ``(key, record)`` pairs in encounter order. Records
    with a blank key are kept (they can never match) and never conflict.
    """
    kept: list[tuple[str, Record]] = []
    seen: dict[str, Record] = {}
    conflicts = ConflictSummary()
    for record in records:
        key = record.normalized_address
        if key and key in seen:
            first = seen[key]
            conflicts.record(
                ConflictSample(
                    address=record.raw_address,
                    kept_source=first.source_file,
                    dropped_source=record.source_file,
                )
            )
            logger.debug("Duplicate source address %r in %s", key, record.source_file)
            continue
        if key:
            seen[key] = record
        kept.append((key, record))
    return kept, conflicts


def build_source_set(
    paths: Sequence[Path], settings: Settings, decoder: Decoder
) -> SourceFileSet:
    records: list[Record] = []
    for path in paths:
        table = read_source_table(path, settings, decoder)
        records.extend(table.records)
    _, conflicts = index_records(records)
    if conflicts.count:
        logger.warning("%d duplicate source addresses; first occurrence kept", conflicts.count)
    return SourceFileSet(paths=[str(p) for p in paths], records=records, conflicts=conflicts)
