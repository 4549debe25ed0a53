"""Workbook writer: output naming, backups and verified saves."""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
import time
import zipfile
from dataclasses import dataclass
from datetime import date
from enum import Enum
from pathlib import Path, PurePosixPath
from xml.etree import ElementTree

from openpyxl import Workbook, load_workbook

from fcupdater.errors import IntegrityError, IoError
from fcupdater.utils import today_iso

logger = logging.getLogger(__name__)

RESERVATION_MARKER = b"FCUPDATER_RESERVED_v1\n"
STALE_RESERVATION_SECONDS = 60 * 60
MAX_NAME_ATTEMPTS = 100_000

REQUIRED_PARTS: tuple[str, ...] = (
    "[Content_Types].xml",
    "_rels/.rels",
    "xl/workbook.xml",
    "xl/_rels/workbook.xml.rels",
    "xl/styles.xml",
    "xl/sharedStrings.xml",
)

_REL_NS = "{http://schemas.openxmlformats.org/package/2006/relationships}"
_WORKSHEET_REL = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/worksheet"


class SaveMode(str, Enum):
    VERIFY = "verify"
    FAST = "fast"
    DRY_RUN = "dry-run"


@dataclass(frozen=True)
class WriteResult:
    path: Path
    mode: SaveMode
    verified: bool


# ── Output naming ────────────────────────────────────────────────


def default_output_path(master: Path, today: date | None = None) -> Path:
    master = Path(master)
    return master.with_name(f"{master.stem}_updated_{today_iso(today)}.xlsx")


def default_backup_path(master: Path, today: date | None = None) -> Path:
    master = Path(master)
    return master.with_name(f"{master.stem}_backup_{today_iso(today)}{master.suffix or '.xlsx'}")


def candidate_path(path: Path, seq: int) -> Path:
    """``out.xlsx`` for 0, then ``out_1.xlsx``, ``out_2.xlsx`` …"""
    if seq == 0:
        return path
    return path.with_name(f"{path.stem}_{seq}{path.suffix}")


def is_reservation(path: Path) -> bool:
    try:
        with open(path, "rb") as fh:
            return fh.read(len(RESERVATION_MARKER) + 1) == RESERVATION_MARKER
    except OSError:
        return False


def release_reservation(path: Path) -> None:
    """Delete *path* if it still holds nothing but a reservation marker."""
    if is_reservation(path):
        try:
            path.unlink()
        except OSError as exc:
            logger.warning("Could not remove reservation %s: %s", path, exc)


def _remove_if_stale(path: Path) -> bool:
    try:
        age = time.time() - path.stat().st_mtime
    except OSError:
        return False
    if age < STALE_RESERVATION_SECONDS or not is_reservation(path):
        return False
    try:
        path.unlink()
    except OSError:
        return False
    logger.info("Removed stale reservation %s", path)
    return True


def _try_reserve(path: Path) -> bool:
    try:
        with open(path, "xb") as fh:
            fh.write(RESERVATION_MARKER)
            fh.flush()
            os.fsync(fh.fileno())
    except FileExistsError:
        return False
    except OSError as exc:
        raise IoError("could not reserve output path", path=path, cause=exc) from exc
    return True


def resolve_output_path(path: Path, *, reserve: bool = True) -> Path:
    """Return the first free ``path`` / ``path_N`` candidate.

    With *reserve* the candidate is claimed by an exclusive create that
    writes a reservation marker, so a later check cannot race with this
    one. Without it (dry runs) nothing is created.
    """
    path = Path(path)
    if reserve:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IoError("could not create output directory", path=path.parent, cause=exc) from exc

    seq = 0
    while seq <= MAX_NAME_ATTEMPTS:
        candidate = candidate_path(path, seq)
        if not reserve:
            if not candidate.exists():
                return candidate
        elif _try_reserve(candidate):
            return candidate
        elif _remove_if_stale(candidate):
            continue
        seq += 1
    raise IoError("too many name collisions", path=path, attempts=MAX_NAME_ATTEMPTS)


def make_backup(master: Path, today: date | None = None) -> Path:
    """Copy *master* next to itself before it is overwritten."""
    master = Path(master)
    backup = resolve_output_path(default_backup_path(master, today))
    try:
        shutil.copy2(master, backup)
    except OSError as exc:
        release_reservation(backup)
        raise IoError("backup failed; master left untouched", path=master, cause=exc) from exc
    logger.info("Backup written to %s", backup)
    return backup


# ── Verification ─────────────────────────────────────────────────


def _worksheet_parts(archive: zipfile.ZipFile) -> list[str]:
    rels = ElementTree.fromstring(archive.read("xl/_rels/workbook.xml.rels"))
    parts: list[str] = []
    for rel in rels.iter(f"{_REL_NS}Relationship"):
        if rel.get("Type") != _WORKSHEET_REL:
            continue
        target = rel.get("Target", "")
        if target.startswith("/"):
            parts.append(target.lstrip("/"))
        else:
            parts.append(str(PurePosixPath("xl") / target))
    return parts


def verify_container(path: Path) -> None:
    """Raise :class:`IntegrityError` unless *path* is a complete workbook.

    Every required part and every worksheet named in the workbook
    relationships must exist and parse as XML, and openpyxl must be able to
    reopen the file.
    """
    path = Path(path)
    try:
        with zipfile.ZipFile(path) as archive:
            names = set(archive.namelist())
            missing = [p for p in REQUIRED_PARTS if p not in names]
            if missing:
                raise IntegrityError("required parts missing", path=path, parts=", ".join(missing))
            sheets = _worksheet_parts(archive)
            if not sheets:
                raise IntegrityError("workbook lists no worksheets", path=path)
            for part in (*REQUIRED_PARTS, *sheets):
                if part not in names:
                    raise IntegrityError("worksheet part missing", path=path, part=part)
                try:
                    ElementTree.fromstring(archive.read(part))
                except ElementTree.ParseError as exc:
                    raise IntegrityError(
                        "malformed XML part", path=path, part=part, cause=exc
                    ) from exc
    except (zipfile.BadZipFile, OSError) as exc:
        raise IntegrityError("not a readable zip container", path=path, cause=exc) from exc

    try:
        reopened = load_workbook(path, read_only=True)
    except Exception as exc:
        raise IntegrityError("openpyxl could not reopen output", path=path, cause=exc) from exc
    reopened.close()


# ── Shared strings ───────────────────────────────────────────────

_SHARED_STRINGS_PART = "xl/sharedStrings.xml"
_SHARED_STRINGS_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sharedStrings+xml"
_SHARED_STRINGS_REL = (
    "http://schemas.openxmlformats.org/officeDocument/2006/relationships/sharedStrings"
)
_SHEET_MAIN_NS = "http://schemas.openxmlformats.org/spreadsheetml/2006/main"

# openpyxl serialises every text cell as <c ... t="inlineStr"><is>...</is></c>.
_INLINE_CELL = re.compile(
    rb'<c\b(?P<head>[^>]*?)\st="inlineStr"(?P<tail>[^>]*)>\s*<is>(?P<body>.*?)</is>\s*</c>',
    re.DOTALL,
)
_REL_ID = re.compile(rb'\bId="rId(\d+)"')


def _move_inline_strings(xml: bytes, table: dict[bytes, int]) -> bytes:
    def _shared(match: re.Match[bytes]) -> bytes:
        index = table.setdefault(match["body"], len(table))
        return b'<c%s t="s"%s><v>%d</v></c>' % (match["head"], match["tail"], index)

    return _INLINE_CELL.sub(_shared, xml)


def _shared_strings_xml(table: dict[bytes, int], count: int) -> bytes:
    items = b"".join(b"<si>%s</si>" % body for body in table)
    return (
        b'<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
        b'<sst xmlns="%s" count="%d" uniqueCount="%d">%s</sst>'
        % (_SHEET_MAIN_NS.encode(), count, len(table), items)
    )


def _insert_before(xml: bytes, closing: bytes, element: bytes) -> bytes:
    at = xml.rfind(closing)
    if at < 0:
        raise IntegrityError("unexpected package part layout", closing=closing.decode())
    return xml[:at] + element + xml[at:]


def share_inline_strings(path: Path) -> int:
    """Move inline cell strings of the package at *path* into ``xl/sharedStrings.xml``.

    The shared-strings part is added together with its content-type override
    and workbook relationship, so the container always carries it even when
    no cell holds text. Packages that already have the part are left alone.
    Returns the number of distinct strings written.
    """
    path = Path(path)
    with zipfile.ZipFile(path) as archive:
        if _SHARED_STRINGS_PART in archive.namelist():
            return 0
        entries = [(info, archive.read(info.filename)) for info in archive.infolist()]
        sheets = set(_worksheet_parts(archive))

    table: dict[bytes, int] = {}
    count = 0
    rewritten: list[tuple[zipfile.ZipInfo, bytes]] = []
    for info, data in entries:
        if info.filename in sheets:
            count += len(_INLINE_CELL.findall(data))
            data = _move_inline_strings(data, table)
        elif info.filename == "[Content_Types].xml" and b"/xl/sharedStrings.xml" not in data:
            data = _insert_before(
                data,
                b"</Types>",
                b'<Override PartName="/%s" ContentType="%s"/>'
                % (_SHARED_STRINGS_PART.encode(), _SHARED_STRINGS_TYPE.encode()),
            )
        elif info.filename == "xl/_rels/workbook.xml.rels" and b"sharedStrings.xml" not in data:
            next_id = max((int(n) for n in _REL_ID.findall(data)), default=0) + 1
            data = _insert_before(
                data,
                b"</Relationships>",
                b'<Relationship Id="rId%d" Type="%s" Target="sharedStrings.xml"/>'
                % (next_id, _SHARED_STRINGS_REL.encode()),
            )
        rewritten.append((info, data))

    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as archive:
        for info, data in rewritten:
            archive.writestr(info, data)
        archive.writestr(_SHARED_STRINGS_PART, _shared_strings_xml(table, count))
    logger.debug("Moved %d inline strings (%d unique) into %s", count, len(table), _SHARED_STRINGS_PART)
    return len(table)


# ── Saving ───────────────────────────────────────────────────────


def _serialize(wb: Workbook, path: Path) -> None:
    wb.save(path)
    share_inline_strings(path)


def _fsync_path(path: Path, *, strict: bool, is_dir: bool = False) -> None:
    try:
        fd = os.open(path, os.O_RDONLY | (getattr(os, "O_DIRECTORY", 0) if is_dir else 0))
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except OSError as exc:
        if strict:
            raise IoError("durability sync failed", path=path, cause=exc) from exc
        logger.warning("Durability sync failed for %s: %s", path, exc)


def save_workbook(
    wb: Workbook,
    destination: Path,
    mode: SaveMode = SaveMode.VERIFY,
    *,
    durability_strict: bool = False,
) -> WriteResult:
    """Save *wb* to a temp file, verify it, then move it onto *destination*.

    The destination is never replaced by an unverified or partial file; the
    temp file is removed on every exit path.
    """
    destination = Path(destination)
    if mode is SaveMode.DRY_RUN:
        return WriteResult(path=destination, mode=mode, verified=False)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{destination.stem}.", suffix=".tmp.xlsx", dir=destination.parent
    )
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        try:
            _serialize(wb, tmp_path)
        except OSError as exc:
            raise IoError("could not write workbook", path=tmp_path, cause=exc) from exc
        if mode is SaveMode.VERIFY:
            verify_container(tmp_path)
        try:
            os.replace(tmp_path, destination)
        except OSError as exc:
            raise IoError("could not move workbook into place", path=destination, cause=exc) from exc
    finally:
        if tmp_path.exists():
            tmp_path.unlink()

    _fsync_path(destination, strict=durability_strict)
    _fsync_path(destination.parent, strict=durability_strict, is_dir=True)
    logger.info("Saved %s (%s)", destination, mode.value)
    return WriteResult(path=destination, mode=mode, verified=mode is SaveMode.VERIFY)
