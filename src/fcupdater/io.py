"""I/O helpers: open spreadsheet containers, build tables, write JSON artifacts."""

from __future__ import annotations

import json
import logging
import zipfile
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, cast

import pandas as pd
import xlrd
from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet

from fcupdater import CHANGE_LOG_SHEET, MASTER_SHEET
from fcupdater.config import Settings
from fcupdater.decode import Decoder
from fcupdater.errors import (
    ContainerNotFoundError,
    HeaderNotFoundError,
    UnrecognizedContainerError,
)
from fcupdater.headers import STATION_VOCABULARY, find_header
from fcupdater.models import HeaderMap, Record, WorkbookTable
from fcupdater.normalize import cell_text, parse_price

logger = logging.getLogger(__name__)

ZIP_MAGIC = b"PK\x03\x04"
OLE2_MAGIC = bytes.fromhex("D0CF11E0A1B11AE1")


class ContainerKind(str, Enum):
    XLSX = "xlsx"
    XLS = "xls"


def detect_container_kind(path: Path) -> ContainerKind:
    """Identify a container by its leading bytes; the extension is ignored."""
    path = Path(path)
    if not path.exists():
        raise ContainerNotFoundError("spreadsheet not found", path=path)
    if not path.is_file():
        raise UnrecognizedContainerError("not a regular file", path=path)
    with open(path, "rb") as fh:
        head = fh.read(len(OLE2_MAGIC))
    if head.startswith(ZIP_MAGIC):
        return ContainerKind.XLSX
    if head == OLE2_MAGIC:
        return ContainerKind.XLS
    raise UnrecognizedContainerError("neither an xlsx nor an xls container", path=path)


# ── Readers ──────────────────────────────────────────────────────


class XlsxReader:
    """Zip/XML workbooks, parsed by openpyxl through pandas."""

    kind = ContainerKind.XLSX

    def load_sheets(self, path: Path) -> dict[str, pd.DataFrame]:
        read_excel = cast(Callable[..., dict[str, pd.DataFrame]], getattr(pd, "read_excel"))
        try:
            return read_excel(path, sheet_name=None, header=None, dtype=object, engine="openpyxl")
        except (zipfile.BadZipFile, InvalidFileException, KeyError, ValueError) as exc:
            raise UnrecognizedContainerError(
                "unreadable xlsx container", path=path, cause=exc
            ) from exc


class XlsReader:
    """Legacy BIFF workbooks, parsed by xlrd; text goes through *decoder*.

    Pre-BIFF8 text is decoded by xlrd itself through the decoder codec.
    BIFF8 compressed strings come back as latin-1 and are decoded again
    with the book's code page.
    """

    kind = ContainerKind.XLS

    def __init__(self, decoder: Decoder) -> None:
        self.decoder = decoder

    def open_book(self, path: Path) -> xlrd.Book:
        try:
            return xlrd.open_workbook(str(path), encoding_override=self.decoder.codec_name())
        except (xlrd.XLRDError, AssertionError, IndexError, ValueError) as exc:
            raise UnrecognizedContainerError(
                "unreadable xls container", path=path, cause=exc
            ) from exc

    def text(self, book: xlrd.Book, value: str) -> str:
        if book.biff_version < 80:
            return value
        return self.decoder.decode_compressed(value, book.codepage)

    def sheet_rows(self, book: xlrd.Book, sheet: xlrd.sheet.Sheet) -> list[list[Any]]:
        rows: list[list[Any]] = []
        for r in range(sheet.nrows):
            values: list[Any] = []
            for cell in sheet.row(r):
                value = _legacy_cell_value(cell, book.datemode)
                if isinstance(value, str):
                    value = self.text(book, value)
                values.append(value)
            rows.append(values)
        return rows

    def load_sheets(self, path: Path) -> dict[str, pd.DataFrame]:
        book = self.open_book(path)
        return {
            self.text(book, sheet.name): pd.DataFrame(self.sheet_rows(book, sheet), dtype=object)
            for sheet in book.sheets()
        }


def reader_for(kind: ContainerKind, decoder: Decoder) -> XlsxReader | XlsReader:
    if kind is ContainerKind.XLS:
        return XlsReader(decoder)
    return XlsxReader()


def _grid_rows(frame: pd.DataFrame) -> list[tuple[Any, ...]]:
    return list(frame.itertuples(index=False, name=None))


# ── Tables ───────────────────────────────────────────────────────


def record_from_row(
    cells: tuple[Any, ...] | list[Any],
    header: HeaderMap,
    *,
    row: int | None = None,
    source_file: str = "",
) -> Record:
    def text(field_name: str) -> str:
        return cell_text(header.value(cells, field_name))

    return Record(
        region=text("region"),
        name=text("name"),
        brand=text("brand"),
        self_service_label=text("self_service"),
        raw_address=text("address"),
        phone=text("phone"),
        price_regular=parse_price(header.value(cells, "price_regular")),
        price_premium=parse_price(header.value(cells, "price_premium")),
        price_diesel=parse_price(header.value(cells, "price_diesel")),
        row=row,
        source_file=source_file,
    )


def read_source_table(path: Path, settings: Settings, decoder: Decoder) -> WorkbookTable:
    """Read every sheet of a source export into one table.

    Sheets without a recognisable header are skipped; rows without an
    address are not stations. A file where no sheet qualifies is an error.
    """
    path = Path(path)
    kind = detect_container_kind(path)
    sheets = reader_for(kind, decoder).load_sheets(path)

    matched: list[str] = []
    first_header: HeaderMap | None = None
    records: list[Record] = []
    for sheet_name, frame in sheets.items():
        rows = _grid_rows(frame)
        header = find_header(rows, STATION_VOCABULARY, settings.source_header_scan_rows)
        if header is None:
            logger.debug("%s: no header in sheet %r", path.name, sheet_name)
            continue
        matched.append(str(sheet_name))
        first_header = first_header or header
        for offset, cells in enumerate(rows[header.header_row:], start=header.first_data_row):
            record = record_from_row(cells, header, row=offset, source_file=path.name)
            if not record.raw_address.strip():
                continue
            records.append(record)

    if first_header is None:
        raise HeaderNotFoundError(
            "no sheet has the required headers (지역, 상호, 주소)",
            path=path,
            scan_rows=settings.source_header_scan_rows,
        )
    logger.info("%s: %d stations from %s", path.name, len(records), ", ".join(matched))
    return WorkbookTable(sheet_name=", ".join(matched), header=first_header, records=records)


def _legacy_cell_value(cell: xlrd.sheet.Cell, datemode: int) -> Any:
    if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
        return None
    if cell.ctype == xlrd.XL_CELL_NUMBER:
        value = float(cell.value)
        return int(value) if value.is_integer() else value
    if cell.ctype == xlrd.XL_CELL_DATE:
        return xlrd.xldate.xldate_as_datetime(cell.value, datemode)
    if cell.ctype == xlrd.XL_CELL_BOOLEAN:
        return bool(cell.value)
    if cell.ctype == xlrd.XL_CELL_ERROR:
        return None
    return cell.value


def upgrade_legacy_workbook(path: Path, decoder: Decoder) -> Workbook:
    """Copy every sheet of an ``.xls`` book, values only, into a new workbook."""
    reader = XlsReader(decoder)
    book = reader.open_book(path)
    wb = Workbook()
    wb.remove(wb.active)
    for sheet in book.sheets():
        ws = wb.create_sheet(title=reader.text(book, sheet.name)[:31])
        for r, values in enumerate(reader.sheet_rows(book, sheet), start=1):
            for c, value in enumerate(values, start=1):
                if value is not None:
                    ws.cell(row=r, column=c, value=value)
    logger.info("Upgraded legacy workbook %s (%d sheets)", path.name, len(wb.worksheets))
    return wb


def open_master_workbook(path: Path, decoder: Decoder) -> Workbook:
    path = Path(path)
    kind = detect_container_kind(path)
    if kind is ContainerKind.XLS:
        return upgrade_legacy_workbook(path, decoder)
    try:
        return load_workbook(path)
    except (zipfile.BadZipFile, InvalidFileException, KeyError, ValueError) as exc:
        raise UnrecognizedContainerError(
            "unreadable xlsx container", path=path, cause=exc
        ) from exc


def read_master_table(wb: Workbook, settings: Settings) -> tuple[Worksheet, WorkbookTable]:
    """Locate the price sheet and read its stations.

    Uses the ``유류비`` sheet when present, otherwise the first sheet (other
    than the change log) with a recognisable header.
    """
    if MASTER_SHEET in wb.sheetnames:
        candidates = [wb[MASTER_SHEET]]
    else:
        candidates = [ws for ws in wb.worksheets if ws.title != CHANGE_LOG_SHEET]

    for ws in candidates:
        header = find_header(
            ws.iter_rows(values_only=True),
            STATION_VOCABULARY,
            settings.master_header_scan_rows,
        )
        if header is not None:
            break
    else:
        raise HeaderNotFoundError(
            "master sheet has no header row with 지역, 상호, 주소",
            sheets=", ".join(ws.title for ws in candidates) or "-",
            scan_rows=settings.master_header_scan_rows,
        )

    records: list[Record] = []
    for row_number, cells in enumerate(
        ws.iter_rows(min_row=header.first_data_row, values_only=True),
        start=header.first_data_row,
    ):
        record = record_from_row(cells, header, row=row_number)
        if not (record.region or record.name or record.raw_address):
            continue
        records.append(record)
    logger.info("Master sheet %r: %d stations", ws.title, len(records))
    return ws, WorkbookTable(sheet_name=ws.title, header=header, records=records)


# ── Writing ──────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path
