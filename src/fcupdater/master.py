"""Rewrite the master price sheet from a reconciled table."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from copy import copy
from dataclasses import dataclass, field
from typing import Any

from openpyxl.formula.translate import Translator
from openpyxl.utils import get_column_letter, range_boundaries
from openpyxl.worksheet.worksheet import Worksheet

from fcupdater.models import PRICE_FIELDS, Record, WorkbookTable
from fcupdater.normalize import cell_text, parse_price

logger = logging.getLogger(__name__)


@dataclass
class _CellSnapshot:
    column: int
    value: Any
    font: Any = None
    fill: Any = None
    border: Any = None
    alignment: Any = None
    protection: Any = None
    number_format: str = "General"
    has_style: bool = False


@dataclass
class _RowSnapshot:
    row: int
    cells: list[_CellSnapshot] = field(default_factory=list)
    height: float | None = None


def _snapshot_row(ws: Worksheet, row: int, max_col: int) -> _RowSnapshot:
    snap = _RowSnapshot(row=row, height=ws.row_dimensions[row].height)
    for (cell,) in ws.iter_cols(min_row=row, max_row=row, min_col=1, max_col=max_col):
        snap.cells.append(
            _CellSnapshot(
                column=cell.column,
                value=cell.value,
                font=copy(cell.font),
                fill=copy(cell.fill),
                border=copy(cell.border),
                alignment=copy(cell.alignment),
                protection=copy(cell.protection),
                number_format=cell.number_format,
                has_style=cell.has_style,
            )
        )
    return snap


def _is_formula(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("=")


def _translate(formula: str, column: int, origin_row: int, target_row: int) -> str:
    letter = get_column_letter(column)
    return Translator(formula, origin=f"{letter}{origin_row}").translate_formula(
        f"{letter}{target_row}"
    )


def _restore_row(ws: Worksheet, snap: _RowSnapshot, target_row: int, *, keep_values: bool) -> None:
    """Paste *snap* at *target_row*; new rows keep only styles and formulas."""
    for c in snap.cells:
        cell = ws.cell(row=target_row, column=c.column)
        if c.has_style:
            cell.font = copy(c.font)
            cell.fill = copy(c.fill)
            cell.border = copy(c.border)
            cell.alignment = copy(c.alignment)
            cell.protection = copy(c.protection)
            cell.number_format = c.number_format
        if _is_formula(c.value):
            cell.value = _translate(c.value, c.column, snap.row, target_row)
        elif keep_values:
            cell.value = c.value
    if snap.height is not None:
        ws.row_dimensions[target_row].height = snap.height


def station_values(record: Record) -> dict[str, Any]:
    """Cell values for each station field, keyed like the station vocabulary."""
    return {
        "region": record.region,
        "name": record.name,
        "brand": record.brand,
        "self_service": record.self_service_label,
        "address": record.raw_address,
        "phone": record.phone,
        **record.prices(),
    }


def _differs(current: Any, value: Any, field_name: str) -> bool:
    if field_name in PRICE_FIELDS:
        return parse_price(current) != value
    return cell_text(current) != (value or "")


def _write_fields(ws: Worksheet, table: WorkbookTable, record: Record, row: int, *, force: bool) -> None:
    for field_name, value in station_values(record).items():
        idx = table.header.column(field_name)
        if idx is None:
            continue
        cell = ws.cell(row=row, column=idx + 1)
        if force or _differs(cell.value, value, field_name):
            cell.value = value if value not in ("", None) else None


def apply_to_sheet(ws: Worksheet, table: WorkbookTable, original_rows: Sequence[int]) -> int:
    """Replace the data block of *ws* with ``table.records``; return its last row.

    *original_rows* are the sheet rows the master records were read from.
    Kept rows carry their styles, untouched values and formulas to their new
    position; new rows take styles and formulas from the last original data
    row. Content below the data block moves with it.
    """
    data_start = table.first_data_row
    old_rows = sorted(set(original_rows))
    old_end = old_rows[-1] if old_rows else data_start - 1
    max_col = max(ws.max_column, table.header.last_column + 1)

    snapshots = {r: _snapshot_row(ws, r, max_col) for r in old_rows}
    template = snapshots[old_rows[-1]] if old_rows else _snapshot_row(ws, data_start, max_col)

    if old_end >= data_start:
        ws.delete_rows(data_start, old_end - data_start + 1)
    if table.records:
        ws.insert_rows(data_start, len(table.records))

    for offset, record in enumerate(table.records):
        target = data_start + offset
        snap = snapshots.get(record.row) if record.row is not None else None
        if snap is not None:
            _restore_row(ws, snap, target, keep_values=True)
            _write_fields(ws, table, record, target, force=False)
        else:
            _restore_row(ws, template, target, keep_values=False)
            _write_fields(ws, table, record, target, force=True)

    last_row = data_start + len(table.records) - 1 if table.records else data_start
    if ws.auto_filter.ref:
        min_col, min_row, max_col_ref, _ = range_boundaries(ws.auto_filter.ref)
        ws.auto_filter.ref = (
            f"{get_column_letter(min_col)}{min_row}:{get_column_letter(max_col_ref)}{last_row}"
        )
    logger.info("Rewrote %r rows %d-%d", ws.title, data_start, last_row)
    return last_row
