"""Audit rows for the ``변경내역`` sheet."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from copy import copy
from dataclasses import dataclass
from datetime import date

from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from fcupdater.config import Settings
from fcupdater.errors import FormatError, HeaderNotFoundError
from fcupdater.headers import (
    CHANGE_LOG_DELTA_FIELDS,
    CHANGE_LOG_PRICE_COLUMNS,
    CHANGE_LOG_PRICE_FIELDS,
    CHANGE_LOG_VOCABULARY,
    display_label,
    find_header,
)
from fcupdater.models import ChangeRecord, HeaderMap
from fcupdater.normalize import cell_text

logger = logging.getLogger(__name__)

DATE_STAMP_PREFIX = "현행화 일자"

_DATA_FIELDS = ("region", "name", "address", "reason", *CHANGE_LOG_PRICE_COLUMNS)


@dataclass(frozen=True)
class ChangeLogLayout:
    header: HeaderMap

    @property
    def data_start_row(self) -> int:
        return self.header.first_data_row

    def col(self, field_name: str) -> int | None:
        """1-based sheet column for *field_name*, if the sheet has it."""
        idx = self.header.column(field_name)
        return None if idx is None else idx + 1

    @property
    def max_col(self) -> int:
        return self.header.last_column + 1

    def price_cols(self, price_field: str) -> tuple[int, int]:
        """1-based (before, after) columns of *price_field*."""
        old_key, new_key = CHANGE_LOG_PRICE_FIELDS[price_field]
        old_col, new_col = self.col(old_key), self.col(new_key)
        if old_col is None or new_col is None:
            missing = old_key if old_col is None else new_key
            raise FormatError(
                f"change-log header is missing the '{display_label(CHANGE_LOG_VOCABULARY, missing)}' column",
                row=self.header.header_row,
            )
        return old_col, new_col


def find_change_log_layout(ws: Worksheet, settings: Settings) -> ChangeLogLayout:
    """Locate the change-log header within the configured scan window.

    A row qualifies once it carries 지역, 상호, 주소 and a reason column;
    the six before/after price columns are then mandatory.
    """
    max_row = min(settings.changelog_header_scan_rows, ws.max_row)
    max_col = min(settings.changelog_header_scan_cols, ws.max_column)
    header = find_header(
        ws.iter_rows(min_row=1, max_row=max_row, max_col=max_col, values_only=True),
        CHANGE_LOG_VOCABULARY,
        settings.changelog_header_scan_rows,
        max_cols=settings.changelog_header_scan_cols,
    )
    if header is None:
        raise HeaderNotFoundError(
            "change-log header row not found (지역/상호/주소/변경내용)",
            sheet=ws.title,
            scan_rows=settings.changelog_header_scan_rows,
            scan_cols=settings.changelog_header_scan_cols,
        )
    for field_name in CHANGE_LOG_PRICE_COLUMNS:
        if not header.has(field_name):
            raise FormatError(
                f"change-log header is missing the '{display_label(CHANGE_LOG_VOCABULARY, field_name)}' column",
                sheet=ws.title,
                row=header.header_row,
            )
    return ChangeLogLayout(header=header)


def _row_has_data(ws: Worksheet, row: int, layout: ChangeLogLayout) -> bool:
    for field_name in _DATA_FIELDS:
        col = layout.col(field_name)
        if col is not None and cell_text(ws.cell(row=row, column=col).value):
            return True
    return False


def find_next_row(ws: Worksheet, layout: ChangeLogLayout) -> int:
    """First row after the last existing log entry."""
    for row in range(ws.max_row, layout.data_start_row - 1, -1):
        if _row_has_data(ws, row, layout):
            return row + 1
    return layout.data_start_row


def _row_has_format(ws: Worksheet, row: int, max_col: int) -> bool:
    if row < 1 or row > ws.max_row:
        return False
    return any(
        cell.has_style
        for (cell,) in ws.iter_cols(min_row=row, max_row=row, min_col=1, max_col=max_col)
    )


def pick_style_template_row(ws: Worksheet, layout: ChangeLogLayout, preferred: int) -> int:
    """Preferred row if formatted, else the nearest formatted row above it."""
    start = layout.data_start_row
    if preferred >= start and _row_has_format(ws, preferred, layout.max_col):
        return preferred
    end = preferred if preferred > start else start + 1
    for row in range(end - 1, start - 1, -1):
        if _row_has_format(ws, row, layout.max_col):
            return row
    return start


def _clone_row_style(ws: Worksheet, source_row: int, target_row: int, max_col: int) -> None:
    for col in range(1, max_col + 1):
        src = ws.cell(row=source_row, column=col)
        if not src.has_style:
            continue
        dst = ws.cell(row=target_row, column=col)
        dst.font = copy(src.font)
        dst.fill = copy(src.fill)
        dst.border = copy(src.border)
        dst.alignment = copy(src.alignment)
        dst.protection = copy(src.protection)
        dst.number_format = src.number_format
    height = ws.row_dimensions[source_row].height
    if height is not None:
        ws.row_dimensions[target_row].height = height


def _delta_formula(old_ref: str, new_ref: str) -> str:
    return f'=IF(OR({old_ref}="",{new_ref}=""),"",{new_ref}-{old_ref})'


def stamp_update_date(ws: Worksheet, layout: ChangeLogLayout, run_date: date) -> None:
    """Write ``현행화 일자: YYYY-MM-DD`` into A2 unless that cell holds other content."""
    if layout.header.header_row <= 2:
        return
    cell = ws.cell(row=2, column=1)
    current = cell_text(cell.value)
    if current and not current.startswith(DATE_STAMP_PREFIX):
        return
    cell.value = f"{DATE_STAMP_PREFIX}: {run_date.isoformat()}"


def append_change_log(
    ws: Worksheet,
    records: Sequence[ChangeRecord],
    layout: ChangeLogLayout,
    *,
    run_date: date,
    template_row: int,
) -> int:
    """Append one row per record after the existing entries; return rows written."""
    first_row = find_next_row(ws, layout)
    style_row = pick_style_template_row(ws, layout, template_row)
    date_col = layout.col("date")

    for offset, record in enumerate(records):
        row = first_row + offset
        if row != style_row:
            try:
                _clone_row_style(ws, style_row, row, layout.max_col)
            except (AttributeError, TypeError, ValueError) as exc:
                logger.warning("Could not copy change-log style to row %d: %s", row, exc)

        for field_name, value in (
            ("region", record.region),
            ("name", record.name),
            ("address", record.address),
            ("reason", record.reason),
        ):
            col = layout.col(field_name)
            if col is not None:
                ws.cell(row=row, column=col).value = value or None

        for price_field in CHANGE_LOG_PRICE_FIELDS:
            old_col, new_col = layout.price_cols(price_field)
            ws.cell(row=row, column=old_col).value = record.before.get(price_field)
            ws.cell(row=row, column=new_col).value = record.after.get(price_field)
            delta_col = layout.col(CHANGE_LOG_DELTA_FIELDS[price_field])
            if delta_col is not None:
                ws.cell(row=row, column=delta_col).value = _delta_formula(
                    f"{get_column_letter(old_col)}{row}",
                    f"{get_column_letter(new_col)}{row}",
                )

        if date_col is not None:
            ws.cell(row=row, column=date_col).value = run_date

    stamp_update_date(ws, layout, run_date)
    logger.info("Appended %d change-log rows to %r", len(records), ws.title)
    return len(records)
