"""Workbook builders shared by the test modules."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import pytest
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill

MASTER_HEADER = [
    "지역화폐적용순위", "지역", "상호", "상표", "셀프", "주소", "전화",
    "휘발유", "고급유", "비고", "경유",
]
SOURCE_HEADER = [
    "지역", "상호", "주소", "상표", "전화번호", "셀프여부",
    "고급휘발유", "휘발유", "경유", "실내등유",
]
CHANGE_LOG_HEADER = [
    "지역", "상호", "주소", "변경내용",
    "휘발유(이전)", "휘발유(신규)", "휘발유 Δ",
    "고급유(이전)", "고급유(신규)", "고급유 Δ",
    "경유(이전)", "경유(신규)", "경유 Δ",
]

LOG_FILL = PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid")


def station(**overrides: Any) -> dict[str, Any]:
    base: dict[str, Any] = {
        "region": "대전",
        "name": "A주유소",
        "brand": "SK에너지",
        "self": "Y",
        "address": "대전 서구 111",
        "phone": "042-111-1111",
        "regular": 1500,
        "premium": 1700,
        "diesel": 1400,
    }
    base.update(overrides)
    return base


def _master_row(rank: int, s: dict[str, Any]) -> list[Any]:
    return [
        rank, s["region"], s["name"], s["brand"], s["self"], s["address"],
        s["phone"], s["regular"], s["premium"], None, s["diesel"],
    ]


def _source_row(s: dict[str, Any]) -> list[Any]:
    return [
        s["region"], s["name"], s["address"], s["brand"], s["phone"], s["self"],
        s["premium"], s["regular"], s["diesel"], None,
    ]


def build_master(
    path: Path,
    stations: Sequence[dict[str, Any]],
    *,
    with_log: bool = True,
    log_header: Sequence[str] = CHANGE_LOG_HEADER,
    footer: str | None = None,
) -> Path:
    wb = Workbook()
    ws = wb.active
    ws.title = "유류비"
    ws["A1"] = "충청권 주유소 유류비"
    ws.append([])
    ws.append(MASTER_HEADER)
    for rank, s in enumerate(stations, start=1):
        ws.append(_master_row(rank, s))
    last = ws.max_row
    ws.auto_filter.ref = f"A3:K{last}"
    for cell in ws[last]:
        cell.font = Font(bold=True)
    if footer is not None:
        ws.cell(row=last + 2, column=1, value=footer)

    if with_log:
        log = wb.create_sheet("변경내역")
        log["A1"] = "변경내역"
        log.append([])
        log.append(list(log_header))
        for col in range(1, len(log_header) + 1):
            log.cell(row=4, column=col).fill = LOG_FILL
    wb.save(path)
    return path


def build_source(
    path: Path,
    stations: Sequence[dict[str, Any]],
    *,
    extra_sheets: Sequence[tuple[str, Sequence[dict[str, Any]]]] = (),
) -> Path:
    wb = Workbook()
    ws = wb.active
    ws.title = "주유소"
    ws["A1"] = "지역별 주유소 가격"
    ws.append([])
    ws.append(SOURCE_HEADER)
    for s in stations:
        ws.append(_source_row(s))
    for title, rows in extra_sheets:
        extra = wb.create_sheet(title)
        extra.append(SOURCE_HEADER)
        for s in rows:
            extra.append(_source_row(s))
    wb.save(path)
    return path


def _legacy_text(value: Any, encoding: str) -> Any:
    if isinstance(value, bytes):
        return value.decode("latin-1")
    # xlwt stores a string "compressed" (one byte per char) when every char
    # fits in latin-1, so code-page bytes smuggled in this way land in the
    # file exactly as a CP949 export writes them.
    if isinstance(value, str) and not value.isascii():
        return value.encode(encoding).decode("latin-1")
    return value


def build_legacy_workbook(
    path: Path,
    sheets: Sequence[tuple[str, Sequence[Sequence[Any]]]],
    *,
    encoding: str = "cp949",
) -> Path:
    """Write a BIFF8 ``.xls`` whose text cells hold *encoding* bytes."""
    import xlwt

    wb = xlwt.Workbook()
    for title, rows in sheets:
        ws = wb.add_sheet(_legacy_text(title, encoding))
        for r, row in enumerate(rows):
            for c, value in enumerate(row):
                if value is not None:
                    ws.write(r, c, _legacy_text(value, encoding))
    wb.save(str(path))
    return path


def build_legacy_master(path: Path, stations: Sequence[dict[str, Any]]) -> Path:
    rows: list[list[Any]] = [["충청권 주유소 유류비"], [], MASTER_HEADER]
    rows.extend(_master_row(rank, s) for rank, s in enumerate(stations, start=1))
    log_rows: list[list[Any]] = [["변경내역"], [], CHANGE_LOG_HEADER]
    return build_legacy_workbook(path, [("유류비", rows), ("변경내역", log_rows)])


def build_legacy_source(path: Path, stations: Sequence[dict[str, Any]]) -> Path:
    rows: list[list[Any]] = [["지역별 주유소 가격"], [], SOURCE_HEADER]
    rows.extend(_source_row(s) for s in stations)
    return build_legacy_workbook(path, [("주유소", rows)])


@pytest.fixture
def make_master(tmp_path: Path) -> Callable[..., Path]:
    def _make(stations: Sequence[dict[str, Any]], name: str = "master.xlsx", **kwargs: Any) -> Path:
        return build_master(tmp_path / name, stations, **kwargs)

    return _make


@pytest.fixture
def make_source(tmp_path: Path) -> Callable[..., Path]:
    def _make(
        stations: Sequence[dict[str, Any]],
        name: str = "지역_위치별(주유소)_대전.xlsx",
        **kwargs: Any,
    ) -> Path:
        src_dir = tmp_path / "sources"
        src_dir.mkdir(exist_ok=True)
        return build_source(src_dir / name, stations, **kwargs)

    return _make


@pytest.fixture
def station_factory() -> Callable[..., dict[str, Any]]:
    return station
