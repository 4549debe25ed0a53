from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from conftest import build_source

from fcupdater.config import Settings
from fcupdater.decode import Decoder
from fcupdater.errors import ContainerNotFoundError
from fcupdater.models import Record
from fcupdater.sources import build_source_set, discover_source_files, index_records


def _touch(directory: Path, *names: str) -> None:
    for name in names:
        (directory / name).write_bytes(b"")


def test_discovery_is_case_insensitive_and_natural_sorted(tmp_path: Path) -> None:
    _touch(
        tmp_path,
        "Export_10.xlsx",
        "export_2.XLS",
        "EXPORT_1.xlsx",
        "export_3.csv",
        "other_1.xlsx",
    )
    (tmp_path / "export_dir.xlsx").mkdir()

    found = discover_source_files(tmp_path, "export")

    assert [p.name for p in found] == ["EXPORT_1.xlsx", "export_2.XLS", "Export_10.xlsx"]


def test_discovery_with_korean_prefix(tmp_path: Path) -> None:
    _touch(tmp_path, "지역_위치별(주유소) (1).xls", "지역_위치별(주유소).xlsx", "유류비.xlsx")
    found = discover_source_files(tmp_path, "지역_위치별(주유소)")
    assert len(found) == 2


def test_discovery_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(ContainerNotFoundError):
        discover_source_files(tmp_path / "missing", "x")


def test_index_records_first_seen_wins() -> None:
    records = [
        Record(name="first", raw_address="대전 서구 111", source_file="a.xlsx"),
        Record(name="blank", raw_address="", source_file="a.xlsx"),
        Record(name="second", raw_address="대전광역시 서구 111", source_file="b.xlsx"),
        Record(name="other", raw_address="대전 중구 2", source_file="b.xlsx"),
        Record(name="blank2", raw_address="  ", source_file="b.xlsx"),
    ]

    kept, conflicts = index_records(records)

    assert [r.name for _, r in kept] == ["first", "blank", "other", "blank2"]
    assert conflicts.count == 1
    sample = conflicts.samples[0]
    assert sample.address == "대전광역시 서구 111"
    assert sample.kept_source == "a.xlsx"
    assert sample.dropped_source == "b.xlsx"


def test_build_source_set_unions_files_in_order(
    tmp_path: Path, station_factory: Callable[..., dict[str, Any]]
) -> None:
    first = build_source(tmp_path / "src_1.xlsx", [station_factory(name="A1")])
    second = build_source(
        tmp_path / "src_2.xlsx",
        [station_factory(name="A2"), station_factory(name="B", address="대전 중구 2")],
    )

    source_set = build_source_set([first, second], Settings(), Decoder())

    assert [r.name for r in source_set.records] == ["A1", "A2", "B"]
    assert source_set.paths == [str(first), str(second)]
    assert source_set.conflicts.count == 1
    assert source_set.conflicts.samples[0].dropped_source == "src_2.xlsx"
