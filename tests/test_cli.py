"""CLI integration smoke tests for fcupdater."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from openpyxl import load_workbook
from typer.testing import CliRunner

import fcupdater.cli as cli_mod
from fcupdater import __version__
from fcupdater.cli import app
from fcupdater.config import Settings
from fcupdater.models import RunSummary

runner = CliRunner()


@pytest.fixture
def workspace(
    tmp_path: Path,
    make_master: Callable[..., Path],
    make_source: Callable[..., Path],
    station_factory: Callable[..., dict[str, Any]],
) -> Path:
    make_master(
        [station_factory(), station_factory(name="C주유소", address="대전 중구 3")]
    )
    make_source(
        [station_factory(regular=1550), station_factory(name="B주유소", address="대전 유성구 2")]
    )
    return tmp_path


def _base_args(root: Path) -> list[str]:
    return ["--master", str(root / "master.xlsx"), "--sources-dir", str(root / "sources")]


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert f"fcupdater v{__version__}" in result.output


def test_short_help_flag() -> None:
    result = runner.invoke(app, ["-h"])
    assert result.exit_code == 0
    assert "--sources-dir" in result.output
    assert "--dry-run" in result.output


def test_run_writes_output_and_summary_json(workspace: Path) -> None:
    out = workspace / "out.xlsx"
    summary_path = workspace / "summary.json"

    result = runner.invoke(
        app,
        [*_base_args(workspace), "-o", str(out), "--summary-json", str(summary_path), "--quiet"],
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(summary_path.read_text(encoding="utf-8"))
    assert payload["output_path"] == str(out)
    assert (payload["changed"], payload["added"], payload["removed"]) == (1, 1, 1)
    assert payload["verified"] is True
    assert load_workbook(out)["유류비"]["H4"].value == 1550


def test_run_prints_summary_tables(workspace: Path) -> None:
    before = sorted(p.name for p in workspace.iterdir())

    result = runner.invoke(app, [*_base_args(workspace), "--dry-run"])

    assert result.exit_code == 0, result.output
    assert "Update Summary" in result.output
    assert "Added stations" in result.output
    assert "Removed stations" in result.output
    assert "Dry run" in result.output
    assert sorted(p.name for p in workspace.iterdir()) == before


@pytest.mark.parametrize(
    "flags",
    [["--in-place", "-o", "x.xlsx"], ["--dry-run", "--fast-save"]],
)
def test_conflicting_flags_exit_2_without_side_effects(
    monkeypatch: pytest.MonkeyPatch, workspace: Path, flags: list[str]
) -> None:
    def _fail(*args: Any, **kwargs: Any) -> RunSummary:
        raise AssertionError("run_update must not be called")

    monkeypatch.setattr(cli_mod, "run_update", _fail)
    before = sorted(p.name for p in workspace.iterdir())

    result = runner.invoke(app, [*_base_args(workspace), *flags])

    assert result.exit_code == 2
    assert "cannot be used together" in result.output
    assert sorted(p.name for p in workspace.iterdir()) == before


def test_missing_sources_dir_exits_2(tmp_path: Path) -> None:
    result = runner.invoke(
        app, ["--master", str(tmp_path / "m.xlsx"), "--sources-dir", str(tmp_path / "nope")]
    )
    assert result.exit_code == 2
    assert "CONTAINER_NOT_FOUND" in result.output


def test_unexpected_errors_exit_1(monkeypatch: pytest.MonkeyPatch, workspace: Path) -> None:
    def _boom(*args: Any, **kwargs: Any) -> RunSummary:
        raise RuntimeError("boom")

    monkeypatch.setattr(cli_mod, "run_update", _boom)
    result = runner.invoke(app, [*_base_args(workspace), "--quiet"])

    assert result.exit_code == 1
    assert "Unexpected internal error" in result.output


def test_settings_come_from_environment(monkeypatch: pytest.MonkeyPatch, workspace: Path) -> None:
    seen: list[Settings] = []

    def _capture(options: Any, settings: Settings) -> RunSummary:
        seen.append(settings)
        return RunSummary(output_path="x.xlsx")

    monkeypatch.setattr(cli_mod, "run_update", _capture)
    monkeypatch.setenv("FCUPDATER_CP949_STRICT", "yes")
    monkeypatch.setenv("FCUPDATER_MASTER_HEADER_SCAN_ROWS", "50")

    result = runner.invoke(app, [*_base_args(workspace), "--quiet"])

    assert result.exit_code == 0, result.output
    assert seen[0].cp949_strict is True
    assert seen[0].master_header_scan_rows == 50
