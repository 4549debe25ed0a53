from __future__ import annotations

import pytest

from fcupdater.models import (
    MAX_CONFLICT_SAMPLES,
    ChangeKind,
    ChangeRecord,
    ConflictSample,
    ConflictSummary,
    HeaderMap,
    ReconcileResult,
    Record,
    RunSummary,
    WorkbookTable,
)


def _table() -> WorkbookTable:
    return WorkbookTable(sheet_name="유류비", header=HeaderMap(header_row=3, columns={"address": 5}))


def test_record_key_is_derived_from_raw_address() -> None:
    record = Record(raw_address="대전광역시 서구 (둔산동) 111")
    assert record.normalized_address == "대전서구둔산동111"

    record.raw_address = "충청남도 아산시 1"
    assert record.normalized_address == "충남아산시1"


def test_record_key_cannot_be_assigned() -> None:
    record = Record(raw_address="대전 서구 111")
    with pytest.raises(AttributeError):
        record.normalized_address = "elsewhere"  # type: ignore[misc]


def test_record_rejects_non_integer_prices() -> None:
    with pytest.raises(TypeError, match="price_regular"):
        Record(price_regular="1500")  # type: ignore[arg-type]
    with pytest.raises(TypeError, match="price_diesel"):
        Record(price_diesel=True)  # type: ignore[arg-type]


def test_record_normalizes_none_text_to_empty() -> None:
    record = Record(name=None)  # type: ignore[arg-type]
    assert record.name == ""
    assert record.self_service is None
    assert Record(self_service_label="Y").self_service is True


def test_header_map_value_handles_short_rows() -> None:
    header = HeaderMap(header_row=3, columns={"region": 1, "address": 5})
    row = ("x", "대전", "A")
    assert header.first_data_row == 4
    assert header.value(row, "region") == "대전"
    assert header.value(row, "address") is None
    assert header.value(row, "phone") is None
    assert header.last_column == 5


def test_change_record_dedupes_reasons_and_freezes_snapshots() -> None:
    change = ChangeRecord(
        kind=ChangeKind.UPDATED,
        key="대전서구111",
        reasons=("가격변동", "전화번호변경", "가격변동"),
        before={"price_regular": 1500},
        after={"price_regular": 1550},
    )
    assert change.reasons == ("가격변동", "전화번호변경")
    assert change.reason == "가격변동,전화번호변경"
    with pytest.raises(TypeError):
        change.before["price_regular"] = 0  # type: ignore[index]


def test_change_record_requires_a_reason() -> None:
    with pytest.raises(ValueError, match="reasons"):
        ChangeRecord(kind=ChangeKind.ADDED, key="k", reasons=())


def test_conflict_summary_counts_everything_but_keeps_bounded_samples() -> None:
    summary = ConflictSummary()
    for i in range(MAX_CONFLICT_SAMPLES + 5):
        summary.record(ConflictSample(address=f"addr {i}", kept_source="a.xls", dropped_source="b.xls"))
    assert summary.count == MAX_CONFLICT_SAMPLES + 5
    assert len(summary.samples) == MAX_CONFLICT_SAMPLES
    assert summary.to_dict()["samples"][0] == {
        "address": "addr 0",
        "kept_source": "a.xls",
        "dropped_source": "b.xls",
    }


def test_conflict_summary_rejects_negative_count() -> None:
    with pytest.raises(ValueError, match="count must be >= 0"):
        ConflictSummary(count=-1)


def test_reconcile_result_log_order() -> None:
    upd = ChangeRecord(kind=ChangeKind.UPDATED, key="a", reasons=("가격변동",))
    add = ChangeRecord(kind=ChangeKind.ADDED, key="b", reasons=("신규",))
    rem = ChangeRecord(kind=ChangeKind.REMOVED, key="c", reasons=("폐업",))
    result = ReconcileResult(table=_table(), changes=[upd], added=[add], removed=[rem])
    assert result.log_records == [upd, add, rem]
    assert result.added_count == 1
    assert result.removed_count == 1


def test_run_summary_to_dict_and_validation() -> None:
    summary = RunSummary(version="0.3.0", changed=2, added_stations=[{"region": "대전", "name": "B", "address": "x"}])
    payload = summary.to_dict()
    assert payload["tool"] == "fcupdater"
    assert payload["changed"] == 2
    assert payload["conflicts"] == {"count": 0, "samples": []}
    assert payload["added_stations"][0]["name"] == "B"

    with pytest.raises(TypeError, match="removed must be an integer"):
        RunSummary(removed="1")  # type: ignore[arg-type]
