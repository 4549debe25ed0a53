from __future__ import annotations

from fcupdater.headers import (
    CHANGE_LOG_VOCABULARY,
    STATION_VOCABULARY,
    find_header,
)


def test_finds_first_qualifying_row_with_one_based_index() -> None:
    rows = [
        ("지역별 주유소 가격",),
        (),
        ("지 역", "상호", "주소", "상표", "전화번호", "셀프여부", "고급휘발유", "휘발유", "경유"),
        ("대전", "A", "대전 서구 111"),
    ]
    header = find_header(rows, STATION_VOCABULARY, scan_limit=10)
    assert header is not None
    assert header.header_row == 3
    assert header.first_data_row == 4
    assert header.columns["region"] == 0
    assert header.columns["price_premium"] == 6
    assert header.columns["price_regular"] == 7
    assert header.labels["phone"] == "전화번호"


def test_alternate_labels_are_accepted() -> None:
    rows = [("지역", "상호", "셀프", "주소", "전화", "보통휘발유", "고급유", "경유")]
    header = find_header(rows, STATION_VOCABULARY, scan_limit=1)
    assert header is not None
    assert header.columns["self_service"] == 2
    assert header.columns["phone"] == 4
    assert header.columns["price_regular"] == 5
    assert header.columns["price_premium"] == 6


def test_missing_required_label_disqualifies_row() -> None:
    rows = [("지역", "상호", "상표"), ("지역", "주소")]
    assert find_header(rows, STATION_VOCABULARY, scan_limit=5) is None


def test_scan_limit_is_respected() -> None:
    rows = [(), (), ("지역", "상호", "주소")]
    assert find_header(rows, STATION_VOCABULARY, scan_limit=2) is None
    assert find_header(rows, STATION_VOCABULARY, scan_limit=3) is not None


def test_first_occurrence_of_a_label_wins() -> None:
    rows = [("지역", "상호", "주소", "주소")]
    header = find_header(rows, STATION_VOCABULARY, scan_limit=1)
    assert header is not None
    assert header.columns["address"] == 2


def test_change_log_vocabulary_variants() -> None:
    rows = [
        (
            "지역", "상호", "주소", "변경사유",
            "휘발유이전", "휘발유신규", "휘발유증감",
            "고급유(이전)", "고급유(신규)", "고급유 △",
            "경유(이전)", "경유(신규)",
        )
    ]
    header = find_header(rows, CHANGE_LOG_VOCABULARY, scan_limit=1)
    assert header is not None
    assert header.columns["reason"] == 3
    assert header.columns["old_regular"] == 4
    assert header.columns["delta_regular"] == 6
    assert header.columns["delta_premium"] == 9
    assert "delta_diesel" not in header.columns


def test_max_cols_limits_the_scan() -> None:
    rows = [("지역", "상호", "주소", "변경내용")]
    assert find_header(rows, CHANGE_LOG_VOCABULARY, scan_limit=1, max_cols=3) is None
    assert find_header(rows, CHANGE_LOG_VOCABULARY, scan_limit=1, max_cols=4) is not None
