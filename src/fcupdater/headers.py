"""Header-row discovery.

Headers are located at runtime by scanning the leading rows of a sheet for
a row that carries every required label of a vocabulary. Labels compare
with all whitespace removed, so ``"상 호"`` matches ``"상호"``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from fcupdater.models import HeaderMap
from fcupdater.normalize import canon_header


@dataclass(frozen=True)
class Vocabulary:
    """Accepted labels per field, in preference order."""

    name: str
    fields: Mapping[str, tuple[str, ...]]
    required: tuple[str, ...]

    def match(self, cells: Sequence[Any], max_cols: int | None = None) -> HeaderMap | None:
        """Return column positions if *cells* hold every required label."""
        positions: dict[str, int] = {}
        for idx, cell in enumerate(cells):
            if max_cols is not None and idx >= max_cols:
                break
            label = canon_header(cell)
            if label:
                positions.setdefault(label, idx)

        columns: dict[str, int] = {}
        labels: dict[str, str] = {}
        for field_name, accepted in self.fields.items():
            for label in accepted:
                if label in positions:
                    columns[field_name] = positions[label]
                    labels[field_name] = label
                    break
        if any(f not in columns for f in self.required):
            return None
        return HeaderMap(header_row=0, columns=columns, labels=labels)


STATION_VOCABULARY = Vocabulary(
    name="station",
    fields={
        "region": ("지역",),
        "name": ("상호",),
        "brand": ("상표",),
        "self_service": ("셀프여부", "셀프"),
        "address": ("주소",),
        "phone": ("전화번호", "전화"),
        "price_regular": ("휘발유", "보통휘발유"),
        "price_premium": ("고급휘발유", "고급유"),
        "price_diesel": ("경유",),
    },
    required=("region", "name", "address"),
)

_REASON_LABELS = ("변경내용", "변경내역", "변경사유")


def _price_labels(fuel: str, stage: str) -> tuple[str, ...]:
    return (f"{fuel}({stage})", f"{fuel}{stage}")


def _delta_labels(fuel: str) -> tuple[str, ...]:
    return tuple(f"{fuel}{suffix}" for suffix in ("Δ", "△", "증감", "차이"))


CHANGE_LOG_PRICE_FIELDS: dict[str, tuple[str, str]] = {
    "price_regular": ("old_regular", "new_regular"),
    "price_premium": ("old_premium", "new_premium"),
    "price_diesel": ("old_diesel", "new_diesel"),
}

CHANGE_LOG_DELTA_FIELDS: dict[str, str] = {
    "price_regular": "delta_regular",
    "price_premium": "delta_premium",
    "price_diesel": "delta_diesel",
}

_FUEL_LABELS = {"price_regular": "휘발유", "price_premium": "고급유", "price_diesel": "경유"}


def _change_log_fields() -> dict[str, tuple[str, ...]]:
    fields: dict[str, tuple[str, ...]] = {
        "region": ("지역",),
        "name": ("상호",),
        "address": ("주소",),
        "reason": _REASON_LABELS,
        "date": ("일자", "변경일자", "현행화일자"),
    }
    for price_field, (old_key, new_key) in CHANGE_LOG_PRICE_FIELDS.items():
        fuel = _FUEL_LABELS[price_field]
        fields[old_key] = _price_labels(fuel, "이전")
        fields[new_key] = _price_labels(fuel, "신규")
        fields[CHANGE_LOG_DELTA_FIELDS[price_field]] = _delta_labels(fuel)
    return fields


CHANGE_LOG_VOCABULARY = Vocabulary(
    name="change-log",
    fields=_change_log_fields(),
    required=("region", "name", "address", "reason"),
)

# Required once a change-log header row has been found.
CHANGE_LOG_PRICE_COLUMNS: tuple[str, ...] = tuple(
    key for pair in CHANGE_LOG_PRICE_FIELDS.values() for key in pair
)


def find_header(
    rows: Iterable[Sequence[Any]],
    vocabulary: Vocabulary,
    scan_limit: int,
    *,
    max_cols: int | None = None,
) -> HeaderMap | None:
    """Scan the first *scan_limit* rows and return the first qualifying header.

    Row numbers in the returned map are 1-based.
    """
    for row_number, cells in enumerate(rows, start=1):
        if row_number > scan_limit:
            break
        found = vocabulary.match(cells, max_cols=max_cols)
        if found is not None:
            return HeaderMap(header_row=row_number, columns=found.columns, labels=found.labels)
    return None


def display_label(vocabulary: Vocabulary, field_name: str) -> str:
    return vocabulary.fields[field_name][0]
