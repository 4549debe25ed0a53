"""Data models shared across the package."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from numbers import Integral
from types import MappingProxyType
from typing import Any

from fcupdater.normalize import normalize, parse_self_service

PRICE_FIELDS: tuple[str, ...] = ("price_regular", "price_premium", "price_diesel")

MAX_CONFLICT_SAMPLES = 10


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_optional_price(value: Any, field_name: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer or None")
    return int(value)


def _to_text(value: Any, field_name: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    return value


# ── Stations ─────────────────────────────────────────────────────


@dataclass
class Record:
    """One fuel station row.

    ``normalized_address`` is derived from ``raw_address`` on every access,
    so the matching key can never drift from the address it came from.
    """

    region: str = ""
    name: str = ""
    brand: str = ""
    self_service_label: str = ""
    raw_address: str = ""
    phone: str = ""
    price_regular: int | None = None
    price_premium: int | None = None
    price_diesel: int | None = None
    row: int | None = None
    source_file: str = ""

    def __post_init__(self) -> None:
        for name in ("region", "name", "brand", "self_service_label", "raw_address", "phone"):
            setattr(self, name, _to_text(getattr(self, name), name))
        for name in PRICE_FIELDS:
            setattr(self, name, _to_optional_price(getattr(self, name), name))
        if self.row is not None:
            self.row = _to_non_negative_int(self.row, "row")

    @property
    def normalized_address(self) -> str:
        return normalize(self.raw_address)

    @property
    def self_service(self) -> bool | None:
        return parse_self_service(self.self_service_label)

    def prices(self) -> dict[str, int | None]:
        return {name: getattr(self, name) for name in PRICE_FIELDS}

    def display(self) -> dict[str, str]:
        return {"region": self.region, "name": self.name, "address": self.raw_address}


@dataclass(frozen=True)
class HeaderMap:
    """Columns discovered for one sheet.

    ``header_row`` is the 1-based sheet row; ``columns`` maps a field name
    to its 0-based column index.
    """

    header_row: int
    columns: Mapping[str, int]
    labels: Mapping[str, str] = field(default_factory=dict)

    @property
    def first_data_row(self) -> int:
        return self.header_row + 1

    def has(self, field_name: str) -> bool:
        return field_name in self.columns

    def column(self, field_name: str) -> int | None:
        return self.columns.get(field_name)

    def value(self, row: Sequence[Any], field_name: str) -> Any:
        idx = self.columns.get(field_name)
        if idx is None or idx >= len(row):
            return None
        return row[idx]

    @property
    def last_column(self) -> int:
        return max(self.columns.values(), default=0)


@dataclass
class WorkbookTable:
    sheet_name: str
    header: HeaderMap
    records: list[Record] = field(default_factory=list)

    @property
    def first_data_row(self) -> int:
        return self.header.first_data_row

    def __len__(self) -> int:
        return len(self.records)


# ── Reconciliation ───────────────────────────────────────────────


class ChangeKind(str, Enum):
    UPDATED = "updated"
    ADDED = "added"
    REMOVED = "removed"


@dataclass(frozen=True)
class ChangeRecord:
    """One reconciliation outcome, immutable once created.

    ``before``/``after`` only hold fields that differ, except for additions
    and removals where they carry the prices of the new or closed station.
    """

    kind: ChangeKind
    key: str
    reasons: tuple[str, ...]
    before: Mapping[str, Any] = field(default_factory=dict)
    after: Mapping[str, Any] = field(default_factory=dict)
    region: str = ""
    name: str = ""
    address: str = ""

    def __post_init__(self) -> None:
        deduped = tuple(dict.fromkeys(self.reasons))
        if not deduped:
            raise ValueError("reasons must not be empty")
        object.__setattr__(self, "reasons", deduped)
        object.__setattr__(self, "before", MappingProxyType(dict(self.before)))
        object.__setattr__(self, "after", MappingProxyType(dict(self.after)))

    @property
    def reason(self) -> str:
        return ",".join(self.reasons)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "key": self.key,
            "reason": self.reason,
            "region": self.region,
            "name": self.name,
            "address": self.address,
            "before": dict(self.before),
            "after": dict(self.after),
        }


@dataclass(frozen=True)
class ConflictSample:
    address: str
    kept_source: str
    dropped_source: str


@dataclass
class ConflictSummary:
    """Duplicate source addresses: a count plus a bounded list of examples."""

    count: int = 0
    samples: list[ConflictSample] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.count = _to_non_negative_int(self.count, "count")
        if len(self.samples) > MAX_CONFLICT_SAMPLES:
            raise ValueError(f"samples must hold at most {MAX_CONFLICT_SAMPLES} entries")

    def record(self, sample: ConflictSample) -> None:
        self.count += 1
        if len(self.samples) < MAX_CONFLICT_SAMPLES:
            self.samples.append(sample)

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "samples": [
                {
                    "address": s.address,
                    "kept_source": s.kept_source,
                    "dropped_source": s.dropped_source,
                }
                for s in self.samples
            ],
        }


@dataclass
class SourceFileSet:
    paths: list[str] = field(default_factory=list)
    records: list[Record] = field(default_factory=list)
    conflicts: ConflictSummary = field(default_factory=ConflictSummary)


@dataclass
class ReconcileResult:
    table: WorkbookTable
    changes: list[ChangeRecord] = field(default_factory=list)
    added: list[ChangeRecord] = field(default_factory=list)
    removed: list[ChangeRecord] = field(default_factory=list)
    conflicts: ConflictSummary = field(default_factory=ConflictSummary)

    @property
    def added_count(self) -> int:
        return len(self.added)

    @property
    def removed_count(self) -> int:
        return len(self.removed)

    @property
    def log_records(self) -> list[ChangeRecord]:
        """Change-log order: updates, then additions, then removals."""
        return [*self.changes, *self.added, *self.removed]


# ── Run summary ──────────────────────────────────────────────────


@dataclass
class RunSummary:
    """What one run did, for the console and the optional JSON artifact."""

    tool: str = "fcupdater"
    version: str = ""
    master_path: str = ""
    master_sha256: str = ""
    sources_dir: str = ""
    sources_prefix: str = ""
    source_files: list[str] = field(default_factory=list)
    master_rows: int = 0
    source_rows: int = 0
    updated_rows: int = 0
    changed: int = 0
    added: int = 0
    removed: int = 0
    conflicts: ConflictSummary = field(default_factory=ConflictSummary)
    output_path: str = ""
    backup_path: str = ""
    save_mode: str = ""
    verified: bool = False
    change_log_rows: int = 0
    added_stations: list[dict[str, str]] = field(default_factory=list)
    removed_stations: list[dict[str, str]] = field(default_factory=list)

    def __post_init__(self) -> None:
        for name in (
            "master_rows", "source_rows", "updated_rows",
            "changed", "added", "removed", "change_log_rows",
        ):
            setattr(self, name, _to_non_negative_int(getattr(self, name), name))

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "master_path": self.master_path,
            "master_sha256": self.master_sha256,
            "sources_dir": self.sources_dir,
            "sources_prefix": self.sources_prefix,
            "source_files": list(self.source_files),
            "master_rows": self.master_rows,
            "source_rows": self.source_rows,
            "updated_rows": self.updated_rows,
            "changed": self.changed,
            "added": self.added,
            "removed": self.removed,
            "conflicts": self.conflicts.to_dict(),
            "output_path": self.output_path,
            "backup_path": self.backup_path,
            "save_mode": self.save_mode,
            "verified": self.verified,
            "change_log_rows": self.change_log_rows,
            "added_stations": [dict(s) for s in self.added_stations],
            "removed_stations": [dict(s) for s in self.removed_stations],
        }
