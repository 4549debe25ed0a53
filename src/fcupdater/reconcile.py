"""Match master stations to source stations and classify the differences."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any

from fcupdater.models import (
    PRICE_FIELDS,
    ChangeKind,
    ChangeRecord,
    ReconcileResult,
    Record,
    SourceFileSet,
    WorkbookTable,
)
from fcupdater.normalize import canon_header, collapse_whitespace, normalize_phone
from fcupdater.sources import index_records

logger = logging.getLogger(__name__)

REASON_PRICE = "가격변동"
REASON_NAME = "상호변경"
REASON_BRAND = "상표변경"
REASON_SELF = "셀프여부변경"
REASON_ADDRESS = "주소변경"
REASON_PHONE = "전화번호변경"
REASON_ADDED = "신규"
REASON_REMOVED = "폐업"


@dataclass(frozen=True)
class Lookup:
    """Outcome of a key lookup; a miss is a value, not an exception."""

    found: bool
    record: Record | None = None


_MISS = Lookup(found=False)


class SourceIndex:
    def __init__(self, sources: SourceFileSet) -> None:
        self._ordered, self.conflicts = index_records(sources.records)
        self._by_key = {key: record for key, record in self._ordered if key}

    def lookup(self, key: str) -> Lookup:
        if not key:
            return _MISS
        record = self._by_key.get(key)
        return Lookup(found=True, record=record) if record is not None else _MISS

    def unconsumed(self, consumed: set[str]) -> list[Record]:
        return [rec for key, rec in self._ordered if not key or key not in consumed]


# ── Field comparison ─────────────────────────────────────────────


def _same_trimmed(a: str, b: str) -> bool:
    return a.strip() == b.strip()


def _same_self_service(a: Record, b: Record) -> bool:
    left, right = a.self_service, b.self_service
    if left is not None and right is not None:
        return left == right
    return canon_header(a.self_service_label) == canon_header(b.self_service_label)


def _same_phone(a: str, b: str) -> bool:
    da, db = normalize_phone(a), normalize_phone(b)
    if da or db:
        return da == db
    return a.strip() == b.strip()


def diff_records(
    master: Record, source: Record
) -> tuple[list[str], dict[str, Any], dict[str, Any]]:
    """Compare two stations in reason-detection order.

    Returns the reasons plus before/after values of the changed fields.
    """
    reasons: list[str] = []
    before: dict[str, Any] = {}
    after: dict[str, Any] = {}

    def changed(field_name: str, old: Any, new: Any) -> None:
        before[field_name] = old
        after[field_name] = new

    for name in PRICE_FIELDS:
        old, new = getattr(master, name), getattr(source, name)
        if old != new:
            changed(name, old, new)
    if before:
        reasons.append(REASON_PRICE)
    if not _same_trimmed(master.name, source.name):
        changed("name", master.name, source.name)
        reasons.append(REASON_NAME)
    if not _same_trimmed(master.brand, source.brand):
        changed("brand", master.brand, source.brand)
        reasons.append(REASON_BRAND)
    if not _same_self_service(master, source):
        changed("self_service", master.self_service_label, source.self_service_label)
        reasons.append(REASON_SELF)
    if collapse_whitespace(master.raw_address) != collapse_whitespace(source.raw_address):
        changed("address", master.raw_address, source.raw_address)
        reasons.append(REASON_ADDRESS)
    if not _same_phone(master.phone, source.phone):
        changed("phone", master.phone, source.phone)
        reasons.append(REASON_PHONE)
    return reasons, before, after


def _take_source_values(master: Record, source: Record) -> Record:
    return dataclasses.replace(
        master,
        region=master.region or source.region,
        name=source.name,
        brand=source.brand,
        self_service_label=source.self_service_label,
        raw_address=source.raw_address,
        phone=source.phone,
        price_regular=source.price_regular,
        price_premium=source.price_premium,
        price_diesel=source.price_diesel,
        source_file=source.source_file,
    )


def _present_prices(record: Record) -> dict[str, int]:
    return {k: v for k, v in record.prices().items() if v is not None}


# ── Reconciliation ───────────────────────────────────────────────


def reconcile(master: WorkbookTable, sources: SourceFileSet) -> ReconcileResult:
    """Reconcile *master* against *sources* without touching either.

    Matched rows keep their master position and take the source values;
    unmatched master rows are removed as ``폐업``; unmatched source rows are
    appended as ``신규`` in encounter order.
    """
    index = SourceIndex(sources)
    consumed: set[str] = set()
    kept: list[Record] = []
    changes: list[ChangeRecord] = []
    removed: list[ChangeRecord] = []

    for record in master.records:
        key = record.normalized_address
        hit = index.lookup(key)
        if not hit.found or hit.record is None:
            removed.append(
                ChangeRecord(
                    kind=ChangeKind.REMOVED,
                    key=key,
                    reasons=(REASON_REMOVED,),
                    before=_present_prices(record),
                    **record.display(),
                )
            )
            continue

        consumed.add(key)
        source = hit.record
        reasons, before, after = diff_records(record, source)
        updated = _take_source_values(record, source)
        kept.append(updated)
        if reasons:
            changes.append(
                ChangeRecord(
                    kind=ChangeKind.UPDATED,
                    key=key,
                    reasons=tuple(reasons),
                    before=before,
                    after=after,
                    **updated.display(),
                )
            )

    added: list[ChangeRecord] = []
    for source in index.unconsumed(consumed):
        new_record = dataclasses.replace(source, row=None)
        kept.append(new_record)
        added.append(
            ChangeRecord(
                kind=ChangeKind.ADDED,
                key=new_record.normalized_address,
                reasons=(REASON_ADDED,),
                after=_present_prices(new_record),
                **new_record.display(),
            )
        )

    logger.info(
        "Reconciled: %d changed, %d added, %d removed, %d conflicts",
        len(changes), len(added), len(removed), index.conflicts.count,
    )
    table = WorkbookTable(sheet_name=master.sheet_name, header=master.header, records=kept)
    return ReconcileResult(
        table=table,
        changes=changes,
        added=added,
        removed=removed,
        conflicts=index.conflicts,
    )
