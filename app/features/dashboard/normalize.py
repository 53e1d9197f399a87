"""Ingestion normalization for raw source rows.

Source rows arrive as loose mappings straight from the backend. This module
turns them into ``RawRecord`` instances before any aggregation happens.

Lenient mode (default) is lossy by design: null, missing, non-numeric and
negative numeric fields contribute zero, and rows without a month or store
id are skipped. Strict mode raises ``MalformedRecordError`` instead.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from app.core.exceptions import MalformedRecordError
from app.core.logging import get_logger
from app.features.dashboard.schemas import RawRecord, StoreDirectoryEntry

logger = get_logger(__name__)

# Source column names
MONTH_COLUMN = "application_month"
STORE_ID_COLUMN = "dealer_code"
STORE_NAME_COLUMN = "submerchant"
INCOMING_COLUMN = "net_incoming"
APPROVED_COLUMN = "approved"
TRX_COLUMN = "trx_settled"
GMV_COLUMN = "gmv"

RECORD_COLUMNS = (
    MONTH_COLUMN,
    STORE_ID_COLUMN,
    INCOMING_COLUMN,
    APPROVED_COLUMN,
    TRX_COLUMN,
    GMV_COLUMN,
)
DIRECTORY_COLUMNS = (STORE_ID_COLUMN, STORE_NAME_COLUMN)

_MONTH_PREFIX = re.compile(r"^(\d{4})-(\d{2})")

# Largest accepted magnitude is below 1e19; anything bigger is a broken cell
MAX_ADJUSTED_EXPONENT = 18


class _Unparseable(ValueError):
    """Internal marker for a value that cannot be read as a number."""


def _to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, bool):
        raise _Unparseable(f"boolean {value!r} is not a number")
    if isinstance(value, float) and not math.isfinite(value):
        raise _Unparseable(f"non-finite number {value!r}")
    if isinstance(value, int) and value.bit_length() > 64:
        raise _Unparseable("integer out of range")
    try:
        parsed = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise _Unparseable(f"{value!r} is not a number") from e
    if not parsed.is_finite():
        raise _Unparseable(f"non-finite number {value!r}")
    if parsed and parsed.adjusted() > MAX_ADJUSTED_EXPONENT:
        raise _Unparseable(f"{value!r} is out of range")
    return parsed


def parse_month_key(value: Any) -> str | None:
    """Reduce a date-like source value to its ``YYYY-MM`` key.

    Args:
        value: Date string (``2025-01-15``, ``2025-01``), date or datetime.

    Returns:
        The month key, or None when the value has no valid year-month prefix.
    """
    if value is None:
        return None
    match = _MONTH_PREFIX.match(str(value).strip())
    if match is None:
        return None
    year, month = match.groups()
    if not 1 <= int(month) <= 12:
        return None
    return f"{year}-{month}"


def _numeric_field(
    row: Mapping[str, Any],
    column: str,
    *,
    strict: bool,
    integral: bool,
) -> Decimal:
    raw = row.get(column)
    try:
        value = _to_decimal(raw)
        if value < 0:
            raise _Unparseable(f"negative value {raw!r}")
        if integral and value != value.to_integral_value():
            raise _Unparseable(f"{raw!r} is not a whole number")
    except _Unparseable as e:
        if strict:
            raise MalformedRecordError(
                f"Column '{column}' is malformed: {e}",
                details={"column": column, "value": repr(raw)},
            ) from e
        logger.debug("dashboard.field_coerced", column=column, value=repr(raw), reason=str(e))
        return Decimal("0")
    return value


def normalize_row(row: Mapping[str, Any], *, strict: bool = False) -> RawRecord | None:
    """Normalize one source row into a RawRecord.

    Args:
        row: Mapping of source column name to value.
        strict: Raise on malformed fields instead of coercing them to zero.

    Returns:
        The normalized record, or None when a lenient row lacks a month or store id.

    Raises:
        MalformedRecordError: In strict mode, if any field is malformed.
    """
    month = parse_month_key(row.get(MONTH_COLUMN))
    store_id = row.get(STORE_ID_COLUMN)
    store_id = str(store_id).strip() if store_id is not None else ""

    if month is None or not store_id:
        if strict:
            raise MalformedRecordError(
                "Row is missing a valid month or store id",
                details={"month": repr(row.get(MONTH_COLUMN)), "store_id": store_id},
            )
        logger.warning(
            "dashboard.record_skipped",
            month=repr(row.get(MONTH_COLUMN)),
            store_id=store_id or None,
        )
        return None

    incoming = _numeric_field(row, INCOMING_COLUMN, strict=strict, integral=True)
    approved = _numeric_field(row, APPROVED_COLUMN, strict=strict, integral=True)
    trx = _numeric_field(row, TRX_COLUMN, strict=strict, integral=True)
    gmv = _numeric_field(row, GMV_COLUMN, strict=strict, integral=False)

    raw_name = row.get(STORE_NAME_COLUMN)
    name = str(raw_name).strip() if raw_name is not None else ""
    return RawRecord(
        month=month,
        store_id=store_id,
        store_name=name or None,
        incoming=int(incoming),
        approved=int(approved),
        settled_transactions=int(trx),
        gmv=gmv,
    )


def normalize_rows(
    rows: Iterable[Mapping[str, Any]],
    *,
    strict: bool = False,
) -> list[RawRecord]:
    """Normalize a batch of source rows, dropping unusable lenient rows.

    Args:
        rows: Source rows.
        strict: Raise on the first malformed row.

    Returns:
        Normalized records in source order.
    """
    records: list[RawRecord] = []
    for row in rows:
        record = normalize_row(row, strict=strict)
        if record is not None:
            records.append(record)
    return records


def normalize_directory(rows: Iterable[Mapping[str, Any]]) -> list[StoreDirectoryEntry]:
    """Reduce directory rows to distinct stores ordered by store id.

    The first name seen for a store id wins; an empty name falls back to
    the store id.

    Args:
        rows: Rows carrying ``dealer_code`` and ``submerchant``.

    Returns:
        Distinct directory entries sorted by store id.
    """
    entries: dict[str, StoreDirectoryEntry] = {}
    for row in rows:
        raw_id = row.get(STORE_ID_COLUMN)
        store_id = str(raw_id).strip() if raw_id is not None else ""
        if not store_id or store_id in entries:
            continue
        raw_name = row.get(STORE_NAME_COLUMN)
        name = str(raw_name).strip() if raw_name is not None else ""
        entries[store_id] = StoreDirectoryEntry(store_id=store_id, store_name=name or store_id)
    return [entries[key] for key in sorted(entries)]
