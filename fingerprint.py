#!/usr/bin/env python3
"""
Fingerprint Engine
Deterministic content hash over the significant fields of a case snapshot.
This is the only hash implementation; the scheduler, the store and the
admin API all go through fingerprint().
"""

import hashlib
import json
from dataclasses import asdict, is_dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

FINGERPRINT_VERSION = 2

SIGNIFICANT_FIELDS = (
    "case_status",
    "next_hearing_date",
    "stage_of_case",
    "coram",
    "ia_applications",
    "listing_history",
)

DATE_FIELDS = ("next_hearing_date",)
STRING_FIELDS = ("case_status", "stage_of_case", "coram")
SORTED_LIST_FIELDS = ("ia_applications",)  # Order does not matter
HISTORY_FIELDS = ("listing_history",)  # Only the most recent entries count
HISTORY_WINDOW = 5

# Date keys inside listing-history and IA rows
ROW_DATE_FIELDS = ("listing_date", "filing_date", "next_date", "disposal_date")

_DATE_FORMATS = ("%d-%m-%Y", "%d/%m/%Y", "%d.%m.%Y", "%Y-%m-%d", "%d-%m-%Y %H:%M:%S")


def field_value(record: Any, name: str) -> Any:
    """Read a field from a CaseSnapshot or from a plain mapping"""
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def normalize_date(value: Any) -> Optional[datetime]:
    """
    Normalize a date-like value to an aware UTC datetime

    Args:
        value: date, datetime, ISO string or dd-mm-yyyy style string

    Returns:
        datetime in UTC, or None when the value is empty or unparseable
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        parsed = None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            for fmt in _DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
        if parsed is None:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_string(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def _canonical_scalar(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return normalize_date(value).isoformat()
    if isinstance(value, str):
        return value.strip().lower()
    return value


def _canonical_row_value(key: str, value: Any) -> Any:
    if key in ROW_DATE_FIELDS:
        parsed = normalize_date(value)
        return parsed.isoformat() if parsed else ""
    return _canonical_scalar(value)


def canonical_element(element: Any) -> str:
    """Serialize one list element to a canonical string"""
    if is_dataclass(element):
        element = asdict(element)
    if isinstance(element, Mapping):
        normalized = {k: _canonical_row_value(k, v) for k, v in element.items()}
        return json.dumps(normalized, sort_keys=True, default=str)
    return str(_canonical_scalar(element))


def canonical_list(name: str, value: Any) -> List[str]:
    items = [canonical_element(item) for item in (value or [])]
    if name in HISTORY_FIELDS:
        return items[-HISTORY_WINDOW:]
    return sorted(items)


def normalize_significant_fields(snapshot: Any) -> Dict[str, Any]:
    """Build the normalized view of the significant fields that gets hashed"""
    normalized = {}
    for name in SIGNIFICANT_FIELDS:
        value = field_value(snapshot, name)
        if name in DATE_FIELDS:
            parsed = normalize_date(value)
            normalized[name] = parsed.isoformat() if parsed else ""
        elif name in STRING_FIELDS:
            normalized[name] = normalize_string(value)
        else:
            normalized[name] = canonical_list(name, value)
    return normalized


def fingerprint(snapshot: Any) -> str:
    """
    Compute the fingerprint of a case snapshot

    Absent fields normalize to empty values, so this never raises for
    partial records.

    Returns:
        32 character hex digest
    """
    normalized = normalize_significant_fields(snapshot or {})
    normalized["_version"] = FINGERPRINT_VERSION
    data_string = json.dumps(normalized, sort_keys=True, ensure_ascii=False)
    return hashlib.md5(data_string.encode("utf-8")).hexdigest()
