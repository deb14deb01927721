#!/usr/bin/env python3
"""
Change Detector
Compares a persisted case snapshot with a freshly fetched one and
builds a prioritized ChangeSet
"""

import logging
from typing import Any, Mapping, Optional

from errors import InvalidInputError
from fingerprint import (
    SIGNIFICANT_FIELDS,
    DATE_FIELDS,
    STRING_FIELDS,
    field_value,
    normalize_date,
    normalize_string,
)
from models import CaseSnapshot, ChangeRecord, ChangeSet

logger = logging.getLogger(__name__)

CRITICAL_FIELDS = ("case_status", "next_hearing_date", "stage_of_case")
LIST_FIELDS = ("ia_applications", "listing_history")

FIELD_LABELS = {
    "case_status": "Case status",
    "next_hearing_date": "Next hearing date",
    "stage_of_case": "Stage of case",
    "coram": "Coram",
    "ia_applications": "IA applications",
    "listing_history": "listing history",
}

CRITICAL_PREFIX = "🔴"
OTHER_PREFIX = "🔵"


class ChangeDetector:
    """
    Field-by-field comparison over the significant fields

    Dates compare by timestamp, strings compare trimmed and case-insensitive,
    lists only register a change when they grow.
    """

    def __init__(self, significant_fields=SIGNIFICANT_FIELDS, critical_fields=CRITICAL_FIELDS):
        self.significant_fields = tuple(significant_fields)
        self.critical_fields = tuple(critical_fields)

    @staticmethod
    def validate_input(old_data: Any, new_data: Any) -> None:
        for label, record in (("old", old_data), ("new", new_data)):
            if record is None:
                raise InvalidInputError(f"Missing {label} snapshot")
            if not isinstance(record, (CaseSnapshot, Mapping)):
                raise InvalidInputError(
                    f"{label} snapshot must be a CaseSnapshot or mapping, got {type(record).__name__}"
                )

    def detect_changes(self, old_data: Any, new_data: Any) -> ChangeSet:
        """
        Detect changes between old and new case data

        Args:
            old_data: Persisted snapshot (CaseSnapshot or mapping)
            new_data: Freshly fetched snapshot

        Returns:
            ChangeSet describing every changed significant field

        Raises:
            InvalidInputError: when either side is not a record
        """
        try:
            self.validate_input(old_data, new_data)
        except InvalidInputError as e:
            logger.warning(f"⚠️ Invalid input for change detection: {e}")
            raise

        changes = ChangeSet()

        for name in self.significant_fields:
            record = self.compare_field(name, field_value(old_data, name), field_value(new_data, name))
            if record is None:
                continue

            changes.has_changes = True
            changes.changed_fields.append(name)
            changes.detailed_changes[name] = record

            if name in self.critical_fields:
                changes.has_critical_changes = True
                changes.critical_changes.append(name)

        changes.notification_priority = self.determine_priority(changes)
        changes.changes_summary = self.generate_summary(changes)

        cino = field_value(new_data, "cino") or field_value(old_data, "cino")
        logger.debug(f"Change detection for {cino}: {changes.changed_fields or 'no changes'}")
        return changes

    def compare_field(self, name: str, old_value: Any, new_value: Any) -> Optional[ChangeRecord]:
        """Return a ChangeRecord when the field changed, otherwise None"""
        label = FIELD_LABELS.get(name, name)

        if name in DATE_FIELDS or name.endswith("_date"):
            if not self.compare_dates(old_value, new_value):
                return None
            return ChangeRecord(
                field=name,
                change_type="date",
                old_value=old_value,
                new_value=new_value,
                description=f"{label} changed from {format_date(old_value)} to {format_date(new_value)}",
            )

        if name in LIST_FIELDS:
            if not self.compare_lists(old_value, new_value):
                return None
            return ChangeRecord(
                field=name,
                change_type="array",
                old_value=list(old_value or []),
                new_value=list(new_value or []),
                description=f"New entries added to {label}",
            )

        if not self.compare_strings(old_value, new_value):
            return None

        if name in STRING_FIELDS:
            return ChangeRecord(
                field=name,
                change_type="status",
                old_value=old_value,
                new_value=new_value,
                description=f"{label} changed from {format_text(old_value)} to {format_text(new_value)}",
            )

        return ChangeRecord(
            field=name,
            change_type="general",
            old_value=old_value,
            new_value=new_value,
            description=f"{label} has been updated",
        )

    @staticmethod
    def compare_dates(old_date: Any, new_date: Any) -> bool:
        old = normalize_date(old_date)
        new = normalize_date(new_date)
        if old is None and new is None:
            return False
        if old is None or new is None:
            return True
        return old != new

    @staticmethod
    def compare_strings(old_str: Any, new_str: Any) -> bool:
        return normalize_string(old_str) != normalize_string(new_str)

    @staticmethod
    def compare_lists(old_list: Any, new_list: Any) -> bool:
        # Append-only histories: shrinking or reordering is noise.
        # TODO: in-place edits to existing rows (amended order dates) are not detected
        old_list = old_list if isinstance(old_list, (list, tuple)) else []
        new_list = new_list if isinstance(new_list, (list, tuple)) else []
        return len(new_list) > len(old_list)

    @staticmethod
    def determine_priority(changes: ChangeSet) -> str:
        if not changes.has_changes:
            return "none"
        if "next_hearing_date" in changes.critical_changes:
            return "urgent"
        if changes.has_critical_changes:
            return "high"
        if "listing_history" in changes.changed_fields:
            return "medium"
        return "low"

    @staticmethod
    def generate_summary(changes: ChangeSet) -> str:
        if not changes.has_changes:
            return "No changes detected"

        parts = []
        for name in changes.critical_changes:
            parts.append(f"{CRITICAL_PREFIX} {changes.detailed_changes[name].description}")

        for name in changes.changed_fields:
            if name not in changes.critical_changes:
                parts.append(f"{OTHER_PREFIX} {changes.detailed_changes[name].description}")

        return "\n".join(parts)


def format_date(value: Any) -> str:
    parsed = normalize_date(value)
    if parsed is None:
        return "Not set"
    return parsed.strftime("%d/%m/%Y")


def format_text(value: Any) -> str:
    text = "" if value is None else str(value).strip()
    return f'"{text}"' if text else "Not set"


_default_detector = ChangeDetector()


def detect_changes(old_data: Any, new_data: Any) -> ChangeSet:
    return _default_detector.detect_changes(old_data, new_data)
