#!/usr/bin/env python3
"""
Data models and type definitions
"""

from dataclasses import dataclass, field, fields, asdict
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _serialize(value: Any) -> Any:
    """Convert dates to ISO strings recursively so documents are JSON safe"""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    return value


def _known_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


# === Case Snapshot ===

@dataclass(frozen=True)
class ListingEntry:
    """One row of a case's listing history"""
    cause_list_type: str = ""
    justice: str = ""
    bench_id: Optional[str] = None
    listing_date: Any = None
    short_order: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ListingEntry":
        return cls(**_known_fields(cls, data))


@dataclass(frozen=True)
class IAApplication:
    """Interlocutory application filed in a case"""
    application_number: str = ""
    classification: str = ""
    party: str = ""
    applied_by: str = ""
    filing_date: Any = None
    next_date: Any = None
    disposal_date: Any = None
    status: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IAApplication":
        return cls(**_known_fields(cls, data))


@dataclass(frozen=True)
class CaseSnapshot:
    """
    Point-in-time view of a case as returned by the case source.

    Date fields hold whatever the source produced (date, datetime or string);
    comparison code normalizes them.
    """
    cino: str
    case_status: str = ""
    next_hearing_date: Any = None
    first_hearing_date: Any = None
    stage_of_case: str = ""
    coram: str = ""
    ia_applications: List[IAApplication] = field(default_factory=list)
    listing_history: List[ListingEntry] = field(default_factory=list)

    # Display-only details
    cnr: str = ""
    case_title: str = ""
    filing_number: str = ""
    filing_date: Any = None
    registration_date: Any = None
    bench_type: str = ""
    state: str = ""
    district: str = ""
    petitioners: List[str] = field(default_factory=list)
    respondents: List[str] = field(default_factory=list)
    raw_response: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CaseSnapshot":
        values = _known_fields(cls, data)
        values["ia_applications"] = [
            ia if isinstance(ia, IAApplication) else IAApplication.from_dict(ia)
            for ia in (data.get("ia_applications") or [])
        ]
        values["listing_history"] = [
            entry if isinstance(entry, ListingEntry) else ListingEntry.from_dict(entry)
            for entry in (data.get("listing_history") or [])
        ]
        values["petitioners"] = list(data.get("petitioners") or [])
        values["respondents"] = list(data.get("respondents") or [])
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))


# === Change Detection ===

@dataclass(frozen=True)
class ChangeRecord:
    """One field-level difference between two snapshots"""
    field: str
    change_type: str  # date | status | array | general
    old_value: Any
    new_value: Any
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))


@dataclass
class ChangeSet:
    has_changes: bool = False
    has_critical_changes: bool = False
    changed_fields: List[str] = field(default_factory=list)
    critical_changes: List[str] = field(default_factory=list)
    detailed_changes: Dict[str, ChangeRecord] = field(default_factory=dict)
    notification_priority: str = "none"
    changes_summary: str = ""

    def requires_attention(self) -> bool:
        return self.notification_priority in ("urgent", "high")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_changes": self.has_changes,
            "has_critical_changes": self.has_critical_changes,
            "changed_fields": list(self.changed_fields),
            "critical_changes": list(self.critical_changes),
            "detailed_changes": {k: v.to_dict() for k, v in self.detailed_changes.items()},
            "notification_priority": self.notification_priority,
            "changes_summary": self.changes_summary,
        }


@dataclass
class CaseChange:
    """A changed case as emitted by the scheduler"""
    cino: str
    changes: ChangeSet
    snapshot: CaseSnapshot
    fingerprint: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cino": self.cino,
            "changes": self.changes.to_dict(),
            "fingerprint": self.fingerprint,
        }


# === Subscribers ===

DEFAULT_NOTIFICATION_SETTINGS = {
    "status_change": True,
    "hearing_date": True,
    "order_update": True,
    "listing_update": False,
    "ia_update": False,
}


@dataclass
class User:
    id: str
    name: str
    mobile_number: str
    email: str = ""
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(**_known_fields(cls, data))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Subscription:
    id: str
    user_id: str
    cino: str
    is_active: bool = True
    priority: str = "medium"
    alias: str = ""
    notes: str = ""
    notification_settings: Dict[str, bool] = field(
        default_factory=lambda: dict(DEFAULT_NOTIFICATION_SETTINGS)
    )
    last_notification_sent: Optional[str] = None
    notification_count: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Subscription":
        values = _known_fields(cls, data)
        settings = dict(DEFAULT_NOTIFICATION_SETTINGS)
        settings.update(data.get("notification_settings") or {})
        values["notification_settings"] = settings
        return cls(**values)

    def wants(self, kind: str) -> bool:
        return self.is_active and bool(self.notification_settings.get(kind, False))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class NotificationOutcome:
    user_id: str
    mobile_number: str
    cino: str
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))


@dataclass(frozen=True)
class SendResult:
    """Result of one transport call"""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    recipients: List[str] = field(default_factory=list)


# === Run State ===

@dataclass
class RunState:
    """In-memory reentrancy guard and counters; reset on restart"""
    is_running: bool = False
    run_count: int = 0
    error_count: int = 0
    last_run_time: Optional[datetime] = None
    last_run_status: Optional[str] = None


@dataclass
class CycleResult:
    status: str  # completed | skipped | error
    reason: Optional[str] = None
    changes: List[CaseChange] = field(default_factory=list)
    notifications: List[NotificationOutcome] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "reason": self.reason,
            "changes": [c.to_dict() for c in self.changes],
            "notifications": [n.to_dict() for n in self.notifications],
            "summary": self.summary,
            "error": self.error,
            "duration": self.duration,
        }
