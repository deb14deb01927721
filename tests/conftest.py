"""
Shared fixtures and in-memory collaborators for the monitor tests
"""

from typing import Dict, List, Optional

import pytest

from errors import FetchError, NotFoundError
from models import CaseSnapshot, ListingEntry, SendResult, Subscription, User


def make_snapshot(cino="804692", **overrides) -> CaseSnapshot:
    data = {
        "cino": cino,
        "case_status": "Pending",
        "next_hearing_date": None,
        "stage_of_case": "Admission",
        "coram": "Hon'ble Justice A",
        "case_title": "CRIMINAL MISC. BAIL APPLICATION 1234/2024",
    }
    data.update(overrides)
    return CaseSnapshot.from_dict(data)


def listing(day: int, order: str = "Adjourned") -> ListingEntry:
    return ListingEntry(
        cause_list_type="Fresh",
        justice="Hon'ble Justice A",
        listing_date=f"2024-05-{day:02d}",
        short_order=order,
    )


class FakeSource:
    """Case source backed by a dict; an Exception value is raised on fetch"""

    def __init__(self, cases: Optional[Dict] = None):
        self.cases = dict(cases or {})
        self.fetched: List[str] = []

    def fetch_case(self, cino):
        self.fetched.append(cino)
        value = self.cases.get(cino)
        if isinstance(value, Exception):
            raise value
        return value


class FakeStore:
    def __init__(self):
        self.snapshots: Dict[str, CaseSnapshot] = {}
        self.users: Dict[str, User] = {}
        self.subscriptions: Dict[str, Subscription] = {}
        self.case_notifications: Dict[str, int] = {}
        self.candidates: List[str] = []
        self.saved: List[tuple] = []
        self.checks: List[str] = []
        self.recorded: List[tuple] = []
        self.candidate_error: Optional[Exception] = None

    def find_candidate_cases(self, check_interval_minutes=120):
        if self.candidate_error:
            raise self.candidate_error
        return list(self.candidates)

    def load_snapshot(self, cino):
        return self.snapshots.get(cino)

    def save_snapshot(self, cino, snapshot, fingerprint, changeset=None):
        self.saved.append((cino, snapshot, fingerprint, changeset))
        self.snapshots[cino] = snapshot

    def record_check(self, cino):
        self.checks.append(cino)

    def find_subscriptions(self, cino):
        return [s for s in self.subscriptions.values() if s.cino == cino and s.is_active]

    def get_user(self, user_id):
        return self.users.get(user_id)

    def record_notification(self, subscription, outcome):
        stored = self.subscriptions[subscription.id]
        stored.notification_count += 1
        stored.last_notification_sent = outcome.timestamp.isoformat()
        self.case_notifications[subscription.cino] = self.case_notifications.get(subscription.cino, 0) + 1
        self.recorded.append((subscription.id, outcome))

    def create_case(self, snapshot, fingerprint):
        self.snapshots[snapshot.cino] = snapshot
        return {"cino": snapshot.cino, "data_hash": fingerprint}

    def delete_case(self, cino):
        if cino not in self.snapshots:
            raise NotFoundError(f"Case {cino} not found")
        del self.snapshots[cino]
        removed = [sid for sid, s in self.subscriptions.items() if s.cino == cino]
        for sid in removed:
            del self.subscriptions[sid]
        return len(removed)

    # helpers

    def add_user(self, user_id="u1", name="Asha", mobile_number="9876543210", is_active=True):
        user = User(id=user_id, name=name, mobile_number=mobile_number, is_active=is_active)
        self.users[user_id] = user
        return user

    def add_subscription(self, sub_id="s1", user_id="u1", cino="804692", **options):
        subscription = Subscription.from_dict({"id": sub_id, "user_id": user_id, "cino": cino, **options})
        self.subscriptions[sub_id] = subscription
        return subscription


class FakeTransport:
    def __init__(self, fail_for=(), raise_for=()):
        self.sent: List[tuple] = []
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)

    def send(self, recipients, message):
        self.sent.append((list(recipients), message))
        number = recipients[0]
        if number in self.raise_for:
            raise RuntimeError("connection reset")
        if number in self.fail_for:
            return SendResult(success=False, error="rate limited", recipients=list(recipients))
        return SendResult(success=True, message_id=f"msg-{len(self.sent)}", recipients=list(recipients))

    def send_test_message(self, number):
        return self.send([number], "test")


class RecordingSleep:
    """Stands in for asyncio.sleep and remembers every requested delay"""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def fetch_error():
    return FetchError("timed out", cino="x", attempts=3)
