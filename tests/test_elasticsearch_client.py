"""
Tests for the Elasticsearch backed store
"""

from unittest.mock import MagicMock

import pytest
from elasticsearch import ConflictError as ESConflictError
from elasticsearch import NotFoundError as ESNotFoundError

from change_detector import detect_changes
from conftest import make_snapshot
from elasticsearch_client import CaseStore, snapshot_document
from errors import ConflictError, NotFoundError
from models import IAApplication, ListingEntry, NotificationOutcome, Subscription


def es_not_found():
    return ESNotFoundError(message="not_found", meta=MagicMock(status=404), body={"found": False})


def hits(*sources, scroll_id="scroll-1"):
    return {
        "_scroll_id": scroll_id,
        "hits": {"hits": [{"_id": s.get("id") or s.get("cino"), "_source": s} for s in sources]},
    }


@pytest.fixture
def es():
    return MagicMock()


@pytest.fixture
def case_store(es):
    return CaseStore(es, cases_index="cases", users_index="users", subscriptions_index="subs")


class TestSnapshots:

    def test_load_missing_snapshot(self, case_store, es):
        es.get.side_effect = es_not_found()
        assert case_store.load_snapshot("804692") is None

    def test_load_snapshot(self, case_store, es):
        es.get.return_value = {"_source": {"cino": "804692", "case_status": "Pending", "data_hash": "abc"}}
        snapshot = case_store.load_snapshot("804692")
        assert snapshot.case_status == "Pending"

    def test_snapshot_document_normalizes_dates(self):
        document = snapshot_document(make_snapshot(next_hearing_date="10-03-2025", first_hearing_date="soon"))
        assert document["next_hearing_date"] == "2025-03-10T00:00:00+00:00"
        assert document["first_hearing_date"] is None

    def test_snapshot_document_normalizes_row_dates(self):
        document = snapshot_document(make_snapshot(
            listing_history=[ListingEntry(listing_date="10-03-2025"), ListingEntry(listing_date="pending")],
            ia_applications=[IAApplication(application_number="1/2025", filing_date="01.02.2025")],
        ))

        assert document["listing_history"][0]["listing_date"] == "2025-03-10T00:00:00+00:00"
        assert document["listing_history"][1]["listing_date"] is None
        ia = document["ia_applications"][0]
        assert ia["filing_date"] == "2025-02-01T00:00:00+00:00"
        assert ia["next_date"] is None
        assert ia["disposal_date"] is None

    def test_save_with_changes_is_one_scripted_update(self, case_store, es):
        old = make_snapshot()
        new = make_snapshot(case_status="Listed")
        changes = detect_changes(old, new)

        case_store.save_snapshot("804692", new, "f" * 32, changes)

        es.update.assert_called_once()
        kwargs = es.update.call_args.kwargs
        params = kwargs["script"]["params"]
        assert kwargs["id"] == "804692"
        assert params["hash"] == "f" * 32
        assert params["snapshot"]["case_status"] == "Listed"
        assert params["change"]["fields"] == ["case_status"]
        assert params["change"]["priority"] == "high"
        assert "ctx._source.notified = false" in kwargs["script"]["source"]
        assert kwargs["upsert"]["notified"] is False

    def test_baseline_save_has_no_change_record(self, case_store, es):
        case_store.save_snapshot("804692", make_snapshot(), "f" * 32)

        kwargs = es.update.call_args.kwargs
        assert kwargs["script"]["params"]["change"] is None
        assert kwargs["upsert"]["change_history"] == []
        assert kwargs["upsert"]["notified"] is True

    def test_record_check_on_unknown_case_is_ignored(self, case_store, es):
        es.update.side_effect = es_not_found()
        case_store.record_check("804692")

    def test_create_existing_case_is_conflict(self, case_store, es):
        es.create.side_effect = ESConflictError(message="conflict", meta=MagicMock(status=409), body={})
        with pytest.raises(ConflictError):
            case_store.create_case(make_snapshot(), "f" * 32)

    def test_delete_missing_case(self, case_store, es):
        es.delete.side_effect = es_not_found()
        with pytest.raises(NotFoundError):
            case_store.delete_case("804692")

    def test_delete_case_removes_subscriptions(self, case_store, es):
        es.delete_by_query.return_value = {"deleted": 3}
        assert case_store.delete_case("804692") == 3
        assert es.delete_by_query.call_args.kwargs["query"] == {"term": {"cino": "804692"}}


class TestCandidates:

    def test_due_cases_first_then_subscribed(self, case_store, es):
        due = hits(
            {"cino": "b", "last_api_check": "2025-01-02T00:00:00+00:00"},
            {"cino": "a", "last_api_check": None},
        )
        es.scroll.return_value = {"_scroll_id": "scroll-1", "hits": {"hits": []}}
        es.search.side_effect = [
            due,
            {"hits": {"hits": []}, "aggregations": {"cinos": {"buckets": [
                {"key": "a"}, {"key": "c"}, {"key": "gone"},
            ]}}},
            hits({"cino": "c"}),
        ]

        assert case_store.find_candidate_cases(120) == ["a", "b", "c"]
        es.clear_scroll.assert_called_once_with(scroll_id="scroll-1")


class TestSubscriptions:

    def test_find_subscriptions_applies_defaults(self, case_store, es):
        es.search.return_value = hits({"id": "s1", "user_id": "u1", "cino": "804692", "is_active": True})
        es.scroll.return_value = {"_scroll_id": "scroll-1", "hits": {"hits": []}}

        subscriptions = case_store.find_subscriptions("804692")

        assert [s.id for s in subscriptions] == ["s1"]
        assert subscriptions[0].wants("hearing_date") is True
        assert subscriptions[0].wants("ia_update") is False

    def test_subscription_requires_user(self, case_store, es):
        es.get.side_effect = es_not_found()
        with pytest.raises(NotFoundError):
            case_store.create_subscription("ghost", "804692")

    def test_duplicate_subscription(self, case_store, es):
        es.get.return_value = {"_source": {"id": "u1", "name": "Asha", "mobile_number": "9876543210"}}
        es.search.return_value = hits({"id": "s1", "user_id": "u1", "cino": "804692"})

        with pytest.raises(ConflictError):
            case_store.create_subscription("u1", "804692")
        es.index.assert_not_called()

    def test_update_merges_notification_settings(self, case_store, es):
        es.get.return_value = {"_source": {"id": "s1", "user_id": "u1", "cino": "804692"}}

        subscription = case_store.update_subscription(
            "s1", notification_settings={"ia_update": True}, alias=None, cino="other",
        )

        assert subscription.notification_settings["ia_update"] is True
        assert subscription.notification_settings["hearing_date"] is True
        assert subscription.cino == "804692"
        es.index.assert_called_once()

    def test_record_notification_updates_subscription_and_case(self, case_store, es):
        subscription = Subscription.from_dict({"id": "s1", "user_id": "u1", "cino": "804692"})
        outcome = NotificationOutcome(user_id="u1", mobile_number="9876543210", cino="804692", success=True)

        case_store.record_notification(subscription, outcome)

        calls = es.update.call_args_list
        assert [(c.kwargs["index"], c.kwargs["id"]) for c in calls] == [("subs", "s1"), ("cases", "804692")]
        assert calls[1].kwargs["script"]["params"]["mark_notified"] is True


class TestUsers:

    def test_duplicate_mobile_number(self, case_store, es):
        es.search.return_value = hits({"id": "u1", "mobile_number": "9876543210"})
        with pytest.raises(ConflictError):
            case_store.create_user("Asha", "9876543210")

    def test_update_missing_user(self, case_store, es):
        es.get.side_effect = es_not_found()
        with pytest.raises(NotFoundError):
            case_store.update_user("ghost", name="X")
