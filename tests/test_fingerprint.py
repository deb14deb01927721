"""
Tests for the fingerprint engine
"""

from datetime import date, datetime, timezone

from conftest import listing, make_snapshot
from fingerprint import fingerprint, normalize_date, normalize_significant_fields
from models import IAApplication, ListingEntry


class TestFingerprint:

    def test_is_deterministic(self):
        snapshot = make_snapshot(listing_history=[listing(1), listing(2)])
        assert fingerprint(snapshot) == fingerprint(snapshot)
        assert len(fingerprint(snapshot)) == 32

    def test_status_change_changes_fingerprint(self):
        assert fingerprint(make_snapshot()) != fingerprint(make_snapshot(case_status="Disposed"))

    def test_non_significant_fields_are_ignored(self):
        base = make_snapshot(raw_response="<html>one</html>", district="Prayagraj")
        other = make_snapshot(raw_response="<html>two</html>", district="Lucknow", case_title="Other")
        assert fingerprint(base) == fingerprint(other)

    def test_string_normalization(self):
        assert fingerprint(make_snapshot(case_status="  PENDING ")) == fingerprint(make_snapshot(case_status="pending"))

    def test_equivalent_dates_hash_the_same(self):
        as_string = make_snapshot(next_hearing_date="2025-03-10")
        as_date = make_snapshot(next_hearing_date=date(2025, 3, 10))
        as_datetime = make_snapshot(next_hearing_date=datetime(2025, 3, 10, tzinfo=timezone.utc))
        assert fingerprint(as_string) == fingerprint(as_date) == fingerprint(as_datetime)

    def test_ia_applications_are_order_independent(self):
        first = IAApplication(application_number="1/2024", status="Pending")
        second = IAApplication(application_number="2/2024", status="Allowed")
        assert fingerprint(make_snapshot(ia_applications=[first, second])) == \
            fingerprint(make_snapshot(ia_applications=[second, first]))

    def test_listing_history_only_uses_last_five_entries(self):
        recent = [listing(day) for day in range(3, 8)]
        with_old = make_snapshot(listing_history=[listing(1), listing(2)] + recent)
        without_old = make_snapshot(listing_history=recent)
        assert fingerprint(with_old) == fingerprint(without_old)

        newer = make_snapshot(listing_history=recent + [listing(9)])
        assert fingerprint(newer) != fingerprint(without_old)

    def test_row_dates_hash_the_same_in_any_format(self):
        as_string = make_snapshot(listing_history=[ListingEntry(listing_date="10-03-2025")])
        as_date = make_snapshot(listing_history=[ListingEntry(listing_date=date(2025, 3, 10))])
        assert fingerprint(as_string) == fingerprint(as_date)

        ia_string = make_snapshot(ia_applications=[IAApplication(application_number="1/2025", next_date="10/03/2025")])
        ia_iso = make_snapshot(ia_applications=[IAApplication(application_number="1/2025", next_date="2025-03-10")])
        assert fingerprint(ia_string) == fingerprint(ia_iso)

        moved = make_snapshot(listing_history=[ListingEntry(listing_date="11-03-2025")])
        assert fingerprint(moved) != fingerprint(as_string)

    def test_partial_mapping_and_missing_fields(self):
        assert fingerprint({"case_status": "Pending"}) == fingerprint({"case_status": "pending", "coram": None})
        assert fingerprint({}) == fingerprint(None)

    def test_mapping_and_snapshot_agree(self):
        snapshot = make_snapshot()
        assert fingerprint(snapshot) == fingerprint(snapshot.to_dict())


class TestNormalization:

    def test_normalize_date_formats(self):
        expected = datetime(2025, 3, 10, tzinfo=timezone.utc)
        assert normalize_date("2025-03-10") == expected
        assert normalize_date("10-03-2025") == expected
        assert normalize_date("10/03/2025") == expected
        assert normalize_date("2025-03-10T00:00:00Z") == expected

    def test_normalize_date_empty_and_garbage(self):
        assert normalize_date(None) is None
        assert normalize_date("") is None
        assert normalize_date("not a date") is None

    def test_absent_fields_normalize_to_empty(self):
        normalized = normalize_significant_fields({})
        assert normalized["case_status"] == ""
        assert normalized["next_hearing_date"] == ""
        assert normalized["listing_history"] == []
