#!/usr/bin/env python3
"""
Elasticsearch index mappings
This file contains the mappings for the cases, users and subscriptions indices
"""

from config import ES_CASES_INDEX, ES_USERS_INDEX, ES_SUBSCRIPTIONS_INDEX

_LISTING_ENTRY = {
    "properties": {
        "cause_list_type": {"type": "keyword"},
        "justice": {"type": "text"},
        "bench_id": {"type": "keyword"},
        "listing_date": {"type": "date"},
        "short_order": {"type": "text"}
    }
}

_IA_APPLICATION = {
    "properties": {
        "application_number": {"type": "keyword"},
        "classification": {"type": "keyword"},
        "party": {"type": "text"},
        "applied_by": {"type": "text"},
        "filing_date": {"type": "date"},
        "next_date": {"type": "date"},
        "disposal_date": {"type": "date"},
        "status": {"type": "keyword"}
    }
}

CASES_MAPPING = {
    "dynamic": False,
    "properties": {
        # Snapshot
        "cino": {"type": "keyword"},
        "cnr": {"type": "keyword"},
        "case_title": {"type": "text"},
        "case_status": {"type": "keyword"},
        "filing_number": {"type": "keyword"},
        "filing_date": {"type": "date"},
        "registration_date": {"type": "date"},
        "first_hearing_date": {"type": "date"},
        "next_hearing_date": {"type": "date"},
        "stage_of_case": {"type": "keyword"},
        "coram": {"type": "text"},
        "bench_type": {"type": "keyword"},
        "state": {"type": "keyword"},
        "district": {"type": "keyword"},
        "petitioners": {"type": "text"},
        "respondents": {"type": "text"},
        "ia_applications": _IA_APPLICATION,
        "listing_history": _LISTING_ENTRY,
        "raw_response": {"type": "text", "index": False},

        # Change tracking
        "data_hash": {"type": "keyword"},
        "previous_data_hash": {"type": "keyword"},
        "change_history": {
            "properties": {
                "timestamp": {"type": "date"},
                "fields": {"type": "keyword"},
                "summary": {"type": "text"},
                "priority": {"type": "keyword"}
            }
        },
        "last_updated": {"type": "date"},

        # Bookkeeping
        "is_active": {"type": "boolean"},
        "notified": {"type": "boolean"},
        "last_api_check": {"type": "date"},
        "api_check_count": {"type": "integer"},
        "last_notification_sent": {"type": "date"},
        "notification_count": {"type": "integer"}
    }
}

USERS_MAPPING = {
    "properties": {
        "id": {"type": "keyword"},
        "name": {"type": "text", "fields": {"raw": {"type": "keyword"}}},
        "mobile_number": {"type": "keyword"},
        "email": {"type": "keyword"},
        "is_active": {"type": "boolean"}
    }
}

SUBSCRIPTIONS_MAPPING = {
    "properties": {
        "id": {"type": "keyword"},
        "user_id": {"type": "keyword"},
        "cino": {"type": "keyword"},
        "is_active": {"type": "boolean"},
        "priority": {"type": "keyword"},
        "alias": {"type": "text"},
        "notes": {"type": "text"},
        "notification_settings": {
            "properties": {
                "status_change": {"type": "boolean"},
                "hearing_date": {"type": "boolean"},
                "order_update": {"type": "boolean"},
                "listing_update": {"type": "boolean"},
                "ia_update": {"type": "boolean"}
            }
        },
        "last_notification_sent": {"type": "date"},
        "notification_count": {"type": "integer"}
    }
}

INDEX_MAPPINGS = {
    ES_CASES_INDEX: CASES_MAPPING,
    ES_USERS_INDEX: USERS_MAPPING,
    ES_SUBSCRIPTIONS_INDEX: SUBSCRIPTIONS_MAPPING,
}
