#!/usr/bin/env python3
"""
Elasticsearch client operations
Persistence for cases, users and subscriptions
"""

import logging
import time
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional

from elasticsearch import Elasticsearch
from elasticsearch import ConflictError as ESConflictError
from elasticsearch import NotFoundError as ESNotFoundError

from config import (
    ES_HOST,
    ES_CASES_INDEX,
    ES_USERS_INDEX,
    ES_SUBSCRIPTIONS_INDEX,
    CASE_CHECK_INTERVAL_MINUTES,
    CHANGE_HISTORY_LIMIT,
)
from errors import ConflictError, NotFoundError
from fingerprint import ROW_DATE_FIELDS, normalize_date
from models import (
    CaseSnapshot,
    ChangeSet,
    NotificationOutcome,
    Subscription,
    User,
    utcnow,
)
from schema import INDEX_MAPPINGS

logger = logging.getLogger(__name__)

MAX_RETRIES = 5
RETRY_DELAY = 2

_SNAPSHOT_DATE_FIELDS = (
    "next_hearing_date", "first_hearing_date", "filing_date", "registration_date",
)
_SNAPSHOT_ROW_FIELDS = ("listing_history", "ia_applications")

SAVE_SNAPSHOT_SCRIPT = """
    for (entry in params.snapshot.entrySet()) {
        ctx._source[entry.getKey()] = entry.getValue();
    }
    ctx._source.previous_data_hash = ctx._source.data_hash;
    ctx._source.data_hash = params.hash;
    ctx._source.last_updated = params.timestamp;
    if (params.change != null) {
        if (ctx._source.change_history == null) {
            ctx._source.change_history = new ArrayList();
        }
        ctx._source.change_history.add(params.change);
        int extra = ctx._source.change_history.size() - params.limit;
        if (extra > 0) {
            ctx._source.change_history = ctx._source.change_history.subList(extra, ctx._source.change_history.size());
        }
        ctx._source.notified = false;
    }
"""

RECORD_CHECK_SCRIPT = """
    ctx._source.last_api_check = params.timestamp;
    if (ctx._source.api_check_count == null) {
        ctx._source.api_check_count = 0;
    }
    ctx._source.api_check_count += 1;
"""

RECORD_NOTIFICATION_SCRIPT = """
    ctx._source.last_notification_sent = params.timestamp;
    if (ctx._source.notification_count == null) {
        ctx._source.notification_count = 0;
    }
    ctx._source.notification_count += 1;
    if (params.mark_notified) {
        ctx._source.notified = true;
    }
"""


def connect_to_elasticsearch(retry: bool = True) -> Optional[Elasticsearch]:
    """Connect to Elasticsearch with retry logic"""
    retries = 0
    delay = RETRY_DELAY

    while True:
        try:
            es = Elasticsearch(ES_HOST)
            if not es.ping():
                raise ConnectionError("Failed to ping Elasticsearch")

            logger.info("✅ Connected to Elasticsearch successfully")
            return es

        except Exception as e:
            retries += 1
            if not retry or retries >= MAX_RETRIES:
                logger.error(f"❌ Error connecting to Elasticsearch after {retries} attempts: {e}")
                return None

            logger.warning(f"⚠️ Failed to connect to Elasticsearch (attempt {retries}/{MAX_RETRIES}): {e}")
            logger.info(f"🔄 Retrying in {delay} seconds...")
            time.sleep(delay)
            delay *= 2  # Exponential backoff


def snapshot_document(snapshot: CaseSnapshot) -> Dict[str, Any]:
    """Serialize a snapshot for storage; unparseable dates are stored as null"""
    document = snapshot.to_dict()
    for name in _SNAPSHOT_DATE_FIELDS:
        parsed = normalize_date(document.get(name))
        document[name] = parsed.isoformat() if parsed else None
    for name in _SNAPSHOT_ROW_FIELDS:
        for row in document.get(name) or []:
            for key in ROW_DATE_FIELDS:
                if key in row:
                    parsed = normalize_date(row[key])
                    row[key] = parsed.isoformat() if parsed else None
    return document


class CaseStore:
    """
    Elasticsearch backed store for the monitor

    Every call is individually fallible; callers decide whether a failure
    is per-case or fatal for the cycle.
    """

    def __init__(
        self,
        es: Optional[Elasticsearch] = None,
        cases_index: str = ES_CASES_INDEX,
        users_index: str = ES_USERS_INDEX,
        subscriptions_index: str = ES_SUBSCRIPTIONS_INDEX,
    ):
        self.es = es if es is not None else Elasticsearch(ES_HOST)
        self.cases_index = cases_index
        self.users_index = users_index
        self.subscriptions_index = subscriptions_index

    # === Setup ===

    def ensure_indices(self) -> None:
        mappings = {
            self.cases_index: INDEX_MAPPINGS[ES_CASES_INDEX],
            self.users_index: INDEX_MAPPINGS[ES_USERS_INDEX],
            self.subscriptions_index: INDEX_MAPPINGS[ES_SUBSCRIPTIONS_INDEX],
        }
        for index, mapping in mappings.items():
            if not self.es.indices.exists(index=index):
                self.es.indices.create(index=index, mappings=mapping)
                logger.info(f"✅ Created index '{index}'")

    def _scroll_all(self, index: str, query: Dict, source: Any = True) -> List[Dict]:
        """Fetch every hit for a query using the scroll API"""
        response = self.es.search(index=index, query=query, size=100, scroll="2m", source=source)

        scroll_id = response["_scroll_id"]
        documents = list(response["hits"]["hits"])

        while len(response["hits"]["hits"]) > 0:
            response = self.es.scroll(scroll_id=scroll_id, scroll="2m")
            if len(response["hits"]["hits"]) == 0:
                break
            documents.extend(response["hits"]["hits"])

        self.es.clear_scroll(scroll_id=scroll_id)
        return documents

    # === Cases ===

    def load_snapshot(self, cino: str) -> Optional[CaseSnapshot]:
        try:
            response = self.es.get(index=self.cases_index, id=cino)
        except ESNotFoundError:
            return None
        return CaseSnapshot.from_dict(response["_source"])

    def get_case(self, cino: str) -> Dict[str, Any]:
        try:
            return self.es.get(index=self.cases_index, id=cino)["_source"]
        except ESNotFoundError:
            raise NotFoundError(f"Case {cino} not found")

    def list_cases(self, active: Optional[bool] = None, size: int = 100, offset: int = 0) -> List[Dict]:
        query = {"term": {"is_active": active}} if active is not None else {"match_all": {}}
        response = self.es.search(
            index=self.cases_index,
            query=query,
            size=size,
            from_=offset,
            source_excludes=["raw_response", "change_history"],
        )
        return [hit["_source"] for hit in response["hits"]["hits"]]

    def create_case(self, snapshot: CaseSnapshot, fingerprint: str) -> Dict[str, Any]:
        timestamp = utcnow().isoformat()
        document = snapshot_document(snapshot)
        document.update({
            "data_hash": fingerprint,
            "previous_data_hash": None,
            "change_history": [],
            "is_active": True,
            "notified": True,
            "last_api_check": timestamp,
            "api_check_count": 1,
            "last_notification_sent": None,
            "notification_count": 0,
            "last_updated": timestamp,
        })
        try:
            self.es.create(index=self.cases_index, id=snapshot.cino, document=document, refresh="wait_for")
        except ESConflictError:
            raise ConflictError(f"Case {snapshot.cino} already exists")
        logger.info(f"✅ Added case {snapshot.cino}")
        return document

    def delete_case(self, cino: str) -> int:
        """Delete a case and its subscriptions, returns the number of subscriptions removed"""
        try:
            self.es.delete(index=self.cases_index, id=cino, refresh="wait_for")
        except ESNotFoundError:
            raise NotFoundError(f"Case {cino} not found")

        response = self.es.delete_by_query(
            index=self.subscriptions_index,
            query={"term": {"cino": cino}},
            refresh=True,
        )
        removed = response.get("deleted", 0)
        logger.info(f"🗑️ Deleted case {cino} and {removed} subscriptions")
        return removed

    def save_snapshot(
        self,
        cino: str,
        snapshot: CaseSnapshot,
        fingerprint: str,
        changeset: Optional[ChangeSet] = None,
    ) -> None:
        """
        Write a snapshot, its fingerprint and the change record in one update

        The same scripted update resets the notified flag, so a crash between
        persisting a change and notifying leaves the case marked un-notified.
        """
        timestamp = utcnow().isoformat()
        document = snapshot_document(snapshot)

        change = None
        if changeset is not None and changeset.has_changes:
            change = {
                "timestamp": timestamp,
                "fields": list(changeset.changed_fields),
                "summary": changeset.changes_summary,
                "priority": changeset.notification_priority,
            }

        upsert = dict(document)
        upsert.update({
            "data_hash": fingerprint,
            "previous_data_hash": None,
            "change_history": [change] if change else [],
            "is_active": True,
            "notified": change is None,
            "last_api_check": timestamp,
            "api_check_count": 1,
            "notification_count": 0,
            "last_updated": timestamp,
        })

        self.es.update(
            index=self.cases_index,
            id=cino,
            script={
                "source": SAVE_SNAPSHOT_SCRIPT,
                "params": {
                    "snapshot": document,
                    "hash": fingerprint,
                    "timestamp": timestamp,
                    "change": change,
                    "limit": CHANGE_HISTORY_LIMIT,
                },
            },
            upsert=upsert,
            retry_on_conflict=3,
        )
        logger.info(f"💾 Saved snapshot for case {cino}" + (f" ({len(change['fields'])} changes)" if change else ""))

    def record_check(self, cino: str) -> None:
        try:
            self.es.update(
                index=self.cases_index,
                id=cino,
                script={"source": RECORD_CHECK_SCRIPT, "params": {"timestamp": utcnow().isoformat()}},
                retry_on_conflict=3,
            )
        except ESNotFoundError:
            logger.debug(f"Case {cino} not stored yet, check not recorded")

    def find_candidate_cases(self, check_interval_minutes: int = CASE_CHECK_INTERVAL_MINUTES) -> List[str]:
        """
        Cases due for a check plus cases with an active subscription

        Returns:
            De-duplicated list of cinos, due cases first (oldest check first)
        """
        cutoff = (utcnow() - timedelta(minutes=check_interval_minutes)).isoformat()
        due_query = {
            "bool": {
                "filter": [{"term": {"is_active": True}}],
                "should": [
                    {"range": {"last_api_check": {"lt": cutoff}}},
                    {"bool": {"must_not": {"exists": {"field": "last_api_check"}}}},
                ],
                "minimum_should_match": 1,
            }
        }
        hits = self._scroll_all(self.cases_index, due_query, source=["cino", "last_api_check"])
        hits.sort(key=lambda hit: hit["_source"].get("last_api_check") or "")
        candidates = [hit["_id"] for hit in hits]

        response = self.es.search(
            index=self.subscriptions_index,
            query={"term": {"is_active": True}},
            size=0,
            aggs={"cinos": {"terms": {"field": "cino", "size": 10000}}},
        )
        subscribed = [b["key"] for b in response["aggregations"]["cinos"]["buckets"]]
        already = set(candidates)
        missing = [cino for cino in subscribed if cino not in already]

        if missing:
            existing = self.es.search(
                index=self.cases_index,
                query={"terms": {"cino": missing}},
                size=len(missing),
                source=["cino"],
            )
            found = {hit["_id"] for hit in existing["hits"]["hits"]}
            candidates.extend(cino for cino in missing if cino in found)

        logger.info(f"Found {len(candidates)} cases to check")
        return candidates

    # === Users ===

    def get_user(self, user_id: str) -> Optional[User]:
        try:
            response = self.es.get(index=self.users_index, id=user_id)
        except ESNotFoundError:
            return None
        return User.from_dict(response["_source"])

    def list_users(self, active: Optional[bool] = None, size: int = 100, offset: int = 0) -> List[User]:
        query = {"term": {"is_active": active}} if active is not None else {"match_all": {}}
        response = self.es.search(index=self.users_index, query=query, size=size, from_=offset)
        return [User.from_dict(hit["_source"]) for hit in response["hits"]["hits"]]

    def create_user(self, name: str, mobile_number: str, email: str = "", is_active: bool = True) -> User:
        existing = self.es.search(
            index=self.users_index,
            query={"term": {"mobile_number": mobile_number}},
            size=1,
        )
        if existing["hits"]["hits"]:
            raise ConflictError(f"User with mobile number {mobile_number} already exists")

        user = User(
            id=uuid.uuid4().hex,
            name=name,
            mobile_number=mobile_number,
            email=email,
            is_active=is_active,
        )
        self.es.index(index=self.users_index, id=user.id, document=user.to_dict(), refresh="wait_for")
        logger.info(f"✅ Created user {user.id}")
        return user

    def update_user(self, user_id: str, **updates) -> User:
        user = self.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        for key, value in updates.items():
            if value is not None and hasattr(user, key) and key != "id":
                setattr(user, key, value)

        self.es.index(index=self.users_index, id=user.id, document=user.to_dict(), refresh="wait_for")
        return user

    def delete_user(self, user_id: str) -> int:
        try:
            self.es.delete(index=self.users_index, id=user_id, refresh="wait_for")
        except ESNotFoundError:
            raise NotFoundError(f"User {user_id} not found")

        response = self.es.delete_by_query(
            index=self.subscriptions_index,
            query={"term": {"user_id": user_id}},
            refresh=True,
        )
        removed = response.get("deleted", 0)
        logger.info(f"🗑️ Deleted user {user_id} and {removed} subscriptions")
        return removed

    # === Subscriptions ===

    def find_subscriptions(self, cino: str) -> List[Subscription]:
        """Active subscriptions for a case"""
        hits = self._scroll_all(
            self.subscriptions_index,
            {"bool": {"filter": [{"term": {"cino": cino}}, {"term": {"is_active": True}}]}},
        )
        return [Subscription.from_dict(hit["_source"]) for hit in hits]

    def get_subscription(self, subscription_id: str) -> Subscription:
        try:
            response = self.es.get(index=self.subscriptions_index, id=subscription_id)
        except ESNotFoundError:
            raise NotFoundError(f"Subscription {subscription_id} not found")
        return Subscription.from_dict(response["_source"])

    def list_subscriptions(
        self,
        cino: Optional[str] = None,
        user_id: Optional[str] = None,
        size: int = 100,
        offset: int = 0,
    ) -> List[Subscription]:
        filters = []
        if cino:
            filters.append({"term": {"cino": cino}})
        if user_id:
            filters.append({"term": {"user_id": user_id}})
        query = {"bool": {"filter": filters}} if filters else {"match_all": {}}

        response = self.es.search(index=self.subscriptions_index, query=query, size=size, from_=offset)
        return [Subscription.from_dict(hit["_source"]) for hit in response["hits"]["hits"]]

    def create_subscription(self, user_id: str, cino: str, **options) -> Subscription:
        if self.get_user(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        self.get_case(cino)

        existing = self.es.search(
            index=self.subscriptions_index,
            query={"bool": {"filter": [{"term": {"cino": cino}}, {"term": {"user_id": user_id}}]}},
            size=1,
        )
        if existing["hits"]["hits"]:
            raise ConflictError(f"User {user_id} is already subscribed to case {cino}")

        data = {k: v for k, v in options.items() if v is not None}
        subscription = Subscription.from_dict({"id": uuid.uuid4().hex, "user_id": user_id, "cino": cino, **data})
        self.es.index(
            index=self.subscriptions_index,
            id=subscription.id,
            document=subscription.to_dict(),
            refresh="wait_for",
        )
        logger.info(f"✅ Subscribed user {user_id} to case {cino}")
        return subscription

    def update_subscription(self, subscription_id: str, **updates) -> Subscription:
        subscription = self.get_subscription(subscription_id)

        for key, value in updates.items():
            if value is None or key in ("id", "user_id", "cino"):
                continue
            if key == "notification_settings":
                subscription.notification_settings.update(value)
            elif hasattr(subscription, key):
                setattr(subscription, key, value)

        self.es.index(
            index=self.subscriptions_index,
            id=subscription.id,
            document=subscription.to_dict(),
            refresh="wait_for",
        )
        return subscription

    def delete_subscription(self, subscription_id: str) -> None:
        try:
            self.es.delete(index=self.subscriptions_index, id=subscription_id, refresh="wait_for")
        except ESNotFoundError:
            raise NotFoundError(f"Subscription {subscription_id} not found")

    def record_notification(self, subscription: Subscription, outcome: NotificationOutcome) -> None:
        """Bump delivery counters on the subscription and on its case"""
        timestamp = outcome.timestamp.isoformat()

        self.es.update(
            index=self.subscriptions_index,
            id=subscription.id,
            script={
                "source": RECORD_NOTIFICATION_SCRIPT,
                "params": {"timestamp": timestamp, "mark_notified": False},
            },
            retry_on_conflict=3,
        )
        self.es.update(
            index=self.cases_index,
            id=subscription.cino,
            script={
                "source": RECORD_NOTIFICATION_SCRIPT,
                "params": {"timestamp": timestamp, "mark_notified": True},
            },
            retry_on_conflict=3,
        )

    # === Statistics ===

    def get_stats(self) -> Dict[str, Any]:
        total_cases = self.es.count(index=self.cases_index)["count"]
        active_cases = self.es.count(index=self.cases_index, query={"term": {"is_active": True}})["count"]
        cases_with_changes = self.es.count(
            index=self.cases_index,
            query={"exists": {"field": "change_history.timestamp"}},
        )["count"]
        notifications = self.es.search(
            index=self.cases_index,
            size=0,
            aggs={"total_notifications": {"sum": {"field": "notification_count"}}},
        )

        return {
            "total_cases": total_cases,
            "active_cases": active_cases,
            "cases_with_changes": cases_with_changes,
            "total_notifications": int(notifications["aggregations"]["total_notifications"]["value"] or 0),
            "total_users": self.es.count(index=self.users_index)["count"],
            "active_subscriptions": self.es.count(
                index=self.subscriptions_index,
                query={"term": {"is_active": True}},
            )["count"],
        }
