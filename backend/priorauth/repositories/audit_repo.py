"""Audit Repository - Data access for audit events"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo import DESCENDING

from .mongo_client import AUDIT_EVENTS, next_sequence, resolve_database, storage_guard
from ..domain.models import AuditEvent, AuditQueryFilters
from ..utils.time import ensure_utc
from ..utils.logger import get_logger

logger = get_logger(__name__)

AUDIT_SEQUENCE = "audit_events"
NEWEST_FIRST = [("timestamp", DESCENDING), ("sequence", DESCENDING)]


def _utc_naive(value: datetime) -> datetime:
    # Stored dates are UTC; naive bounds compare the same way on every driver
    return ensure_utc(value).replace(tzinfo=None)


def build_query(filters: Optional[AuditQueryFilters]) -> Dict[str, Any]:
    """Translate audit filters into a MongoDB query"""
    query: Dict[str, Any] = {}
    if filters is None:
        return query

    if filters.user_id:
        query["actor_id"] = filters.user_id
    if filters.resource_type:
        query["resource_type"] = filters.resource_type
    if filters.resource_id:
        query["resource_id"] = filters.resource_id
    if filters.action:
        query["action"] = filters.action

    if filters.date_from or filters.date_to:
        date_query: Dict[str, Any] = {}
        if filters.date_from:
            date_query["$gte"] = _utc_naive(filters.date_from)
        if filters.date_to:
            date_query["$lte"] = _utc_naive(filters.date_to)
        query["timestamp"] = date_query

    return query


class AuditRepository:
    """
    Repository for audit event operations (append-only)

    There is deliberately no update or delete method.
    """

    def __init__(self, database: Optional[Database] = None):
        self._database = resolve_database(database)
        self._audit_events: Collection = self._database[AUDIT_EVENTS]

    def next_sequence(self) -> int:
        """Allocate the next audit sequence number"""
        with storage_guard("audit_next_sequence"):
            return next_sequence(self._database, AUDIT_SEQUENCE)

    def create_event(self, event: AuditEvent) -> AuditEvent:
        """Create an audit event (append-only)"""
        # Plain dump keeps the timestamp a native datetime for range queries
        doc = event.model_dump()
        doc["_id"] = event.audit_event_id

        with storage_guard("create_audit_event"):
            self._audit_events.insert_one(doc)
        logger.info(
            f"Created audit event: {event.action}",
            extra={
                "audit_event_id": event.audit_event_id,
                "action": event.action,
                "resource_type": event.resource_type,
                "resource_id": event.resource_id,
                "actor_id": event.actor_id,
            }
        )
        return event

    def find_events(
        self,
        filters: Optional[AuditQueryFilters] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[AuditEvent]:
        """Audit events matching the filters, newest first"""
        with storage_guard("find_audit_events"):
            cursor = self._audit_events.find(build_query(filters)).sort(NEWEST_FIRST).skip(skip)
            if limit:
                cursor = cursor.limit(limit)

            events = []
            for doc in cursor:
                doc.pop("_id", None)
                events.append(AuditEvent.model_validate(doc))

        return events

    def count_events(self, filters: Optional[AuditQueryFilters] = None) -> int:
        """Count audit events matching the filters"""
        with storage_guard("count_audit_events"):
            return self._audit_events.count_documents(build_query(filters))
