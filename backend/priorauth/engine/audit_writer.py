"""Audit Writer - Append-only audit events"""
import threading
from datetime import datetime
from typing import Any, List, Mapping, Optional, Union

from pymongo.database import Database

from ..domain.models import AuditEvent, AuditQueryFilters
from ..domain.enums import AuditAction, AuditDetailType, ResourceType
from ..domain.errors import ValidationError
from ..repositories.audit_repo import AuditRepository
from .change_differ import Record, diff_document, to_record
from ..utils.idgen import generate_audit_event_id
from ..utils.time import Clock, SystemClock, format_iso, parse_iso
from ..utils.logger import get_logger, get_correlation_id

logger = get_logger(__name__)

REPORT_LIMIT = 1000

# Mutations must carry at least one snapshot; access and auth events may carry none
MUTATION_ACTIONS = frozenset({AuditAction.CREATE.value, AuditAction.UPDATE.value, AuditAction.DELETE.value})


def describe_action(action: str, resource_type: str) -> str:
    """Human-readable phrase stored as ``details.action_description``"""
    descriptions = {
        AuditAction.CREATE.value: f"Created new {resource_type}",
        AuditAction.UPDATE.value: f"Updated {resource_type}",
        AuditAction.DELETE.value: f"Deleted {resource_type}",
        AuditAction.VIEW.value: f"Viewed {resource_type}",
        AuditAction.DOWNLOAD.value: f"Downloaded {resource_type}",
        AuditAction.EXPORT.value: f"Exported {resource_type} data",
        AuditAction.LOGIN_SUCCESS.value: "Successful login",
        AuditAction.LOGIN_FAILURE.value: "Failed login attempt",
        AuditAction.LOGOUT.value: "User logged out",
    }
    return descriptions.get(action, f"{action} on {resource_type}")


class AuditWriter:
    """
    Write audit events (append-only)

    Every mutation the workflow engine performs is recorded here with its
    before/after snapshots. The field-level diff is derived from the
    snapshots and is never supplied by callers.

    ``append`` never raises: a failed write is logged at ERROR and the
    caller's operation carries on.
    """

    def __init__(self, database: Optional[Database] = None, clock: Optional[Clock] = None):
        self.repo = AuditRepository(database)
        self.clock = clock or SystemClock()
        self._stamp_lock = threading.Lock()
        self._last_timestamp: Optional[datetime] = None

    def _next_timestamp(self) -> datetime:
        # Timestamps never go backwards for this writer, even if the clock does
        with self._stamp_lock:
            now = self.clock.now()
            if self._last_timestamp is not None and now < self._last_timestamp:
                now = self._last_timestamp
            self._last_timestamp = now
            return now

    def append(
        self,
        actor_id: str,
        action: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        before: Optional[Record] = None,
        after: Optional[Record] = None,
        correlation_id: Optional[str] = None
    ) -> Optional[AuditEvent]:
        """
        Append a single audit event

        Returns:
            The stored event, or None when the write failed or a
            CREATE/UPDATE/DELETE event carried no snapshot
        """
        action = action.value if isinstance(action, AuditAction) else str(action)
        resource_type = resource_type.value if isinstance(resource_type, ResourceType) else str(resource_type)

        try:
            if action in MUTATION_ACTIONS and before is None and after is None:
                raise ValidationError(
                    f"{action} audit event requires a before or after snapshot",
                    details={"action": action, "resource_type": resource_type}
                )
            before_data = to_record(before)
            after_data = to_record(after)

            enriched = dict(details or {})
            timestamp = self._next_timestamp()
            enriched["timestamp"] = format_iso(timestamp)
            enriched["action_description"] = describe_action(action, resource_type)

            event = AuditEvent(
                audit_event_id=generate_audit_event_id(),
                sequence=self.repo.next_sequence(),
                actor_id=actor_id,
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                details=enriched,
                before_data=before_data,
                after_data=after_data,
                field_changes=diff_document(before_data, after_data),
                ip_address=ip_address,
                user_agent=user_agent,
                timestamp=timestamp,
                correlation_id=correlation_id or get_correlation_id()
            )
            return self.repo.create_event(event)
        except Exception:
            logger.error(
                f"Failed to write audit event: {action}",
                exc_info=True,
                extra={
                    "action": action,
                    "resource_type": resource_type,
                    "resource_id": resource_id,
                    "actor_id": actor_id,
                }
            )
            return None

    # =========================================================================
    # Queries
    # =========================================================================

    def query(
        self,
        filters: Optional[AuditQueryFilters] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[AuditEvent]:
        """Audit events matching the filters, newest first"""
        return self.repo.find_events(filters, skip=skip, limit=limit)

    def count(self, filters: Optional[AuditQueryFilters] = None) -> int:
        """Total number of events matching the filters"""
        return self.repo.count_events(filters)

    def audit_report(
        self,
        start: Union[datetime, str],
        end: Union[datetime, str],
        resource_type: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> List[AuditEvent]:
        """
        All events in the inclusive window ``[start, end]`` for compliance review

        Bounds may be datetimes or ISO 8601 strings (e.g. from a report request).
        """
        filters = AuditQueryFilters(
            date_from=parse_iso(start) if isinstance(start, str) else start,
            date_to=parse_iso(end) if isinstance(end, str) else end,
            resource_type=resource_type,
            user_id=user_id
        )
        return self.repo.find_events(filters, skip=0, limit=REPORT_LIMIT)

    # =========================================================================
    # Helpers
    # =========================================================================

    def log_prior_auth_activity(
        self,
        actor_id: str,
        authorization_id: str,
        action: str,
        step: Optional[str] = None,
        before: Optional[Record] = None,
        after: Optional[Record] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None
    ) -> Optional[AuditEvent]:
        """Workflow transition on a prior authorization"""
        action = action.value if isinstance(action, AuditAction) else action
        enriched = {
            "type": AuditDetailType.PRIOR_AUTH_WORKFLOW.value,
            "workflow_step": step,
            "action": action,
            "medical_necessity": True,
        }
        enriched.update(details or {})
        return self.append(
            actor_id=actor_id,
            action=action,
            resource_type=ResourceType.PRIOR_AUTHORIZATION.value,
            resource_id=authorization_id,
            details=enriched,
            ip_address=ip_address,
            user_agent=user_agent,
            before=before,
            after=after
        )

    def log_patient_access(
        self,
        actor_id: str,
        patient_id: str,
        action: str,
        before: Optional[Record] = None,
        after: Optional[Record] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Optional[AuditEvent]:
        """PHI access (HIPAA-tracked)"""
        return self.append(
            actor_id=actor_id,
            action=action,
            resource_type=ResourceType.PATIENT.value,
            resource_id=patient_id,
            details={
                "type": AuditDetailType.PHI_ACCESS.value,
                "action": action,
                "patient_id": patient_id,
                "compliance_note": "HIPAA-tracked PHI access",
            },
            ip_address=ip_address,
            user_agent=user_agent,
            before=before,
            after=after
        )

    def log_data_modification(
        self,
        actor_id: str,
        resource_type: str,
        resource_id: str,
        action: str,
        before: Optional[Record] = None,
        after: Optional[Record] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Optional[AuditEvent]:
        """Generic record modification"""
        return self.append(
            actor_id=actor_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details={
                "type": AuditDetailType.DATA_MODIFICATION.value,
                "modification_reason": "User data entry/update",
                "medical_record_update": "patient" in resource_type or "authorization" in resource_type,
            },
            ip_address=ip_address,
            user_agent=user_agent,
            before=before,
            after=after
        )

    def log_authorization_access(
        self,
        actor_id: str,
        authorization_id: str,
        action: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Optional[AuditEvent]:
        """Read or download of an authorization record"""
        return self.append(
            actor_id=actor_id,
            action=action,
            resource_type=ResourceType.AUTHORIZATION.value,
            resource_id=authorization_id,
            details={"type": AuditDetailType.AUTHORIZATION_ACCESS.value, "action": action},
            ip_address=ip_address,
            user_agent=user_agent
        )

    def log_document_access(
        self,
        actor_id: str,
        document_id: str,
        action: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Optional[AuditEvent]:
        return self.append(
            actor_id=actor_id,
            action=action,
            resource_type=ResourceType.DOCUMENT.value,
            resource_id=document_id,
            details={"type": AuditDetailType.DOCUMENT_ACCESS.value, "action": action},
            ip_address=ip_address,
            user_agent=user_agent
        )

    def log_login(
        self,
        actor_id: str,
        success: bool,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Optional[AuditEvent]:
        action = AuditAction.LOGIN_SUCCESS if success else AuditAction.LOGIN_FAILURE
        return self.append(
            actor_id=actor_id,
            action=action.value,
            resource_type=ResourceType.USER.value,
            resource_id=actor_id,
            details={"type": AuditDetailType.AUTHENTICATION.value, "success": success},
            ip_address=ip_address,
            user_agent=user_agent
        )

    def log_logout(
        self,
        actor_id: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Optional[AuditEvent]:
        return self.append(
            actor_id=actor_id,
            action=AuditAction.LOGOUT.value,
            resource_type=ResourceType.USER.value,
            resource_id=actor_id,
            details={"type": AuditDetailType.AUTHENTICATION.value},
            ip_address=ip_address,
            user_agent=user_agent
        )

    def log_data_export(
        self,
        actor_id: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Optional[AuditEvent]:
        """Bulk or single-record export"""
        return self.append(
            actor_id=actor_id,
            action=AuditAction.DATA_EXPORT.value,
            resource_type=resource_type,
            resource_id=resource_id,
            details={
                "type": AuditDetailType.DATA_EXPORT.value,
                "exported_at": format_iso(self.clock.now()),
            },
            ip_address=ip_address,
            user_agent=user_agent
        )
