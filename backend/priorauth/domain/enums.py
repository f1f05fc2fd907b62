"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class StepStatus(str, Enum):
    """Runtime status of a single workflow step"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"  # Administrative override; terminal like COMPLETED

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.COMPLETED, StepStatus.SKIPPED)


class StepCategory(str, Enum):
    """Category of each catalog step, used to tag form payloads"""
    CLINICAL_DECISION = "clinical_decision"
    VERIFICATION = "verification"
    EVIDENCE_GATHERING = "evidence_gathering"
    DOCUMENTATION = "documentation"
    FORM_SELECTION = "form_selection"
    SUBMISSION = "submission"
    TRACKING = "tracking"
    DECISION = "decision"
    SERVICE_AUTHORIZATION = "service_authorization"
    RENEWAL = "renewal"


class ChangeType(str, Enum):
    """Kind of change-set produced by the differ"""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class FieldChangeType(str, Enum):
    """Classification of a single field difference"""
    ADDED = "ADDED"
    REMOVED = "REMOVED"
    MODIFIED = "MODIFIED"


class AuditAction(str, Enum):
    """Well-known audit actions; the audit writer also accepts free-form verbs"""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    VIEW = "VIEW"
    DOWNLOAD = "DOWNLOAD"
    EXPORT = "EXPORT"
    DATA_EXPORT = "DATA_EXPORT"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILURE = "LOGIN_FAILURE"
    LOGOUT = "LOGOUT"
    WORKFLOW_INITIALIZED = "WORKFLOW_INITIALIZED"
    STEP_COMPLETED = "STEP_COMPLETED"
    FORMS_GENERATED = "FORMS_GENERATED"


class AuditDetailType(str, Enum):
    """Value of ``details.type`` stamped by the audit helpers"""
    PRIOR_AUTH_WORKFLOW = "PRIOR_AUTH_WORKFLOW"
    PHI_ACCESS = "PHI_ACCESS"
    AUTHORIZATION_ACCESS = "AUTHORIZATION_ACCESS"
    DATA_MODIFICATION = "DATA_MODIFICATION"
    DOCUMENT_ACCESS = "DOCUMENT_ACCESS"
    AUTHENTICATION = "AUTHENTICATION"
    DATA_EXPORT = "DATA_EXPORT"


class ResourceType(str, Enum):
    """Resource types recorded in the audit trail"""
    PRIOR_AUTHORIZATION = "prior_authorization"
    AUTHORIZATION = "authorization"
    PATIENT = "patient"
    DOCUMENT = "document"
    USER = "user"
