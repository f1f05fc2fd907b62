"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from .enums import StepStatus, ChangeType, FieldChangeType
from ..utils.time import ensure_utc


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


# ============================================================================
# Workflow Steps
# ============================================================================

class AuthorizationStep(BaseModel):
    """One of the ten workflow stages, materialized for a single authorization"""
    model_config = ConfigDict(extra="ignore")

    step_id: str = Field(..., description="Unique step ID")
    authorization_id: str = Field(..., description="Parent authorization ID")
    step_number: int = Field(..., ge=1, description="Position in the catalog (1-based)")
    step_name: str = Field(..., description="Catalog name copied at creation time")
    description: Optional[str] = Field(None, description="Catalog description copied at creation time")
    status: StepStatus = Field(default=StepStatus.PENDING)
    assigned_to: Optional[str] = Field(None, description="Actor currently responsible")
    completed_by: Optional[str] = None
    completed_at: Optional[datetime] = None
    form_data: Optional[Dict[str, Any]] = Field(None, description="Open map of captured form fields")
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    version: int = Field(default=1, description="Optimistic concurrency counter")

    @field_validator("completed_at", "created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    def snapshot(self) -> Dict[str, Any]:
        """JSON-safe copy used as audit before/after data"""
        return self.model_dump(mode="json")


# ============================================================================
# Authorization (external collaborator record)
# ============================================================================

class Authorization(BaseModel):
    """Workflow-relevant slice of a prior authorization"""
    model_config = ConfigDict(extra="ignore")

    authorization_id: str
    current_step: int = Field(default=1, description="Number of the in-progress step; total_steps + 1 when done")
    total_steps: int = Field(default=10)
    form_package_path: Optional[str] = None
    generated_form_data: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class StateFormTemplate(BaseModel):
    """State-specific form template used for package generation"""
    model_config = ConfigDict(extra="ignore")

    template_id: str
    state: str = Field(..., min_length=2, max_length=2)
    form_type: str = Field(default="prior_auth", description="prior_auth, appeal, ...")
    form_name: str
    template_path: str
    fields: List[Any] = Field(default_factory=list, description="Form field definitions")
    is_active: bool = True
    version: str = "1.0"


# ============================================================================
# Change-sets & Audit
# ============================================================================

class FieldChange(BaseModel):
    """
    Difference for a single key

    ``old_value`` is left unset for ADDED and ``new_value`` for REMOVED, so
    serialization with ``exclude_unset`` distinguishes "absent" from null.
    """
    old_value: Any = None
    new_value: Any = None
    change_type: FieldChangeType


class ChangeSet(BaseModel):
    """Structured diff between two record states"""
    type: ChangeType
    new_fields: Optional[List[str]] = None
    removed_fields: Optional[List[str]] = None
    modified_fields: Optional[Dict[str, FieldChange]] = None

    def to_document(self) -> Dict[str, Any]:
        """Canonical serialized form stored on audit records"""
        return self.model_dump(mode="json", exclude_unset=True)


class AuditEvent(BaseModel):
    """Immutable audit record"""
    model_config = ConfigDict(extra="ignore")

    audit_event_id: str
    sequence: int = Field(..., description="Monotonic write order; breaks timestamp ties")
    actor_id: str
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    before_data: Optional[Dict[str, Any]] = None
    after_data: Optional[Dict[str, Any]] = None
    field_changes: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime
    correlation_id: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class AuditQueryFilters(BaseModel):
    """Filters accepted by the audit query surface"""
    user_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    action: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
