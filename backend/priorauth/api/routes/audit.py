"""Audit API Routes - Read-only compliance queries"""
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ..deps import get_actor_id_dep, get_audit_writer_dep
from ...domain.models import AuditEvent, AuditQueryFilters
from ...engine.audit_writer import AuditWriter

router = APIRouter()


class AuditEventListResponse(BaseModel):
    """Paged audit events, newest first"""
    items: List[AuditEvent]
    page: int
    page_size: int
    total: int


@router.get("/events", response_model=AuditEventListResponse)
def list_audit_events(
    user_id: Optional[str] = Query(None),
    resource_type: Optional[str] = Query(None),
    resource_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    actor_id: str = Depends(get_actor_id_dep),
    audit_writer: AuditWriter = Depends(get_audit_writer_dep)
):
    """Query the audit trail by user, resource, action and time window"""
    filters = AuditQueryFilters(
        user_id=user_id,
        resource_type=resource_type,
        resource_id=resource_id,
        action=action,
        date_from=date_from,
        date_to=date_to
    )
    skip = (page - 1) * page_size
    return AuditEventListResponse(
        items=audit_writer.query(filters, skip=skip, limit=page_size),
        page=page,
        page_size=page_size,
        total=audit_writer.count(filters)
    )
