"""API Dependencies - Common dependencies for routes"""
from functools import lru_cache
from typing import Optional
from fastapi import Depends, Header, Request
from pydantic import BaseModel

from ..domain.errors import AuthenticationError
from ..engine.engine import WorkflowEngine
from ..engine.audit_writer import AuditWriter
from ..utils.logger import set_correlation_id
from ..utils.idgen import generate_correlation_id


class RequestContext(BaseModel):
    """Caller details forwarded to the audit trail"""
    correlation_id: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


async def get_correlation_id_dep(
    x_correlation_id: Optional[str] = Header(None, alias="X-Correlation-Id")
) -> str:
    """
    Get or generate correlation ID for request tracing

    If client provides X-Correlation-Id, use it.
    Otherwise generate a new one.
    """
    correlation_id = x_correlation_id or generate_correlation_id()
    set_correlation_id(correlation_id)
    return correlation_id


async def get_actor_id_dep(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id")
) -> str:
    """
    Acting user, as asserted by the upstream auth gateway

    Raises:
        AuthenticationError: 401 if the header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationError("X-User-Id header is missing")
    return x_user_id.strip()


async def get_request_context_dep(
    request: Request,
    correlation_id: str = Depends(get_correlation_id_dep)
) -> RequestContext:
    """Client IP and User-Agent for audit records"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None
    return RequestContext(
        correlation_id=correlation_id,
        ip_address=ip_address,
        user_agent=request.headers.get("User-Agent")
    )


@lru_cache()
def _default_engine() -> WorkflowEngine:
    return WorkflowEngine()


def get_workflow_engine_dep() -> WorkflowEngine:
    """Process-wide engine; overridden in tests"""
    return _default_engine()


def get_audit_writer_dep(engine: WorkflowEngine = Depends(get_workflow_engine_dep)) -> AuditWriter:
    """The engine's audit writer, so both share one sink"""
    return engine.audit_writer
