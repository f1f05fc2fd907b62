"""API Routes module"""
from fastapi import APIRouter

from .prior_auth_workflow import router as prior_auth_workflow_router
from .audit import router as audit_router

# Main API router
api_router = APIRouter()

api_router.include_router(prior_auth_workflow_router, prefix="/prior-auth-workflow", tags=["Prior Authorization Workflow"])
api_router.include_router(audit_router, prefix="/audit", tags=["Audit"])

__all__ = ["api_router"]
