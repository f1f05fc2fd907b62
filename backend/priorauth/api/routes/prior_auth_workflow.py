"""Prior Authorization Workflow API Routes"""
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Path, status
from pydantic import BaseModel, Field

from ..deps import RequestContext, get_actor_id_dep, get_request_context_dep, get_workflow_engine_dep
from ...domain.models import AuthorizationStep
from ...engine.engine import WorkflowEngine
from ...engine.step_catalog import TOTAL_STEPS
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()

# Handlers are plain ``def`` so the blocking engine calls, and the
# per-authorization lock, run on the threadpool instead of the event loop.


# ============================================================================
# Request/Response Models
# ============================================================================

class CompleteStepRequest(BaseModel):
    """Form data captured for a step"""
    form_data: Dict[str, Any] = Field(default_factory=dict, alias="formData")
    notes: Optional[str] = Field(None, max_length=5000)

    model_config = {"populate_by_name": True}


class GenerateFormsRequest(BaseModel):
    """Target state for the form package"""
    state: str = Field(..., min_length=2, max_length=2)
    form_type: Optional[str] = Field(None, alias="formType", max_length=50)

    model_config = {"populate_by_name": True}


class InitializeWorkflowResponse(BaseModel):
    authorization_id: str
    current_step: int
    total_steps: int
    steps: List[AuthorizationStep]


class GenerateFormsResponse(BaseModel):
    authorization_id: str
    state: str
    form_package_path: str


# ============================================================================
# Routes
# ============================================================================

@router.post(
    "/{authorization_id}/initialize",
    response_model=InitializeWorkflowResponse,
    status_code=status.HTTP_201_CREATED
)
def initialize_workflow(
    authorization_id: str,
    actor_id: str = Depends(get_actor_id_dep),
    context: RequestContext = Depends(get_request_context_dep),
    engine: WorkflowEngine = Depends(get_workflow_engine_dep)
):
    """Create the ten workflow steps; step 1 becomes active"""
    steps = engine.initialize_workflow(
        authorization_id,
        actor_id,
        ip_address=context.ip_address,
        user_agent=context.user_agent
    )
    return InitializeWorkflowResponse(
        authorization_id=authorization_id,
        current_step=1,
        total_steps=TOTAL_STEPS,
        steps=steps
    )


@router.post("/{authorization_id}/steps/{step_number}/complete", response_model=AuthorizationStep)
def complete_step(
    request: CompleteStepRequest,
    authorization_id: str,
    step_number: int = Path(...),
    actor_id: str = Depends(get_actor_id_dep),
    context: RequestContext = Depends(get_request_context_dep),
    engine: WorkflowEngine = Depends(get_workflow_engine_dep)
):
    """
    Complete the active step

    Out-of-range step numbers are rejected by the engine with a
    VALIDATION_ERROR before any storage access.
    """
    return engine.complete_step(
        authorization_id,
        step_number,
        request.form_data,
        actor_id,
        notes=request.notes,
        ip_address=context.ip_address,
        user_agent=context.user_agent
    )


@router.get("/{authorization_id}/current-step", response_model=AuthorizationStep)
def get_current_step(
    authorization_id: str,
    actor_id: str = Depends(get_actor_id_dep),
    engine: WorkflowEngine = Depends(get_workflow_engine_dep)
):
    """The in-progress step (404 when uninitialized or finished)"""
    step = engine.get_current_step(authorization_id)
    if step is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": {
                "code": "NO_CURRENT_STEP",
                "message": f"No active workflow step for authorization {authorization_id}",
                "details": {"authorization_id": authorization_id}
            }}
        )
    return step


@router.get("/{authorization_id}/steps", response_model=List[AuthorizationStep])
def get_workflow_steps(
    authorization_id: str,
    actor_id: str = Depends(get_actor_id_dep),
    engine: WorkflowEngine = Depends(get_workflow_engine_dep)
):
    """All steps in ascending order"""
    return engine.get_workflow_steps(authorization_id)


@router.post("/{authorization_id}/generate-forms", response_model=GenerateFormsResponse)
def generate_forms(
    request: GenerateFormsRequest,
    authorization_id: str,
    actor_id: str = Depends(get_actor_id_dep),
    context: RequestContext = Depends(get_request_context_dep),
    engine: WorkflowEngine = Depends(get_workflow_engine_dep)
):
    """Build the state-specific form package"""
    package_path = engine.generate_form_package(
        authorization_id,
        request.state,
        actor_id,
        form_type=request.form_type,
        ip_address=context.ip_address,
        user_agent=context.user_agent
    )
    logger.info(
        f"Form package generated for {authorization_id}",
        extra={"authorization_id": authorization_id, "actor_id": actor_id}
    )
    return GenerateFormsResponse(
        authorization_id=authorization_id,
        state=request.state.upper(),
        form_package_path=package_path
    )
