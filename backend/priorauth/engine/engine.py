"""
Workflow Engine - Ten-stage prior authorization state machine

The WorkflowEngine owns the per-authorization step rows and the
authorization's ``current_step`` pointer. It is the only writer of either.

=============================================================================
MODULE STRUCTURE
=============================================================================

1. INITIALIZATION
   - initialize_workflow: materialize the ten catalog steps

2. STEP COMPLETION
   - complete_step: complete the active step and advance the pointer
   - _advance: activate step N+1 and move the pointer past N
   - _resume_advance: roll forward a completion whose advance failed

3. READS
   - get_current_step / get_workflow_steps

4. FORM PACKAGE
   - generate_form_package: merge captured form data with a state template

=============================================================================
CONCURRENCY
=============================================================================

Every mutation runs under a per-authorization KeyedLock. Inside the lock
the storage writes are still guarded: step updates compare-and-set on the
step version and expected status, and the pointer moves with a
compare-and-set on its previous value. Audit events are written inside the
critical section, right after the mutation they describe; an audit failure
never undoes the mutation.

There is no multi-document transaction. A storage failure after step N is
stored as completed leaves the advance half-done; the next complete_step
on the authorization finishes it before doing anything else.

=============================================================================
"""

from typing import Any, Dict, List, Mapping, Optional

from pymongo.database import Database

from ..domain.models import AuthorizationStep
from ..domain.enums import AuditAction, StepStatus
from ..domain.errors import (
    AlreadyInitializedError, AuthorizationNotFoundError, InvalidStateError,
    OutOfSequenceError, StepAlreadyCompletedError, StepNotFoundError,
    TemplateNotFoundError, ValidationError
)
from ..domain.form_payloads import build_form_payload, summarize_payloads, validate_form_data
from ..repositories.authorization_repo import AuthorizationRepository
from ..repositories.form_template_repo import FormTemplateRepository
from ..repositories.step_repo import StepRepository
from .audit_writer import AuditWriter
from .keyed_lock import KeyedLock
from .step_catalog import (
    PRIOR_AUTH_WORKFLOW_STEPS, TOTAL_STEPS, FIRST_STEP, WORKFLOW_COMPLETE_STEP,
    get_step_definition, is_valid_step_number
)
from ..config.settings import settings
from ..utils.idgen import generate_step_id
from ..utils.time import Clock, SystemClock, epoch_millis, format_iso
from ..utils.logger import get_logger, get_context_logger

logger = get_logger(__name__)


class WorkflowEngine:
    """
    The Workflow Engine - Orchestrates the prior authorization stages

    Responsibilities:
    - Create the ten step rows for an authorization
    - Enforce strict step order through the current step pointer
    - Hand before/after snapshots of every mutation to the AuditWriter
    - Assemble state form packages from captured form data
    """

    def __init__(
        self,
        database: Optional[Database] = None,
        clock: Optional[Clock] = None,
        step_repo: Optional[StepRepository] = None,
        authorization_repo: Optional[AuthorizationRepository] = None,
        template_repo: Optional[FormTemplateRepository] = None,
        audit_writer: Optional[AuditWriter] = None,
        lock: Optional[KeyedLock] = None
    ):
        self.clock = clock or SystemClock()
        self.step_repo = step_repo or StepRepository(database)
        self.authorization_repo = authorization_repo or AuthorizationRepository(database)
        self.template_repo = template_repo or FormTemplateRepository(database)
        self.audit_writer = audit_writer or AuditWriter(database, clock=self.clock)
        self.lock = lock or KeyedLock()

    # =========================================================================
    # Initialization
    # =========================================================================

    def initialize_workflow(
        self,
        authorization_id: str,
        actor_id: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> List[AuthorizationStep]:
        """
        Create the ten workflow steps for an authorization

        Step 1 starts in_progress and is assigned to the actor; the rest are
        pending and unassigned.

        Raises:
            AuthorizationNotFoundError: unknown authorization
            AlreadyInitializedError: steps already exist
        """
        log = get_context_logger(__name__, authorization_id=authorization_id, actor_id=actor_id)

        with self.lock.hold(authorization_id):
            if self.authorization_repo.get_current_step_number(authorization_id) is None:
                raise AuthorizationNotFoundError(
                    f"Authorization {authorization_id} not found",
                    details={"authorization_id": authorization_id}
                )
            if self.step_repo.count_steps(authorization_id) > 0:
                raise AlreadyInitializedError(
                    f"Workflow already initialized for authorization {authorization_id}",
                    details={"authorization_id": authorization_id}
                )

            now = self.clock.now()
            steps = []
            for definition in PRIOR_AUTH_WORKFLOW_STEPS:
                is_first = definition.step_number == FIRST_STEP
                steps.append(AuthorizationStep(
                    step_id=generate_step_id(authorization_id, definition.step_number),
                    authorization_id=authorization_id,
                    step_number=definition.step_number,
                    step_name=definition.step_name,
                    description=definition.description,
                    notes=definition.description,
                    status=StepStatus.IN_PROGRESS if is_first else StepStatus.PENDING,
                    assigned_to=actor_id if is_first else None,
                    created_at=now,
                    updated_at=now
                ))

            # Unique index on (authorization_id, step_number) catches a
            # racing initializer in another process
            self.step_repo.create_steps(authorization_id, steps)
            self.authorization_repo.set_current_step_number(authorization_id, FIRST_STEP)

            self.audit_writer.log_prior_auth_activity(
                actor_id=actor_id,
                authorization_id=authorization_id,
                action=AuditAction.WORKFLOW_INITIALIZED.value,
                step=f"step_{FIRST_STEP}",
                before=None,
                after={"step_count": TOTAL_STEPS, "status": "started"},
                ip_address=ip_address,
                user_agent=user_agent
            )

        log.info(f"Initialized {TOTAL_STEPS}-step workflow")
        return steps

    # =========================================================================
    # Step Completion
    # =========================================================================

    def complete_step(
        self,
        authorization_id: str,
        step_number: int,
        form_data: Mapping[str, Any],
        actor_id: str,
        notes: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> AuthorizationStep:
        """
        Complete the active step and advance the workflow

        Algorithm:
        1. Validate the step number and form data (no storage access)
        2. Under the authorization lock, load the step and the pointer
        3. Finish any advance left half-done by an earlier attempt
        4. Reject unknown, out-of-sequence or already completed steps
        5. Mark the step completed (CAS on version and in_progress status)
        6. Write the STEP_COMPLETED audit event
        7. Activate step N+1 and move the pointer (to 11 after the last step)

        A retry of a step whose completion was stored but whose advance
        failed returns the stored step; the retried form data is ignored.

        Raises:
            ValidationError, StepNotFoundError, OutOfSequenceError,
            StepAlreadyCompletedError, ConcurrencyError
        """
        if not is_valid_step_number(step_number):
            raise ValidationError(
                f"Step number must be an integer between {FIRST_STEP} and {TOTAL_STEPS}",
                details={"authorization_id": authorization_id, "step_number": step_number}
            )
        captured = validate_form_data(form_data)
        definition = get_step_definition(step_number)

        log = get_context_logger(
            __name__,
            authorization_id=authorization_id,
            step_number=step_number,
            actor_id=actor_id
        )

        with self.lock.hold(authorization_id):
            step = self.step_repo.get_step(authorization_id, step_number)
            if step is None:
                raise StepNotFoundError(
                    f"Workflow step {step_number} not found for authorization {authorization_id}",
                    details={"authorization_id": authorization_id, "step_number": step_number}
                )

            current_step = self.authorization_repo.get_current_step_number(authorization_id)
            if current_step is not None and is_valid_step_number(current_step):
                stalled = step if current_step == step_number else self.step_repo.get_step(
                    authorization_id, current_step
                )
                if stalled is not None and stalled.status == StepStatus.COMPLETED:
                    current_step = self._resume_advance(stalled, log)
                    if stalled.step_number == step_number:
                        return stalled
                    step = self.step_repo.get_step_or_raise(authorization_id, step_number)

            if current_step != step_number:
                raise OutOfSequenceError(
                    f"Step {step_number} is not the current step",
                    details={
                        "authorization_id": authorization_id,
                        "step_number": step_number,
                        "current_step": current_step,
                    }
                )

            if step.status.is_terminal:
                raise StepAlreadyCompletedError(
                    f"Step {step_number} is already {step.status.value}",
                    details={"authorization_id": authorization_id, "step_number": step_number}
                )
            if step.status != StepStatus.IN_PROGRESS:
                raise InvalidStateError(
                    f"Step {step_number} is not active (status: {step.status.value})",
                    details={
                        "authorization_id": authorization_id,
                        "step_number": step_number,
                        "status": step.status.value,
                    }
                )

            now = self.clock.now()
            completed = self.step_repo.update_step(
                step,
                {
                    "status": StepStatus.COMPLETED,
                    "completed_by": actor_id,
                    "completed_at": now,
                    "form_data": captured,
                    "notes": notes or step.notes,
                    "updated_at": now,
                },
                expected_status=StepStatus.IN_PROGRESS
            )

            self.audit_writer.log_prior_auth_activity(
                actor_id=actor_id,
                authorization_id=authorization_id,
                action=AuditAction.STEP_COMPLETED.value,
                step=f"step_{step_number}",
                before=step.snapshot(),
                after=completed.snapshot(),
                ip_address=ip_address,
                user_agent=user_agent,
                details={"step_name": definition.step_name}
            )

            next_pointer = self._advance(authorization_id, step_number, actor_id)

        if next_pointer == WORKFLOW_COMPLETE_STEP:
            log.info("Completed final workflow step")
        else:
            log.info(f"Completed step, workflow advanced to step {next_pointer}")
        return completed

    def _advance(self, authorization_id: str, step_number: int, actor_id: str) -> int:
        """
        Activate step N+1 (if still pending) and move the pointer past N

        Safe to repeat: an already active next step is left alone and the
        pointer CAS only applies while it still reads N.
        """
        if step_number < TOTAL_STEPS:
            next_step = self.step_repo.get_step_or_raise(authorization_id, step_number + 1)
            if next_step.status == StepStatus.PENDING:
                self._activate_step(next_step, actor_id)
        next_pointer = step_number + 1 if step_number < TOTAL_STEPS else WORKFLOW_COMPLETE_STEP
        self.authorization_repo.set_current_step_number(
            authorization_id,
            next_pointer,
            expected=step_number
        )
        return next_pointer

    def _resume_advance(self, stalled: AuthorizationStep, log) -> int:
        """Roll forward a completion whose activation or pointer move never landed"""
        log.warning(
            f"Step {stalled.step_number} completed without advancing; resuming advance",
            extra={"step_number": stalled.step_number}
        )
        return self._advance(stalled.authorization_id, stalled.step_number, stalled.completed_by)

    def _activate_step(self, step: AuthorizationStep, actor_id: Optional[str]) -> AuthorizationStep:
        """Move a pending step to in_progress and assign it to the actor"""
        return self.step_repo.update_step(
            step,
            {
                "status": StepStatus.IN_PROGRESS,
                "assigned_to": actor_id,
                "updated_at": self.clock.now(),
            },
            expected_status=StepStatus.PENDING
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def get_current_step(self, authorization_id: str) -> Optional[AuthorizationStep]:
        """The in-progress step, or None when uninitialized, unknown or finished"""
        current_step = self.authorization_repo.get_current_step_number(authorization_id)
        if current_step is None or not is_valid_step_number(current_step):
            return None
        return self.step_repo.get_step(authorization_id, current_step)

    def get_workflow_steps(self, authorization_id: str) -> List[AuthorizationStep]:
        """All steps in ascending order; empty when uninitialized"""
        return self.step_repo.list_steps(authorization_id)

    # =========================================================================
    # Form Package
    # =========================================================================

    def generate_form_package(
        self,
        authorization_id: str,
        state: str,
        actor_id: str,
        form_type: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> str:
        """
        Assemble the state-specific form package for an authorization

        Each step's form data is read through its typed payload and merged in
        step order, so a later step overwrites a field captured earlier.

        Returns:
            Path of the generated package

        Raises:
            ValidationError: state is not a two-letter code
            AuthorizationNotFoundError, TemplateNotFoundError
        """
        if not isinstance(state, str) or len(state.strip()) != 2 or not state.strip().isalpha():
            raise ValidationError(
                "State must be a two-letter code",
                details={"authorization_id": authorization_id, "state": state}
            )
        state = state.strip().upper()
        form_type = form_type or settings.default_form_type

        with self.lock.hold(authorization_id):
            authorization = self.authorization_repo.get_authorization(authorization_id)
            if authorization is None:
                raise AuthorizationNotFoundError(
                    f"Authorization {authorization_id} not found",
                    details={"authorization_id": authorization_id}
                )

            template = self.template_repo.get_template(state, form_type)
            if template is None:
                raise TemplateNotFoundError(
                    f"No form template found for state: {state}",
                    details={"authorization_id": authorization_id, "state": state, "form_type": form_type}
                )

            payloads = []
            workflow_data: Dict[str, Any] = {}
            for step in self.step_repo.list_steps(authorization_id):
                if not step.form_data:
                    continue
                definition = get_step_definition(step.step_number)
                if definition is None:
                    continue
                payload = build_form_payload(definition.category, step.form_data)
                payloads.append(payload)
                workflow_data.update(payload.values())

            now = self.clock.now()
            package_path = (
                f"{settings.form_package_base_path.rstrip('/')}/"
                f"{authorization_id}-{state}-{epoch_millis(now)}.json"
            )
            package_data = {
                "authorization_id": authorization_id,
                "state": state,
                "form_type": form_type,
                "workflow_data": workflow_data,
                "summary": summarize_payloads(payloads),
                "template": template.model_dump(mode="json"),
                "generated_at": format_iso(now),
            }
            self.authorization_repo.set_form_package(authorization_id, package_path, package_data)

            self.audit_writer.log_prior_auth_activity(
                actor_id=actor_id,
                authorization_id=authorization_id,
                action=AuditAction.FORMS_GENERATED.value,
                step=f"step_{authorization.current_step}",
                before=None,
                after={"state": state, "form_package_path": package_path},
                ip_address=ip_address,
                user_agent=user_agent
            )

        logger.info(
            f"Generated {state} form package: {package_path}",
            extra={"authorization_id": authorization_id, "actor_id": actor_id}
        )
        return package_path
