"""Step Catalog - The ten fixed stages of a prior authorization"""
from dataclasses import dataclass
from typing import Optional, Tuple

from ..domain.enums import StepCategory


@dataclass(frozen=True)
class StepDefinition:
    """Static definition of one workflow stage"""
    step_number: int
    step_name: str
    description: str
    category: StepCategory
    allowed_form_fields: Tuple[str, ...]


PRIOR_AUTH_WORKFLOW_STEPS: Tuple[StepDefinition, ...] = (
    StepDefinition(
        step_number=1,
        step_name="Clinical Decision & Insurance Check",
        description="Determine medical necessity and verify PA requirements",
        category=StepCategory.CLINICAL_DECISION,
        allowed_form_fields=("treatmentType", "cptCode", "icd10Code", "clinicalJustification"),
    ),
    StepDefinition(
        step_number=2,
        step_name="Patient & Insurance Verification",
        description="Verify patient eligibility and insurance coverage",
        category=StepCategory.VERIFICATION,
        allowed_form_fields=("patientId", "insuranceId", "memberId", "groupNumber"),
    ),
    StepDefinition(
        step_number=3,
        step_name="Clinical Evidence Gathering",
        description="Collect provider notes, lab results, previous treatments",
        category=StepCategory.EVIDENCE_GATHERING,
        allowed_form_fields=("clinicalEvidence", "previousTreatments", "providerNotes"),
    ),
    StepDefinition(
        step_number=4,
        step_name="Documentation Preparation",
        description="Prepare clinical documentation and attestation",
        category=StepCategory.DOCUMENTATION,
        allowed_form_fields=("documents", "attestation", "medicalNecessity"),
    ),
    StepDefinition(
        step_number=5,
        step_name="Form Selection & Completion",
        description="Select state-specific forms and complete required fields",
        category=StepCategory.FORM_SELECTION,
        allowed_form_fields=("stateFormTemplate", "formData", "procedureCodes"),
    ),
    StepDefinition(
        step_number=6,
        step_name="Prior Authorization Submission",
        description="Submit PA request through appropriate channel",
        category=StepCategory.SUBMISSION,
        allowed_form_fields=("submissionMethod", "submissionDate", "trackingNumber"),
    ),
    StepDefinition(
        step_number=7,
        step_name="Tracking & Follow-up",
        description="Monitor submission status and respond to requests",
        category=StepCategory.TRACKING,
        allowed_form_fields=("status", "reviewProgress", "additionalRequests"),
    ),
    StepDefinition(
        step_number=8,
        step_name="Decision Processing",
        description="Process approval/denial and next steps",
        category=StepCategory.DECISION,
        allowed_form_fields=("decision", "authorizationNumber", "denialReason", "appealOptions"),
    ),
    StepDefinition(
        step_number=9,
        step_name="Service Authorization",
        description="Authorize service delivery and claim submission",
        category=StepCategory.SERVICE_AUTHORIZATION,
        allowed_form_fields=("serviceAuthorization", "expirationDate", "serviceDelivery"),
    ),
    StepDefinition(
        step_number=10,
        step_name="Renewal & Monitoring",
        description="Track renewals and ongoing monitoring",
        category=StepCategory.RENEWAL,
        allowed_form_fields=("renewalTracking", "continuedNecessity", "outcomeMonitoring"),
    ),
)

TOTAL_STEPS = len(PRIOR_AUTH_WORKFLOW_STEPS)
FIRST_STEP = 1
WORKFLOW_COMPLETE_STEP = TOTAL_STEPS + 1  # current_step value once step 10 is done


def is_valid_step_number(step_number: object) -> bool:
    """True for an int in 1..TOTAL_STEPS (bools excluded)"""
    return (
        isinstance(step_number, int)
        and not isinstance(step_number, bool)
        and FIRST_STEP <= step_number <= TOTAL_STEPS
    )


def get_step_definition(step_number: int) -> Optional[StepDefinition]:
    """Catalog entry for a step number, or None when out of range"""
    if not is_valid_step_number(step_number):
        return None
    return PRIOR_AUTH_WORKFLOW_STEPS[step_number - 1]
