"""
Form Payloads - Typed views over each step's open form data

Steps capture an open map of field values. Each step category gets its own
payload model so package generation can branch on the payload type instead
of probing keys. Known fields are declared with their wire (camelCase)
aliases; any extra keys are kept as-is.
"""
from typing import Any, Dict, Iterable, Literal, Mapping, Optional, Type, Union
from pydantic import BaseModel, ConfigDict, Field

from .enums import StepCategory
from .errors import ValidationError

RESERVED_FORM_KEYS = frozenset({"step_category"})


class BaseFormPayload(BaseModel):
    """Common behavior for all step payloads"""
    model_config = ConfigDict(extra="allow")

    step_category: StepCategory

    def values(self) -> Dict[str, Any]:
        """Field values keyed exactly as they were captured"""
        return self.model_dump(by_alias=True, exclude={"step_category"}, exclude_unset=True)


class ClinicalDecisionPayload(BaseFormPayload):
    step_category: Literal[StepCategory.CLINICAL_DECISION] = StepCategory.CLINICAL_DECISION
    treatment_type: Optional[Any] = Field(None, alias="treatmentType")
    cpt_code: Optional[Any] = Field(None, alias="cptCode")
    icd10_code: Optional[Any] = Field(None, alias="icd10Code")
    clinical_justification: Optional[Any] = Field(None, alias="clinicalJustification")


class VerificationPayload(BaseFormPayload):
    step_category: Literal[StepCategory.VERIFICATION] = StepCategory.VERIFICATION
    patient_id: Optional[Any] = Field(None, alias="patientId")
    insurance_id: Optional[Any] = Field(None, alias="insuranceId")
    member_id: Optional[Any] = Field(None, alias="memberId")
    group_number: Optional[Any] = Field(None, alias="groupNumber")


class EvidenceGatheringPayload(BaseFormPayload):
    step_category: Literal[StepCategory.EVIDENCE_GATHERING] = StepCategory.EVIDENCE_GATHERING
    clinical_evidence: Optional[Any] = Field(None, alias="clinicalEvidence")
    previous_treatments: Optional[Any] = Field(None, alias="previousTreatments")
    provider_notes: Optional[Any] = Field(None, alias="providerNotes")


class DocumentationPayload(BaseFormPayload):
    step_category: Literal[StepCategory.DOCUMENTATION] = StepCategory.DOCUMENTATION
    documents: Optional[Any] = None
    attestation: Optional[Any] = None
    medical_necessity: Optional[Any] = Field(None, alias="medicalNecessity")


class FormSelectionPayload(BaseFormPayload):
    step_category: Literal[StepCategory.FORM_SELECTION] = StepCategory.FORM_SELECTION
    state_form_template: Optional[Any] = Field(None, alias="stateFormTemplate")
    form_data: Optional[Any] = Field(None, alias="formData")
    procedure_codes: Optional[Any] = Field(None, alias="procedureCodes")


class SubmissionPayload(BaseFormPayload):
    step_category: Literal[StepCategory.SUBMISSION] = StepCategory.SUBMISSION
    submission_method: Optional[Any] = Field(None, alias="submissionMethod")
    submission_date: Optional[Any] = Field(None, alias="submissionDate")
    tracking_number: Optional[Any] = Field(None, alias="trackingNumber")


class TrackingPayload(BaseFormPayload):
    step_category: Literal[StepCategory.TRACKING] = StepCategory.TRACKING
    status: Optional[Any] = None
    review_progress: Optional[Any] = Field(None, alias="reviewProgress")
    additional_requests: Optional[Any] = Field(None, alias="additionalRequests")


class DecisionPayload(BaseFormPayload):
    step_category: Literal[StepCategory.DECISION] = StepCategory.DECISION
    decision: Optional[Any] = None
    authorization_number: Optional[Any] = Field(None, alias="authorizationNumber")
    denial_reason: Optional[Any] = Field(None, alias="denialReason")
    appeal_options: Optional[Any] = Field(None, alias="appealOptions")


class ServiceAuthorizationPayload(BaseFormPayload):
    step_category: Literal[StepCategory.SERVICE_AUTHORIZATION] = StepCategory.SERVICE_AUTHORIZATION
    service_authorization: Optional[Any] = Field(None, alias="serviceAuthorization")
    expiration_date: Optional[Any] = Field(None, alias="expirationDate")
    service_delivery: Optional[Any] = Field(None, alias="serviceDelivery")


class RenewalPayload(BaseFormPayload):
    step_category: Literal[StepCategory.RENEWAL] = StepCategory.RENEWAL
    renewal_tracking: Optional[Any] = Field(None, alias="renewalTracking")
    continued_necessity: Optional[Any] = Field(None, alias="continuedNecessity")
    outcome_monitoring: Optional[Any] = Field(None, alias="outcomeMonitoring")


FormPayload = Union[
    ClinicalDecisionPayload,
    VerificationPayload,
    EvidenceGatheringPayload,
    DocumentationPayload,
    FormSelectionPayload,
    SubmissionPayload,
    TrackingPayload,
    DecisionPayload,
    ServiceAuthorizationPayload,
    RenewalPayload,
]

PAYLOAD_TYPES: Dict[StepCategory, Type[BaseFormPayload]] = {
    StepCategory.CLINICAL_DECISION: ClinicalDecisionPayload,
    StepCategory.VERIFICATION: VerificationPayload,
    StepCategory.EVIDENCE_GATHERING: EvidenceGatheringPayload,
    StepCategory.DOCUMENTATION: DocumentationPayload,
    StepCategory.FORM_SELECTION: FormSelectionPayload,
    StepCategory.SUBMISSION: SubmissionPayload,
    StepCategory.TRACKING: TrackingPayload,
    StepCategory.DECISION: DecisionPayload,
    StepCategory.SERVICE_AUTHORIZATION: ServiceAuthorizationPayload,
    StepCategory.RENEWAL: RenewalPayload,
}


def validate_form_data(form_data: Any) -> Dict[str, Any]:
    """
    Check the shape of submitted form data

    Raises:
        ValidationError: if form_data is not a mapping of string keys, or
            uses a reserved key
    """
    if not isinstance(form_data, Mapping):
        raise ValidationError(
            "Form data must be an object of field name to value",
            details={"received_type": type(form_data).__name__}
        )
    bad_keys = [key for key in form_data if not isinstance(key, str) or not key]
    if bad_keys:
        raise ValidationError(
            "Form field names must be non-empty strings",
            details={"invalid_keys": [repr(key) for key in bad_keys]}
        )
    reserved = sorted(RESERVED_FORM_KEYS.intersection(form_data))
    if reserved:
        raise ValidationError(
            "Form data uses reserved field names",
            details={"reserved_keys": reserved}
        )
    return dict(form_data)


def build_form_payload(category: StepCategory, form_data: Optional[Mapping[str, Any]]) -> FormPayload:
    """Wrap a step's raw form data in the payload type for its category"""
    return PAYLOAD_TYPES[category].model_validate(dict(form_data or {}))


def summarize_payloads(payloads: Iterable[FormPayload]) -> Dict[str, Any]:
    """Pull the headline facts of a package out of the typed payloads"""
    summary: Dict[str, Any] = {}
    for payload in payloads:
        if isinstance(payload, ClinicalDecisionPayload):
            summary["treatment_type"] = payload.treatment_type
            summary["cpt_code"] = payload.cpt_code
            summary["icd10_code"] = payload.icd10_code
        elif isinstance(payload, VerificationPayload):
            summary["member_id"] = payload.member_id
        elif isinstance(payload, SubmissionPayload):
            summary["submission_method"] = payload.submission_method
            summary["tracking_number"] = payload.tracking_number
        elif isinstance(payload, DecisionPayload):
            summary["decision"] = payload.decision
            summary["authorization_number"] = payload.authorization_number
            summary["denial_reason"] = payload.denial_reason
        elif isinstance(payload, ServiceAuthorizationPayload):
            summary["expiration_date"] = payload.expiration_date
    return {key: value for key, value in summary.items() if value is not None}
