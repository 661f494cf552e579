"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from credit_workflow.domain.models import (
    Actor,
    ApplicantData,
    Application,
    AuditEntry,
    ContestationEvent,
    DecisionEvent,
    FinancialRatios,
    ScoreSummary,
)
from credit_workflow.domain.ratios import compute_ratios
from credit_workflow.domain.scoring import confidence_level
from credit_workflow.domain.serialization import applicant_data_to_dict, event_to_dict

_COMMON_EVENT_FIELDS = {
    "kind",
    "event_id",
    "application_id",
    "actor_id",
    "actor_role",
    "timestamp",
    "decision",
    "score",
    "prior_decision",
    "prior_score",
    "justification",
}


class ApplicantDataSchema(BaseModel):
    """Financial snapshot; business rules are checked by the workflow"""

    revenues: float = Field(..., description="Monthly revenues")
    charges: float = Field(..., description="Monthly charges")
    debt: float
    amount_asked: float
    guarantee_estimated_value: float = 0.0
    is_renewal: int = 0
    family_circumstances: str = ""
    activity: str = ""
    legal_form: str = ""

    def to_domain(self) -> ApplicantData:
        return ApplicantData(**self.model_dump())


class SubmitRequest(BaseModel):
    """Request body for POST /v1/applications"""

    applicant_id: Optional[str] = None
    applicant_data: ApplicantDataSchema


class ActorFields(BaseModel):
    actor_id: str = Field(..., min_length=1, description="User performing the action")
    actor_role: str = Field(..., min_length=1, description="Role used for the permission check")

    def actor(self) -> Actor:
        return Actor(actor_id=self.actor_id, role=self.actor_role)


class OverrideRequest(ActorFields):
    """Request body for POST /v1/applications/{id}/override"""

    action: str = Field(..., description="approve | reject | reevaluate")
    reason_code: str = ""
    justification: str = ""


class CorrectionRequest(ActorFields):
    """Request body for POST /v1/applications/{id}/corrections"""

    applicant_data: ApplicantDataSchema
    justification: str = ""


class ContestRequest(ActorFields):
    """Request body for POST /v1/applications/{id}/contestations"""

    reason_code: str = ""
    justification: str = ""
    proposed_score_adjustment: Optional[int] = None
    evidence: List[str] = Field(default_factory=list)


class RatiosSchema(BaseModel):
    debt_ratio: float
    remaining_to_live: float
    guarantee_ratio: float
    capacity_months: Optional[float] = None
    warnings: List[str]

    @classmethod
    def from_domain(cls, ratios: FinancialRatios) -> "RatiosSchema":
        return cls(
            debt_ratio=ratios.debt_ratio,
            remaining_to_live=ratios.remaining_to_live,
            guarantee_ratio=ratios.guarantee_ratio,
            capacity_months=ratios.capacity_months,
            warnings=list(ratios.warnings),
        )


class DecisionEventSchema(BaseModel):
    """One decision event; kind-specific fields live in `details`"""

    kind: str
    event_id: str
    actor_id: str
    actor_role: str
    timestamp: datetime
    decision: str
    score: float
    prior_decision: Optional[str] = None
    prior_score: Optional[float] = None
    justification: str
    details: Dict[str, Any]

    @classmethod
    def from_domain(cls, event: DecisionEvent) -> "DecisionEventSchema":
        payload = event_to_dict(event)
        return cls(
            kind=payload["kind"],
            event_id=payload["event_id"],
            actor_id=payload["actor_id"],
            actor_role=payload["actor_role"],
            timestamp=event.timestamp,
            decision=payload["decision"],
            score=payload["score"],
            prior_decision=payload["prior_decision"],
            prior_score=payload["prior_score"],
            justification=payload["justification"],
            details={k: v for k, v in payload.items() if k not in _COMMON_EVENT_FIELDS},
        )


class ApplicationResponse(BaseModel):
    """Current state of an application with its full history"""

    application_id: str
    applicant_id: Optional[str] = None
    applicant_data: Dict[str, Any]
    current_decision: str
    current_score: float
    confidence: str
    version: int
    ratios: RatiosSchema
    decision_history: List[DecisionEventSchema]
    pending_contestations: int

    @classmethod
    def from_domain(cls, application: Application) -> "ApplicationResponse":
        return cls(
            application_id=application.id,
            applicant_id=application.applicant_id,
            applicant_data=applicant_data_to_dict(application.applicant_data),
            current_decision=application.current_decision.value,
            current_score=application.current_score,
            confidence=confidence_level(application.current_score).value,
            version=application.version,
            ratios=RatiosSchema.from_domain(compute_ratios(application.applicant_data)),
            decision_history=[DecisionEventSchema.from_domain(e) for e in application.decision_history],
            pending_contestations=len(application.contestations),
        )


class ApplicationListResponse(BaseModel):
    """Response for GET /v1/applications"""

    applicant_id: Optional[str] = None
    decision: Optional[str] = None
    applications: List[ApplicationResponse]


class ScoreSummaryResponse(BaseModel):
    """Response for GET /v1/applications/summary"""

    total_applications: int
    approved: int
    rejected: int
    under_review: int
    average_score: Optional[float] = None
    approval_rate: float = Field(..., description="Percent of applications currently approved")
    total_amount_asked: float
    by_decision: Dict[str, int]

    @classmethod
    def from_domain(cls, summary: ScoreSummary) -> "ScoreSummaryResponse":
        return cls(
            total_applications=summary.total_applications,
            approved=summary.approved,
            rejected=summary.rejected,
            under_review=summary.under_review,
            average_score=summary.average_score,
            approval_rate=summary.approval_rate,
            total_amount_asked=summary.total_amount_asked,
            by_decision=dict(summary.by_decision),
        )


class ContestationSchema(BaseModel):
    contestation_id: str
    application_id: str
    actor_id: str
    reason_code: str
    justification: str
    proposed_score_adjustment: Optional[int] = None
    evidence: List[str]
    status: str
    decision_at_contest: str
    score_at_contest: float
    created_at: datetime

    @classmethod
    def from_domain(cls, event: ContestationEvent) -> "ContestationSchema":
        return cls(
            contestation_id=event.event_id,
            application_id=event.application_id,
            actor_id=event.actor_id,
            reason_code=event.reason_code,
            justification=event.justification,
            proposed_score_adjustment=event.proposed_score_adjustment,
            evidence=list(event.evidence),
            status=event.status.value,
            decision_at_contest=event.decision.value,
            score_at_contest=event.score,
            created_at=event.timestamp,
        )


class ContestationListResponse(BaseModel):
    contestations: List[ContestationSchema]


class AuditEntrySchema(BaseModel):
    application_id: str
    actor_id: str
    actor_role: str
    action: str
    justification: str
    timestamp: datetime
    details: Dict[str, Any]

    @classmethod
    def from_domain(cls, entry: AuditEntry) -> "AuditEntrySchema":
        return cls(
            application_id=entry.application_id,
            actor_id=entry.actor_id,
            actor_role=entry.actor_role,
            action=entry.action,
            justification=entry.justification,
            timestamp=entry.timestamp,
            details=entry.details,
        )


class AuditResponse(BaseModel):
    """Response for GET /v1/audit"""

    application_id: Optional[str] = None
    actor_id: Optional[str] = None
    entries: List[AuditEntrySchema]
