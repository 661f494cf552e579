"""Domain models - pure Python dataclasses representing the decision workflow"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple

SYSTEM_ACTOR = "system"
SYSTEM_ROLE = "system"


class DecisionState(str, Enum):
    """Current truth of an application's decision"""

    AUTO_APPROVED = "AUTO_APPROVED"
    AUTO_REJECTED = "AUTO_REJECTED"
    MANUAL_APPROVED = "MANUAL_APPROVED"
    MANUAL_REJECTED = "MANUAL_REJECTED"
    UNDER_REVIEW = "UNDER_REVIEW"


class EventKind(str, Enum):
    AUTO_SCORE = "AUTO_SCORE"
    MANUAL_OVERRIDE = "MANUAL_OVERRIDE"
    DATA_CORRECTION = "DATA_CORRECTION"
    CONTESTATION = "CONTESTATION"


class OverrideAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REEVALUATE = "reevaluate"


class ConfidenceLevel(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class ContestationStatus(str, Enum):
    # Only PENDING exists: contestations are queued for managerial review
    PENDING = "PENDING"


@dataclass(frozen=True)
class ApplicantData:
    """Financial and personal snapshot used for scoring (monthly amounts)"""

    revenues: float
    charges: float
    debt: float
    amount_asked: float
    guarantee_estimated_value: float = 0.0
    is_renewal: int = 0
    family_circumstances: str = ""
    activity: str = ""
    legal_form: str = ""

    def changes_to(self, other: "ApplicantData") -> Dict[str, Dict[str, Any]]:
        """Structured diff {field: {from, to}} of the fields that differ"""
        changes = {}
        for f in fields(self):
            before = getattr(self, f.name)
            after = getattr(other, f.name)
            if before != after:
                changes[f.name] = {"from": before, "to": after}
        return changes


@dataclass(frozen=True)
class ShapValue:
    """Contribution of one feature to the predicted probability"""

    feature: str
    impact: float
    value: Any


@dataclass(frozen=True)
class ScoringResult:
    """Output of the scoring oracle"""

    probability: float
    shap_values: Tuple[ShapValue, ...] = ()
    risk_factors: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Actor:
    """Who performs a transition"""

    actor_id: str
    role: str


@dataclass(frozen=True)
class FinancialRatios:
    """Ratios derived from applicant data, recomputed on every read"""

    debt_ratio: float  # percent of monthly revenues
    remaining_to_live: float
    guarantee_ratio: float  # percent of amount asked
    capacity_months: Optional[float]
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True, kw_only=True)
class DecisionEvent:
    """
    Immutable record of one transition.

    `decision` and `score` are the state after the event;
    `prior_decision` and `prior_score` the state right before it.
    """

    kind: ClassVar[EventKind]

    event_id: str
    application_id: str
    actor_id: str
    actor_role: str
    timestamp: datetime
    decision: DecisionState
    score: float
    prior_decision: Optional[DecisionState] = None
    prior_score: Optional[float] = None
    justification: str = ""


@dataclass(frozen=True, kw_only=True)
class AutoScoreEvent(DecisionEvent):
    kind: ClassVar[EventKind] = EventKind.AUTO_SCORE

    confidence: ConfidenceLevel
    shap_values: Tuple[ShapValue, ...] = ()
    risk_factors: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()


@dataclass(frozen=True, kw_only=True)
class ManualOverrideEvent(DecisionEvent):
    kind: ClassVar[EventKind] = EventKind.MANUAL_OVERRIDE

    action: OverrideAction
    reason_code: str


@dataclass(frozen=True, kw_only=True)
class DataCorrectionEvent(DecisionEvent):
    kind: ClassVar[EventKind] = EventKind.DATA_CORRECTION

    previous_data: ApplicantData
    corrected_data: ApplicantData
    changes: Dict[str, Dict[str, Any]]


@dataclass(frozen=True, kw_only=True)
class ContestationEvent(DecisionEvent):
    kind: ClassVar[EventKind] = EventKind.CONTESTATION

    reason_code: str
    proposed_score_adjustment: Optional[int] = None
    evidence: Tuple[str, ...] = ()
    status: ContestationStatus = ContestationStatus.PENDING


@dataclass
class Application:
    """
    One credit request and its decision ledger.

    The event list is the source of truth: current decision, score and
    version are all derived from it.
    """

    id: str
    applicant_data: ApplicantData
    applicant_id: Optional[str] = None
    events: List[DecisionEvent] = field(default_factory=list, repr=False)
    contestations: List[ContestationEvent] = field(default_factory=list, repr=False)

    @property
    def decision_history(self) -> Tuple[DecisionEvent, ...]:
        return tuple(self.events)

    @property
    def version(self) -> int:
        return len(self.events)

    @property
    def last_event(self) -> Optional[DecisionEvent]:
        return self.events[-1] if self.events else None

    @property
    def current_decision(self) -> Optional[DecisionState]:
        return self.events[-1].decision if self.events else None

    @property
    def current_score(self) -> Optional[float]:
        return self.events[-1].score if self.events else None

    def append(self, event: DecisionEvent) -> None:
        """Append an event to the ledger, keeping order and timestamps monotonic"""
        if event.application_id != self.id:
            raise ValueError(f"Event {event.event_id} belongs to application {event.application_id}")
        if isinstance(event, ContestationEvent):
            raise ValueError("Contestations are queued, not appended to the decision history")
        last = self.last_event
        if last is not None and event.timestamp < last.timestamp:
            raise ValueError("Event timestamps must be non-decreasing")

        self.events.append(event)
        if isinstance(event, DataCorrectionEvent):
            self.applicant_data = event.corrected_data

    def add_contestation(self, event: ContestationEvent) -> None:
        if event.application_id != self.id:
            raise ValueError(f"Contestation {event.event_id} belongs to application {event.application_id}")
        self.contestations.append(event)


@dataclass(frozen=True)
class ScoreSummary:
    """Portfolio figures over the current decision of every application"""

    total_applications: int
    approved: int
    rejected: int
    under_review: int
    average_score: Optional[float]
    approval_rate: float  # percent of all applications
    total_amount_asked: float
    by_decision: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class AuditEntry:
    """Audit trail record emitted for every decision event"""

    application_id: str
    actor_id: str
    actor_role: str
    action: str
    justification: str
    timestamp: datetime
    details: Dict[str, Any] = field(default_factory=dict)
