"""Audit trail entries for decision events"""

from credit_workflow.domain.models import (
    AuditEntry,
    AutoScoreEvent,
    ContestationEvent,
    DataCorrectionEvent,
    DecisionEvent,
    ManualOverrideEvent,
    OverrideAction,
)
from credit_workflow.domain.serialization import applicant_data_to_dict

AUTO_SCORE = "auto_score"
MANUAL_VALIDATION = "manual_validation"
MANUAL_REJECTION = "manual_rejection"
REQUEST_REEVALUATION = "request_reevaluation"
CORRECT_DATA = "correct_data"
CONTEST_DECISION = "contest_decision"

_OVERRIDE_ACTIONS = {
    OverrideAction.APPROVE: MANUAL_VALIDATION,
    OverrideAction.REJECT: MANUAL_REJECTION,
    OverrideAction.REEVALUATE: REQUEST_REEVALUATION,
}


def _decision_value(event_decision):
    return event_decision.value if event_decision is not None else None


def build_audit_entry(event: DecisionEvent) -> AuditEntry:
    """Flatten an event into {application_id, actor_id, action, justification, timestamp, details}"""
    if isinstance(event, AutoScoreEvent):
        action = AUTO_SCORE
        details = {
            "decision": event.decision.value,
            "score": event.score,
            "confidence": event.confidence.value,
            "prior_decision": _decision_value(event.prior_decision),
        }
    elif isinstance(event, ManualOverrideEvent):
        action = _OVERRIDE_ACTIONS[event.action]
        details = {
            "original_decision": _decision_value(event.prior_decision),
            "original_score": event.prior_score,
            "new_decision": event.decision.value,
            "reason": event.reason_code,
        }
    elif isinstance(event, DataCorrectionEvent):
        action = CORRECT_DATA
        details = {
            "changes": event.changes,
            "original_data": applicant_data_to_dict(event.previous_data),
            "corrected_data": applicant_data_to_dict(event.corrected_data),
        }
    elif isinstance(event, ContestationEvent):
        action = CONTEST_DECISION
        details = {
            "reason": event.reason_code,
            "score_adjustment": event.proposed_score_adjustment,
            "current_decision": _decision_value(event.decision),
            "current_score": event.score,
            "evidence": list(event.evidence),
        }
    else:
        raise TypeError(f"Unsupported event type: {type(event).__name__}")

    details["event_id"] = event.event_id
    return AuditEntry(
        application_id=event.application_id,
        actor_id=event.actor_id,
        actor_role=event.actor_role,
        action=action,
        justification=event.justification,
        timestamp=event.timestamp,
        details=details,
    )
