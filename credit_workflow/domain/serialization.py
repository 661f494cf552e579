"""JSON-friendly dict conversion for applications and decision events"""

from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, Optional
from credit_workflow.domain.models import (
    ApplicantData,
    Application,
    AutoScoreEvent,
    ConfidenceLevel,
    ContestationEvent,
    ContestationStatus,
    DataCorrectionEvent,
    DecisionEvent,
    DecisionState,
    EventKind,
    ManualOverrideEvent,
    OverrideAction,
    ScoringResult,
    ShapValue,
)


def applicant_data_to_dict(data: ApplicantData) -> Dict[str, Any]:
    return asdict(data)


def applicant_data_from_dict(payload: Dict[str, Any]) -> ApplicantData:
    return ApplicantData(
        revenues=payload["revenues"],
        charges=payload["charges"],
        debt=payload["debt"],
        amount_asked=payload["amount_asked"],
        guarantee_estimated_value=payload.get("guarantee_estimated_value", 0.0),
        is_renewal=payload.get("is_renewal", 0),
        family_circumstances=payload.get("family_circumstances", ""),
        activity=payload.get("activity", ""),
        legal_form=payload.get("legal_form", ""),
    )


def scoring_result_to_dict(result: ScoringResult) -> Dict[str, Any]:
    return {
        "probability": result.probability,
        "shap_values": [asdict(s) for s in result.shap_values],
        "risk_factors": list(result.risk_factors),
        "recommendations": list(result.recommendations),
    }


def scoring_result_from_dict(payload: Dict[str, Any]) -> ScoringResult:
    return ScoringResult(
        probability=float(payload["probability"]),
        shap_values=tuple(
            ShapValue(feature=s["feature"], impact=float(s["impact"]), value=s.get("value"))
            for s in payload.get("shap_values", [])
        ),
        risk_factors=tuple(payload.get("risk_factors", [])),
        recommendations=tuple(payload.get("recommendations", [])),
    )


def _enum_value(value: Optional[Any]) -> Optional[str]:
    return value.value if value is not None else None


def event_to_dict(event: DecisionEvent) -> Dict[str, Any]:
    """Serialize an event; `kind` discriminates the variant"""
    payload: Dict[str, Any] = {
        "kind": event.kind.value,
        "event_id": event.event_id,
        "application_id": event.application_id,
        "actor_id": event.actor_id,
        "actor_role": event.actor_role,
        "timestamp": event.timestamp.isoformat(),
        "decision": _enum_value(event.decision),
        "score": event.score,
        "prior_decision": _enum_value(event.prior_decision),
        "prior_score": event.prior_score,
        "justification": event.justification,
    }

    if isinstance(event, AutoScoreEvent):
        payload.update(
            confidence=event.confidence.value,
            shap_values=[asdict(s) for s in event.shap_values],
            risk_factors=list(event.risk_factors),
            recommendations=list(event.recommendations),
        )
    elif isinstance(event, ManualOverrideEvent):
        payload.update(action=event.action.value, reason_code=event.reason_code)
    elif isinstance(event, DataCorrectionEvent):
        payload.update(
            previous_data=applicant_data_to_dict(event.previous_data),
            corrected_data=applicant_data_to_dict(event.corrected_data),
            changes={name: dict(change) for name, change in event.changes.items()},
        )
    elif isinstance(event, ContestationEvent):
        payload.update(
            reason_code=event.reason_code,
            proposed_score_adjustment=event.proposed_score_adjustment,
            evidence=list(event.evidence),
            status=event.status.value,
        )
    return payload


def event_from_dict(payload: Dict[str, Any]) -> DecisionEvent:
    kind = EventKind(payload["kind"])
    prior_decision = payload.get("prior_decision")
    common = dict(
        event_id=payload["event_id"],
        application_id=payload["application_id"],
        actor_id=payload["actor_id"],
        actor_role=payload["actor_role"],
        timestamp=datetime.fromisoformat(payload["timestamp"]),
        decision=DecisionState(payload["decision"]),
        score=payload["score"],
        prior_decision=DecisionState(prior_decision) if prior_decision else None,
        prior_score=payload.get("prior_score"),
        justification=payload.get("justification", ""),
    )

    if kind is EventKind.AUTO_SCORE:
        return AutoScoreEvent(
            **common,
            confidence=ConfidenceLevel(payload["confidence"]),
            shap_values=tuple(ShapValue(**s) for s in payload.get("shap_values", [])),
            risk_factors=tuple(payload.get("risk_factors", [])),
            recommendations=tuple(payload.get("recommendations", [])),
        )
    if kind is EventKind.MANUAL_OVERRIDE:
        return ManualOverrideEvent(
            **common,
            action=OverrideAction(payload["action"]),
            reason_code=payload["reason_code"],
        )
    if kind is EventKind.DATA_CORRECTION:
        return DataCorrectionEvent(
            **common,
            previous_data=applicant_data_from_dict(payload["previous_data"]),
            corrected_data=applicant_data_from_dict(payload["corrected_data"]),
            changes=payload["changes"],
        )
    return ContestationEvent(
        **common,
        reason_code=payload["reason_code"],
        proposed_score_adjustment=payload.get("proposed_score_adjustment"),
        evidence=tuple(payload.get("evidence", [])),
        status=ContestationStatus(payload.get("status", ContestationStatus.PENDING.value)),
    )


def application_to_dict(application: Application) -> Dict[str, Any]:
    return {
        "id": application.id,
        "applicant_id": application.applicant_id,
        "applicant_data": applicant_data_to_dict(application.applicant_data),
        "current_decision": _enum_value(application.current_decision),
        "current_score": application.current_score,
        "version": application.version,
        "decision_history": [event_to_dict(e) for e in application.events],
        "contestations": [event_to_dict(c) for c in application.contestations],
    }


def application_from_dict(payload: Dict[str, Any]) -> Application:
    """
    Rebuild an application from its serialized form.

    Current decision, score and version are derived from the history, so the
    cached values in the payload are ignored. The applicant data is replayed
    from the payload as-is; corrections inside the history are not re-applied.
    """
    application = Application(
        id=payload["id"],
        applicant_data=applicant_data_from_dict(payload["applicant_data"]),
        applicant_id=payload.get("applicant_id"),
    )
    application.events.extend(event_from_dict(e) for e in payload.get("decision_history", []))
    application.contestations.extend(event_from_dict(c) for c in payload.get("contestations", []))
    return application
