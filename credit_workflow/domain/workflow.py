"""Decision workflow state machine - validates transitions and builds events, no I/O"""

import uuid
from datetime import datetime
from typing import Callable, Dict, Iterable, Optional, Union
from credit_workflow.domain.exceptions import ScoringUnavailable, ValidationError
from credit_workflow.domain.models import (
    SYSTEM_ACTOR,
    SYSTEM_ROLE,
    Actor,
    ApplicantData,
    Application,
    AutoScoreEvent,
    ContestationEvent,
    DataCorrectionEvent,
    DecisionState,
    ManualOverrideEvent,
    OverrideAction,
    ScoringResult,
)
from credit_workflow.domain.permissions import APPROVE_WITHOUT_VALIDATION, EDIT_APPLICATION, RolePolicy
from credit_workflow.domain.scoring import confidence_level, decide
from credit_workflow.domain.validation import (
    CONTEST_REASONS,
    MIN_CORRECTION_JUSTIFICATION,
    OVERRIDE_REASONS,
    require_justification,
    require_reason,
    validate_applicant_data,
    validate_score_adjustment,
)
from credit_workflow.utils.date_utils import not_before, utc_now

OVERRIDE_TARGETS: Dict[OverrideAction, DecisionState] = {
    OverrideAction.APPROVE: DecisionState.MANUAL_APPROVED,
    OverrideAction.REJECT: DecisionState.MANUAL_REJECTED,
    OverrideAction.REEVALUATE: DecisionState.UNDER_REVIEW,
}

# Approving alone bypasses managerial validation, so it needs the stronger capability
OVERRIDE_CAPABILITIES: Dict[OverrideAction, str] = {
    OverrideAction.APPROVE: APPROVE_WITHOUT_VALIDATION,
    OverrideAction.REJECT: EDIT_APPLICATION,
    OverrideAction.REEVALUATE: EDIT_APPLICATION,
}


def _new_id() -> str:
    return str(uuid.uuid4())


class DecisionWorkflow:
    """
    State machine for one application's decision.

    States are DecisionState values. The first AUTO_SCORE sets the initial
    state; MANUAL_OVERRIDE and DATA_CORRECTION are allowed from every state;
    CONTESTATION never changes the state.

    Each method validates its inputs first, then the actor's capability, and
    returns a new event. Appending it to the application (and persisting it)
    is the caller's job.
    """

    def __init__(
        self,
        policy: Optional[RolePolicy] = None,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = _new_id,
    ):
        self.policy = policy or RolePolicy()
        self.clock = clock
        self.id_factory = id_factory

    def _timestamp(self, application: Application) -> datetime:
        last = application.last_event
        return not_before(self.clock(), last.timestamp if last else None)

    def open_application(self, applicant_data: ApplicantData, applicant_id: Optional[str] = None) -> Application:
        """Validate submitted data and create an application with an empty ledger"""
        validate_applicant_data(applicant_data, require_profile=True)
        return Application(id=self.id_factory(), applicant_data=applicant_data, applicant_id=applicant_id)

    def auto_score(self, application: Application, result: ScoringResult) -> AutoScoreEvent:
        """Turn an oracle result into the automatic decision for the current data"""
        probability = result.probability
        if not isinstance(probability, (int, float)) or not 0.0 <= probability <= 1.0:
            raise ScoringUnavailable(f"Oracle returned an invalid probability: {probability!r}")

        return AutoScoreEvent(
            event_id=self.id_factory(),
            application_id=application.id,
            actor_id=SYSTEM_ACTOR,
            actor_role=SYSTEM_ROLE,
            timestamp=self._timestamp(application),
            decision=decide(probability),
            score=float(probability),
            prior_decision=application.current_decision,
            prior_score=application.current_score,
            confidence=confidence_level(probability),
            shap_values=tuple(result.shap_values),
            risk_factors=tuple(result.risk_factors),
            recommendations=tuple(result.recommendations),
        )

    def override(
        self,
        application: Application,
        actor: Actor,
        action: Union[OverrideAction, str],
        reason_code: Optional[str],
        justification: Optional[str],
    ) -> ManualOverrideEvent:
        """Manual approve / reject / re-evaluate. The score is left untouched."""
        try:
            action = OverrideAction(action)
        except ValueError:
            raise ValidationError("action", f"'{action}' is not one of approve, reject, reevaluate")
        text = require_justification(justification)
        require_reason(reason_code, OVERRIDE_REASONS[action])
        self.policy.require(actor.role, OVERRIDE_CAPABILITIES[action])

        return ManualOverrideEvent(
            event_id=self.id_factory(),
            application_id=application.id,
            actor_id=actor.actor_id,
            actor_role=actor.role,
            timestamp=self._timestamp(application),
            decision=OVERRIDE_TARGETS[action],
            score=application.current_score,
            prior_decision=application.current_decision,
            prior_score=application.current_score,
            justification=text,
            action=action,
            reason_code=reason_code,
        )

    def correct(
        self,
        application: Application,
        actor: Actor,
        new_data: ApplicantData,
        justification: Optional[str],
    ) -> DataCorrectionEvent:
        """
        Replace the applicant data. The decision is unchanged by this event
        itself; the caller must chain an AUTO_SCORE on the corrected data.
        """
        text = require_justification(justification, min_length=MIN_CORRECTION_JUSTIFICATION)
        changes = application.applicant_data.changes_to(new_data)
        if not changes:
            raise ValidationError("applicant_data", "no changes to correct")
        validate_applicant_data(new_data)
        self.policy.require(actor.role, EDIT_APPLICATION)

        return DataCorrectionEvent(
            event_id=self.id_factory(),
            application_id=application.id,
            actor_id=actor.actor_id,
            actor_role=actor.role,
            timestamp=self._timestamp(application),
            decision=application.current_decision,
            score=application.current_score,
            prior_decision=application.current_decision,
            prior_score=application.current_score,
            justification=text,
            previous_data=application.applicant_data,
            corrected_data=new_data,
            changes=changes,
        )

    def contest(
        self,
        application: Application,
        actor: Actor,
        reason_code: Optional[str],
        justification: Optional[str],
        proposed_adjustment: Optional[int] = None,
        evidence: Iterable[str] = (),
    ) -> ContestationEvent:
        """Request managerial re-review; the decision stays as it is"""
        text = require_justification(justification)
        require_reason(reason_code, CONTEST_REASONS)
        documents = tuple(doc for doc in evidence if doc)
        if CONTEST_REASONS[reason_code] and not documents:
            raise ValidationError("evidence", f"reason '{reason_code}' requires supporting evidence")
        adjustment = validate_score_adjustment(proposed_adjustment)
        self.policy.require(actor.role, EDIT_APPLICATION)

        return ContestationEvent(
            event_id=self.id_factory(),
            application_id=application.id,
            actor_id=actor.actor_id,
            actor_role=actor.role,
            timestamp=self._timestamp(application),
            decision=application.current_decision,
            score=application.current_score,
            prior_decision=application.current_decision,
            prior_score=application.current_score,
            justification=text,
            reason_code=reason_code,
            proposed_score_adjustment=adjustment,
            evidence=documents,
        )
