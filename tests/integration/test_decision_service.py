"""Integration tests for DecisionService against a SQLite database"""

import asyncio
import random
import pytest
from dataclasses import replace
from unittest.mock import AsyncMock
from sqlalchemy.orm import Session
from credit_workflow.domain.audit import (
    AUTO_SCORE,
    CONTEST_DECISION,
    CORRECT_DATA,
    MANUAL_REJECTION,
    MANUAL_VALIDATION,
)
from credit_workflow.domain.exceptions import (
    ApplicationNotFound,
    ConflictError,
    PermissionDenied,
    ScoringUnavailable,
    ValidationError,
)
from credit_workflow.domain.models import Actor, ApplicantData, DecisionState, EventKind, ScoringResult
from credit_workflow.domain.permissions import RolePolicy
from credit_workflow.domain.validation import CONTEST_REASONS
from credit_workflow.infrastructure.database.models import CreditApplication, DecisionEventRecord
from credit_workflow.infrastructure.database.repositories import ApplicationRepository
from credit_workflow.services.decision_service import DecisionService

pytestmark = pytest.mark.integration


def assert_stored_state_matches_history(db: Session, service: DecisionService, application_id: str):
    """Cached columns on the application row agree with the last ledger entry"""
    application = service.get_application(application_id)
    row = db.get(CreditApplication, application_id)
    db.refresh(row)

    last = application.decision_history[-1]
    assert row.current_decision == last.decision.value
    assert row.current_score == last.score
    assert row.version == len(application.decision_history)
    sequences = [e.sequence for e in row.events]
    assert sequences == list(range(len(sequences)))


async def test_submit_scenario_auto_approved(service, oracle, scenario_data, db):
    event = await service.submit(scenario_data, applicant_id="client_1")

    application = service.get_application(event.application_id)
    assert application.current_decision == DecisionState.AUTO_APPROVED
    assert application.current_score == 0.75
    assert application.applicant_id == "client_1"
    assert len(application.decision_history) == 1
    assert application.decision_history[0].kind == EventKind.AUTO_SCORE
    assert oracle.calls == [scenario_data]

    ratios = service.get_ratios(event.application_id)
    assert ratios.debt_ratio == 20.0
    assert ratios.remaining_to_live == 170000
    assert_stored_state_matches_history(db, service, event.application_id)


async def test_submit_invalid_data_never_reaches_oracle(service, oracle, scenario_data, db):
    with pytest.raises(ValidationError) as exc_info:
        await service.submit(replace(scenario_data, revenues=-1))

    assert exc_info.value.field == "revenues"
    assert oracle.calls == []
    assert db.query(CreditApplication).count() == 0


async def test_submit_blank_profile_is_rejected(service, oracle, scenario_data, db):
    blank = replace(scenario_data, family_circumstances="", activity="", legal_form="")

    with pytest.raises(ValidationError) as exc_info:
        await service.submit(blank)

    assert exc_info.value.field == "family_circumstances"
    assert oracle.calls == []
    assert db.query(CreditApplication).count() == 0


async def test_submit_retries_once_on_oracle_failure(service, oracle, scenario_data):
    oracle.failures = 1

    event = await service.submit(scenario_data)

    assert len(oracle.calls) == 2
    assert event.decision == DecisionState.AUTO_APPROVED


async def test_submit_retries_connection_error(db, scenario_data):
    oracle = AsyncMock()
    oracle.score.side_effect = [ConnectionError("connection refused"), ScoringResult(probability=0.9)]
    service = DecisionService(db, oracle, RolePolicy(), scoring_timeout=1.0, max_retries=1, backoff_base=0.0)

    event = await service.submit(scenario_data)

    assert oracle.score.await_count == 2
    assert event.decision == DecisionState.AUTO_APPROVED


async def test_persistent_connection_error_is_scoring_unavailable(db, scenario_data):
    oracle = AsyncMock()
    oracle.score.side_effect = ConnectionError("connection refused")
    service = DecisionService(db, oracle, RolePolicy(), scoring_timeout=1.0, max_retries=1, backoff_base=0.0)

    with pytest.raises(ScoringUnavailable) as exc_info:
        await service.submit(scenario_data)

    assert isinstance(exc_info.value.__cause__, ConnectionError)
    assert oracle.score.await_count == 2
    assert db.query(CreditApplication).count() == 0


async def test_submit_fails_after_retries_without_writing(service, oracle, scenario_data, db):
    oracle.failures = 2

    with pytest.raises(ScoringUnavailable):
        await service.submit(scenario_data)

    assert len(oracle.calls) == 2
    assert db.query(CreditApplication).count() == 0
    assert db.query(DecisionEventRecord).count() == 0


async def test_submit_times_out(db, oracle, scenario_data):
    oracle.delay = 0.5
    service = DecisionService(db, oracle, RolePolicy(), scoring_timeout=0.05, max_retries=1, backoff_base=0.0)

    with pytest.raises(ScoringUnavailable):
        await service.submit(scenario_data)

    assert len(oracle.calls) == 2
    assert db.query(CreditApplication).count() == 0


async def test_out_of_range_probability_is_a_scoring_failure(service, oracle, scenario_data, db):
    oracle.probability = 1.7

    with pytest.raises(ScoringUnavailable):
        await service.submit(scenario_data)

    assert db.query(CreditApplication).count() == 0


async def test_override_scenario_manual_rejection(service, scenario_data, agent, db):
    submitted = await service.submit(scenario_data)

    event = service.override(
        submitted.application_id, agent, "reject", "high_debt_ratio", "Recent payment incident", expected_version=1
    )

    application = service.get_application(submitted.application_id)
    assert application.current_decision == DecisionState.MANUAL_REJECTED
    assert application.current_score == 0.75
    assert application.version == 2
    assert event.prior_decision == DecisionState.AUTO_APPROVED
    assert_stored_state_matches_history(db, service, submitted.application_id)


async def test_override_without_justification_leaves_history_unchanged(service, scenario_data, admin):
    submitted = await service.submit(scenario_data)

    with pytest.raises(ValidationError):
        service.override(submitted.application_id, admin, "reject", "high_debt_ratio", "")

    assert service.get_application(submitted.application_id).version == 1


async def test_agent_cannot_approve_alone(service, oracle, scenario_data, agent, admin):
    oracle.probability = 0.4
    submitted = await service.submit(scenario_data)

    with pytest.raises(PermissionDenied):
        service.override(submitted.application_id, agent, "approve", "strong_guarantees", "Guarantor added")

    service.override(submitted.application_id, admin, "approve", "strong_guarantees", "Guarantor added")
    application = service.get_application(submitted.application_id)
    assert application.current_decision == DecisionState.MANUAL_APPROVED
    assert application.version == 2


async def test_stale_expected_version_is_rejected(service, scenario_data, agent):
    submitted = await service.submit(scenario_data)
    service.override(submitted.application_id, agent, "reevaluate", "complex_case", "First look", expected_version=1)

    with pytest.raises(ConflictError) as exc_info:
        service.override(submitted.application_id, agent, "reject", "other", "Stale view", expected_version=1)

    assert exc_info.value.actual_version == 2
    assert service.get_application(submitted.application_id).current_decision == DecisionState.UNDER_REVIEW


async def test_unknown_application(service, agent):
    with pytest.raises(ApplicationNotFound):
        service.override("missing", agent, "reject", "other", "Nothing to reject")


async def test_correction_appends_exactly_two_events(service, oracle, scenario_data, agent, db):
    """Scenario: corrected debt is re-scored below the threshold"""
    submitted = await service.submit(scenario_data)
    oracle.probability = 0.4
    corrected = replace(scenario_data, debt=200000)

    correction, rescore = await service.correct_data(
        submitted.application_id, agent, corrected, "Debt statement was outdated"
    )

    application = service.get_application(submitted.application_id)
    kinds = [e.kind for e in application.decision_history]
    assert kinds == [EventKind.AUTO_SCORE, EventKind.DATA_CORRECTION, EventKind.AUTO_SCORE]
    assert correction.changes == {"debt": {"from": 50000, "to": 200000}}
    assert rescore.decision == DecisionState.AUTO_REJECTED
    assert rescore.prior_decision == DecisionState.AUTO_APPROVED
    assert application.current_decision == DecisionState.AUTO_REJECTED
    assert application.applicant_data == corrected
    assert oracle.calls[-1] == corrected
    assert_stored_state_matches_history(db, service, submitted.application_id)


async def test_correction_without_changes_is_rejected(service, oracle, scenario_data, agent):
    submitted = await service.submit(scenario_data)

    with pytest.raises(ValidationError) as exc_info:
        await service.correct_data(submitted.application_id, agent, scenario_data, "No real change here")

    assert exc_info.value.field == "applicant_data"
    assert len(oracle.calls) == 1
    assert service.get_application(submitted.application_id).version == 1


async def test_correction_with_oracle_down_is_all_or_nothing(service, oracle, scenario_data, agent):
    submitted = await service.submit(scenario_data)
    oracle.failures = 2

    with pytest.raises(ScoringUnavailable):
        await service.correct_data(
            submitted.application_id, agent, replace(scenario_data, debt=1000), "Debt statement was outdated"
        )

    application = service.get_application(submitted.application_id)
    assert application.version == 1
    assert application.applicant_data == scenario_data


async def test_override_committed_during_rescoring_wins(db, scenario_data, agent):
    """The correction read version 1; an override lands while it awaits the oracle"""

    class RacingOracle:
        def __init__(self):
            self.on_score = None

        async def score(self, applicant_data: ApplicantData) -> ScoringResult:
            if self.on_score is not None:
                hook, self.on_score = self.on_score, None
                hook()
            return ScoringResult(probability=0.4)

    oracle = RacingOracle()
    service = DecisionService(db, oracle, RolePolicy(), scoring_timeout=1.0, max_retries=0, backoff_base=0.0)
    submitted = await service.submit(scenario_data)
    application_id = submitted.application_id
    oracle.on_score = lambda: service.override(application_id, agent, "reevaluate", "complex_case", "Concurrent review")

    with pytest.raises(ConflictError) as exc_info:
        await service.correct_data(
            application_id, agent, replace(scenario_data, debt=1000), "Debt statement was outdated"
        )

    assert exc_info.value.expected_version == 1
    assert exc_info.value.actual_version == 2
    application = service.get_application(application_id)
    assert [e.kind for e in application.decision_history] == [EventKind.AUTO_SCORE, EventKind.MANUAL_OVERRIDE]
    assert application.current_decision == DecisionState.UNDER_REVIEW
    assert application.applicant_data == scenario_data
    assert_stored_state_matches_history(db, service, application_id)


async def test_contestations_never_change_the_decision(service, scenario_data, agent):
    submitted = await service.submit(scenario_data)
    rng = random.Random(2024)
    reasons = sorted(CONTEST_REASONS)

    for _ in range(100):
        service.contest(
            submitted.application_id,
            agent,
            rng.choice(reasons),
            "Client disagrees with the outcome",
            proposed_adjustment=rng.randint(-100, 100),
            evidence=["statement.pdf"],
        )

    application = service.get_application(submitted.application_id)
    assert application.current_decision == DecisionState.AUTO_APPROVED
    assert application.current_score == 0.75
    assert application.version == 1
    assert len(application.contestations) == 100
    assert len(service.list_pending_contestations(limit=500)) == 100


async def test_pending_queue_is_oldest_first(service, scenario_data, agent):
    submitted = await service.submit(scenario_data)
    first = service.contest(submitted.application_id, agent, "special_circumstances", "Temporary medical leave")
    second = service.contest(
        submitted.application_id, agent, "client_fidelity", "Client for ten years", evidence=["history.pdf"]
    )

    pending = service.list_pending_contestations()

    assert [c.event_id for c in pending] == [first.event_id, second.event_id]


async def test_client_cannot_contest(service, scenario_data):
    submitted = await service.submit(scenario_data)

    with pytest.raises(PermissionDenied):
        service.contest(
            submitted.application_id,
            Actor(actor_id="client_1", role="client"),
            "special_circumstances",
            "Temporary medical leave",
        )

    assert service.list_pending_contestations() == []


async def test_audit_trail_by_application_and_actor(service, oracle, scenario_data, agent, admin):
    submitted = await service.submit(scenario_data)
    application_id = submitted.application_id
    service.override(application_id, agent, "reject", "high_debt_ratio", "Recent payment incident")
    service.override(application_id, admin, "approve", "human_judgment", "Reviewed with manager")
    oracle.probability = 0.7
    await service.correct_data(application_id, agent, replace(scenario_data, charges=90000), "Charges were updated")
    service.contest(application_id, agent, "special_circumstances", "Temporary medical leave")

    trail = service.audit_for_application(application_id)
    assert [e.action for e in trail] == [
        AUTO_SCORE,
        MANUAL_REJECTION,
        MANUAL_VALIDATION,
        CORRECT_DATA,
        AUTO_SCORE,
        CONTEST_DECISION,
    ]
    assert trail[1].details["original_decision"] == "AUTO_APPROVED"
    assert trail[1].details["new_decision"] == "MANUAL_REJECTED"
    assert trail[3].details["changes"] == {"charges": {"from": 80000, "to": 90000}}

    agent_trail = service.audit_for_actor(agent.actor_id)
    assert [e.action for e in agent_trail] == [CONTEST_DECISION, CORRECT_DATA, MANUAL_REJECTION]
    assert [e.action for e in service.audit_for_actor(admin.actor_id)] == [MANUAL_VALIDATION]


async def test_list_applications_by_client_and_decision(service, oracle, scenario_data):
    first = await service.submit(scenario_data, applicant_id="client_1")
    oracle.probability = 0.4
    second = await service.submit(scenario_data, applicant_id="client_1")
    oracle.probability = 0.75
    other = await service.submit(scenario_data, applicant_id="client_2")

    mine = service.list_applications(applicant_id="client_1")
    assert [a.id for a in mine] == [second.application_id, first.application_id]
    assert mine[0].current_decision == DecisionState.AUTO_REJECTED
    assert len(mine[0].decision_history) == 1

    approved = service.list_applications(decision="AUTO_APPROVED")
    assert {a.id for a in approved} == {first.application_id, other.application_id}
    assert service.list_applications(applicant_id="client_2", decision=DecisionState.AUTO_REJECTED) == []
    assert len(service.list_applications(limit=2)) == 2


async def test_list_applications_follows_overrides(service, scenario_data, agent):
    submitted = await service.submit(scenario_data)
    service.override(submitted.application_id, agent, "reevaluate", "complex_case", "Second opinion needed")

    assert service.list_applications(decision="AUTO_APPROVED") == []
    [listed] = service.list_applications(decision="UNDER_REVIEW")
    assert listed.id == submitted.application_id
    assert listed.version == 2


async def test_list_applications_unknown_decision(service):
    with pytest.raises(ValidationError) as exc_info:
        service.list_applications(decision="PENDING")

    assert exc_info.value.field == "decision"


async def test_score_summary(service, oracle, scenario_data, agent, admin):
    await service.submit(scenario_data)
    oracle.probability = 0.4
    await service.submit(scenario_data)
    oracle.probability = 0.9
    reviewed = await service.submit(scenario_data)
    service.override(reviewed.application_id, agent, "reevaluate", "complex_case", "Second opinion needed")
    oracle.probability = 0.4
    rescued = await service.submit(scenario_data)
    service.override(rescued.application_id, admin, "approve", "strong_guarantees", "Guarantor added")

    summary = service.score_summary(agent)

    assert summary.total_applications == 4
    assert summary.approved == 2
    assert summary.rejected == 1
    assert summary.under_review == 1
    assert summary.average_score == pytest.approx(0.6125)
    assert summary.approval_rate == 50.0
    assert summary.total_amount_asked == 600000
    assert summary.by_decision == {
        "AUTO_APPROVED": 1,
        "AUTO_REJECTED": 1,
        "UNDER_REVIEW": 1,
        "MANUAL_APPROVED": 1,
    }


async def test_score_summary_of_empty_portfolio(service, admin):
    summary = service.score_summary(admin)

    assert summary.total_applications == 0
    assert summary.average_score is None
    assert summary.approval_rate == 0.0
    assert summary.by_decision == {}


async def test_client_cannot_view_score_summary(service, scenario_data):
    await service.submit(scenario_data)

    with pytest.raises(PermissionDenied) as exc_info:
        service.score_summary(Actor(actor_id="client_1", role="client"))

    assert exc_info.value.capability == "view_analytics"


async def test_repository_compare_and_set(service, scenario_data, agent, db):
    submitted = await service.submit(scenario_data)
    repository = ApplicationRepository(db)
    application = repository.get(submitted.application_id)
    event = service.workflow.override(application, agent, "reject", "other", "Written behind our back")
    application.append(event)

    with pytest.raises(ConflictError):
        repository.append_events(application, [event], expected_version=0)
    db.rollback()

    assert repository.get(submitted.application_id).version == 1


async def test_cancelled_correction_leaves_no_trace(service, oracle, scenario_data, agent):
    submitted = await service.submit(scenario_data)
    oracle.delay = 0.5
    task = asyncio.create_task(
        service.correct_data(
            submitted.application_id, agent, replace(scenario_data, debt=1000), "Debt statement was outdated"
        )
    )
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    application = service.get_application(submitted.application_id)
    assert application.version == 1
    assert application.applicant_data == scenario_data
    assert service.audit_for_application(submitted.application_id)[-1].action == AUTO_SCORE


async def test_oracle_mock_is_awaited_once_per_attempt(db, scenario_data):
    oracle = AsyncMock()
    oracle.score.side_effect = [ScoringUnavailable("cold start"), ScoringResult(probability=0.9)]
    service = DecisionService(db, oracle, RolePolicy(), scoring_timeout=1.0, max_retries=1, backoff_base=0.0)

    event = await service.submit(scenario_data)

    assert oracle.score.await_count == 2
    oracle.score.assert_awaited_with(scenario_data)
    assert event.decision == DecisionState.AUTO_APPROVED
    assert event.confidence.value == "HIGH"
