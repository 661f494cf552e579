"""Decision workflow service - orchestrates scoring, persistence and audit per operation"""

import asyncio
import logging
import time
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional, Tuple, Union
from sqlalchemy.orm import Session

from credit_workflow.config import settings
from credit_workflow.domain.audit import build_audit_entry
from credit_workflow.domain.exceptions import ConflictError, ScoringUnavailable
from credit_workflow.domain.models import (
    Actor,
    ApplicantData,
    Application,
    AuditEntry,
    AutoScoreEvent,
    ContestationEvent,
    DataCorrectionEvent,
    DecisionEvent,
    DecisionState,
    FinancialRatios,
    ManualOverrideEvent,
    OverrideAction,
    ScoreSummary,
    ScoringResult,
)
from credit_workflow.domain.permissions import VIEW_ANALYTICS, RolePolicy
from credit_workflow.domain.ratios import compute_ratios
from credit_workflow.domain.scoring import ScoringOracle
from credit_workflow.domain.validation import require_reason
from credit_workflow.domain.workflow import DecisionWorkflow
from credit_workflow.infrastructure.database.repositories import ApplicationRepository, AuditRepository
from credit_workflow.infrastructure.observability.logging import log_transition
from credit_workflow.infrastructure.observability.metrics import (
    conflict_counter,
    record_transition,
    scoring_failures_counter,
    scoring_latency_histogram,
)

logger = logging.getLogger(__name__)


class DecisionService:
    """
    Entry point for every decision workflow operation.

    Each mutating operation is all-or-nothing: events, cached state and
    audit entries are written in one transaction, or not at all.

    Concurrency: writes carry the version that was read. The repository
    rejects the append with ConflictError if another writer got there first.
    Scoring runs before anything is written, so cancelling a request while
    the oracle is pending leaves no trace.
    """

    def __init__(
        self,
        db: Session,
        oracle: ScoringOracle,
        policy: Optional[RolePolicy] = None,
        workflow: Optional[DecisionWorkflow] = None,
        scoring_timeout: float | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        request_id: Optional[str] = None,
    ):
        self.db = db
        self.oracle = oracle
        self.workflow = workflow or DecisionWorkflow(policy or RolePolicy())
        self.applications = ApplicationRepository(db)
        self.audit = AuditRepository(db)
        self.scoring_timeout = scoring_timeout if scoring_timeout is not None else settings.scoring_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.scoring_max_retries
        self.backoff_base = backoff_base if backoff_base is not None else settings.scoring_backoff_base
        self.request_id = request_id

    # Mutating operations

    async def submit(self, applicant_data: ApplicantData, applicant_id: Optional[str] = None) -> AutoScoreEvent:
        """
        Validate and score a new application.

        Raises:
            ValidationError: applicant data breaks a policy rule
            ScoringUnavailable: oracle failed after retries
        """
        start_time = time.time()
        application = self.workflow.open_application(applicant_data, applicant_id)
        result = await self._score(applicant_data)

        event = self.workflow.auto_score(application, result)
        application.append(event)

        with self._transaction():
            self.applications.create(application)
            self.audit.record(build_audit_entry(event))

        self._observe([event], start_time)
        return event

    def override(
        self,
        application_id: str,
        actor: Actor,
        action: Union[OverrideAction, str],
        reason_code: Optional[str],
        justification: Optional[str],
        expected_version: Optional[int] = None,
    ) -> ManualOverrideEvent:
        """
        Manually approve, reject or send to review. Score is unchanged.

        Raises:
            ValidationError, PermissionDenied, ApplicationNotFound, ConflictError
        """
        start_time = time.time()
        application = self._load(application_id, expected_version)
        event = self.workflow.override(application, actor, action, reason_code, justification)

        read_version = application.version
        application.append(event)
        with self._transaction():
            self.applications.append_events(application, [event], expected_version=read_version)
            self.audit.record(build_audit_entry(event))

        self._observe([event], start_time)
        return event

    async def correct_data(
        self,
        application_id: str,
        actor: Actor,
        new_data: ApplicantData,
        justification: Optional[str],
        expected_version: Optional[int] = None,
    ) -> Tuple[DataCorrectionEvent, AutoScoreEvent]:
        """
        Replace applicant data and re-score it.

        Always yields exactly two events, DATA_CORRECTION then AUTO_SCORE,
        appended together. If scoring fails nothing is recorded.

        Raises:
            ValidationError, PermissionDenied, ApplicationNotFound,
            ConflictError, ScoringUnavailable
        """
        start_time = time.time()
        application = self._load(application_id, expected_version)
        correction = self.workflow.correct(application, actor, new_data, justification)
        result = await self._score(new_data)

        read_version = application.version
        application.append(correction)
        rescore = self.workflow.auto_score(application, result)
        application.append(rescore)

        with self._transaction():
            self.applications.append_events(application, [correction, rescore], expected_version=read_version)
            self.audit.record(build_audit_entry(correction))
            self.audit.record(build_audit_entry(rescore))

        self._observe([correction, rescore], start_time)
        return correction, rescore

    def contest(
        self,
        application_id: str,
        actor: Actor,
        reason_code: Optional[str],
        justification: Optional[str],
        proposed_adjustment: Optional[int] = None,
        evidence: Iterable[str] = (),
    ) -> ContestationEvent:
        """
        Queue a contestation for managerial review. The decision is not touched.

        Raises:
            ValidationError, PermissionDenied, ApplicationNotFound
        """
        start_time = time.time()
        application = self.applications.get(application_id)
        event = self.workflow.contest(application, actor, reason_code, justification, proposed_adjustment, evidence)
        application.add_contestation(event)

        with self._transaction():
            self.applications.add_contestation(event)
            self.audit.record(build_audit_entry(event))

        self._observe([event], start_time)
        return event

    # Read accessors

    def get_application(self, application_id: str) -> Application:
        return self.applications.get(application_id)

    def get_ratios(self, application_id: str) -> FinancialRatios:
        return compute_ratios(self.applications.get(application_id).applicant_data)

    def list_applications(
        self,
        applicant_id: Optional[str] = None,
        decision: Union[DecisionState, str, None] = None,
        limit: int | None = None,
    ) -> List[Application]:
        """
        Newest first. `applicant_id` narrows to one client's applications.

        Raises:
            ValidationError: unknown decision filter
        """
        if decision is not None and not isinstance(decision, DecisionState):
            decision = DecisionState(require_reason(decision, [s.value for s in DecisionState], field="decision"))
        return self.applications.list(applicant_id, decision, limit or settings.audit_query_limit)

    def score_summary(self, actor: Actor) -> ScoreSummary:
        """
        Portfolio counts, average score and approval rate.

        Raises:
            PermissionDenied: actor's role lacks view_analytics
        """
        self.workflow.policy.require(actor.role, VIEW_ANALYTICS)
        return self.applications.summary()

    def list_pending_contestations(self, limit: int | None = None) -> List[ContestationEvent]:
        return self.applications.list_pending_contestations(limit or settings.audit_query_limit)

    def audit_for_application(self, application_id: str, limit: int | None = None) -> List[AuditEntry]:
        return self.audit.get_by_application(application_id, limit or settings.audit_query_limit)

    def audit_for_actor(self, actor_id: str, limit: int | None = None) -> List[AuditEntry]:
        return self.audit.get_by_actor(actor_id, limit or settings.audit_query_limit)

    # Internals

    def _load(self, application_id: str, expected_version: Optional[int]) -> Application:
        application = self.applications.get(application_id)
        if expected_version is not None and expected_version != application.version:
            conflict_counter.inc()
            raise ConflictError(application_id, expected_version, application.version)
        return application

    async def _score(self, applicant_data: ApplicantData) -> ScoringResult:
        """
        Call the oracle with a timeout, retrying transient failures.

        Retry strategy:
        - Timeouts, ScoringUnavailable and connection errors (OSError) are retried
        - `max_retries` extra attempts (one by default)
        - Backoff: backoff_base * 2^(attempt-1) between attempts
        """
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                with scoring_latency_histogram.time():
                    return await asyncio.wait_for(self.oracle.score(applicant_data), timeout=self.scoring_timeout)

            except (asyncio.TimeoutError, ScoringUnavailable, OSError) as e:
                scoring_failures_counter.inc()
                if attempt >= attempts:
                    raise ScoringUnavailable(f"Scoring failed after {attempts} attempt(s): {e!r}") from e

                logger.warning(
                    f"Scoring attempt {attempt} failed, retrying: {e!r}",
                    extra={"request_id": self.request_id, "attempt": attempt},
                )
                await asyncio.sleep(self.backoff_base * (2 ** (attempt - 1)))

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except ConflictError:
            conflict_counter.inc()
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            raise

    def _observe(self, events: List[DecisionEvent], start_time: float) -> None:
        duration_ms = (time.time() - start_time) * 1000
        for event in events:
            record_transition(event)
            log_transition(event, request_id=self.request_id, duration_ms=duration_ms)
