"""Data access layer for applications, decision events and audit entries"""

from typing import List, Optional, Sequence
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload
from credit_workflow.infrastructure.database.models import (
    AuditLog,
    ContestationRecord,
    CreditApplication,
    DecisionEventRecord,
)
from credit_workflow.domain.exceptions import ApplicationNotFound, ConflictError
from credit_workflow.domain.models import (
    Application,
    AuditEntry,
    ContestationEvent,
    ContestationStatus,
    DecisionEvent,
    DecisionState,
    ScoreSummary,
)
from credit_workflow.domain.serialization import (
    applicant_data_from_dict,
    applicant_data_to_dict,
    event_from_dict,
    event_to_dict,
)


class ApplicationRepository:
    """Repository for applications and their decision ledger"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, application: Application) -> CreditApplication:
        """Persist a new application together with its initial events"""
        db_application = CreditApplication(
            id=application.id,
            applicant_id=application.applicant_id,
            applicant_data=applicant_data_to_dict(application.applicant_data),
            current_decision=application.current_decision.value,
            current_score=application.current_score,
            version=application.version,
        )
        if application.events:
            db_application.created_at = application.events[0].timestamp
        self.db.add(db_application)
        self._add_events(application.events, start_sequence=0)
        self._flush()
        return db_application

    def get(self, application_id: str) -> Application:
        """Load an application and rebuild it from its ledger"""
        db_application = self.db.get(CreditApplication, application_id)
        if db_application is None:
            raise ApplicationNotFound(f"Application {application_id} not found")
        return self._to_domain(db_application)

    def list(
        self,
        applicant_id: Optional[str] = None,
        decision: Optional[DecisionState] = None,
        limit: int = 50,
    ) -> List[Application]:
        """Newest applications first, optionally for one client or one current decision"""
        query = self.db.query(CreditApplication).options(
            selectinload(CreditApplication.events),
            selectinload(CreditApplication.contestations),
        )
        if applicant_id is not None:
            query = query.filter(CreditApplication.applicant_id == applicant_id)
        if decision is not None:
            query = query.filter(CreditApplication.current_decision == decision.value)

        records = query.order_by(CreditApplication.created_at.desc(), CreditApplication.id).limit(limit).all()
        return [self._to_domain(r) for r in records]

    def summary(self) -> ScoreSummary:
        """Counts per current decision and the average current score"""
        rows = (
            self.db.query(
                CreditApplication.current_decision,
                func.count(CreditApplication.id),
                func.sum(CreditApplication.current_score),
            )
            .group_by(CreditApplication.current_decision)
            .all()
        )
        by_decision = {decision: count for decision, count, _ in rows}
        total = sum(by_decision.values())
        score_sum = sum(score or 0.0 for _, _, score in rows)

        # amount_asked lives in the JSON snapshot
        amounts = self.db.scalars(select(CreditApplication.applicant_data)).all()
        total_amount = sum(float(data.get("amount_asked", 0)) for data in amounts)

        approved = by_decision.get(DecisionState.AUTO_APPROVED.value, 0) + by_decision.get(
            DecisionState.MANUAL_APPROVED.value, 0
        )
        rejected = by_decision.get(DecisionState.AUTO_REJECTED.value, 0) + by_decision.get(
            DecisionState.MANUAL_REJECTED.value, 0
        )
        return ScoreSummary(
            total_applications=total,
            approved=approved,
            rejected=rejected,
            under_review=by_decision.get(DecisionState.UNDER_REVIEW.value, 0),
            average_score=round(score_sum / total, 4) if total else None,
            approval_rate=round(approved * 100.0 / total, 2) if total else 0.0,
            total_amount_asked=total_amount,
            by_decision=by_decision,
        )

    def append_events(
        self,
        application: Application,
        new_events: Sequence[DecisionEvent],
        expected_version: int,
    ) -> None:
        """
        Append events if nobody else wrote since `expected_version`.

        `application` must already contain `new_events`; its cached columns
        are updated with a compare-and-set on the version.

        Raises:
            ConflictError: the stored version moved on
        """
        result = self.db.execute(
            update(CreditApplication)
            .where(CreditApplication.id == application.id)
            .where(CreditApplication.version == expected_version)
            .values(
                version=expected_version + len(new_events),
                current_decision=application.current_decision.value,
                current_score=application.current_score,
                applicant_data=applicant_data_to_dict(application.applicant_data),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            actual = self.db.scalar(select(CreditApplication.version).where(CreditApplication.id == application.id))
            if actual is None:
                raise ApplicationNotFound(f"Application {application.id} not found")
            raise ConflictError(application.id, expected_version, actual)

        self._add_events(new_events, start_sequence=expected_version)
        self._flush(application.id, expected_version)

    def add_contestation(self, event: ContestationEvent) -> ContestationRecord:
        db_contestation = ContestationRecord(
            id=event.event_id,
            application_id=event.application_id,
            actor_id=event.actor_id,
            reason_code=event.reason_code,
            status=event.status.value,
            proposed_score_adjustment=event.proposed_score_adjustment,
            payload=event_to_dict(event),
            created_at=event.timestamp,
        )
        self.db.add(db_contestation)
        self.db.flush()
        return db_contestation

    def list_pending_contestations(self, limit: int = 50) -> List[ContestationEvent]:
        """Oldest first, the order a reviewer should process them"""
        records = (
            self.db.query(ContestationRecord)
            .filter(ContestationRecord.status == ContestationStatus.PENDING.value)
            .order_by(ContestationRecord.created_at.asc())
            .limit(limit)
            .all()
        )
        return [event_from_dict(r.payload) for r in records]

    @staticmethod
    def _to_domain(db_application: CreditApplication) -> Application:
        application = Application(
            id=db_application.id,
            applicant_data=applicant_data_from_dict(db_application.applicant_data),
            applicant_id=db_application.applicant_id,
        )
        application.events.extend(event_from_dict(e.payload) for e in db_application.events)
        application.contestations.extend(event_from_dict(c.payload) for c in db_application.contestations)
        return application

    def _add_events(self, events: Sequence[DecisionEvent], start_sequence: int) -> None:
        for offset, event in enumerate(events):
            self.db.add(
                DecisionEventRecord(
                    id=event.event_id,
                    application_id=event.application_id,
                    sequence=start_sequence + offset,
                    kind=event.kind.value,
                    actor_id=event.actor_id,
                    actor_role=event.actor_role,
                    decision=event.decision.value,
                    score=event.score,
                    justification=event.justification,
                    payload=event_to_dict(event),
                    occurred_at=event.timestamp,
                )
            )

    def _flush(self, application_id: str | None = None, expected_version: int = 0) -> None:
        try:
            self.db.flush()
        except IntegrityError as e:
            # Sequence already taken: another writer appended first
            if application_id is None:
                raise
            raise ConflictError(application_id, expected_version, expected_version + 1) from e


class AuditRepository:
    """Repository for the audit trail"""

    def __init__(self, db: Session):
        self.db = db

    def record(self, entry: AuditEntry) -> AuditLog:
        db_entry = AuditLog(
            application_id=entry.application_id,
            actor_id=entry.actor_id,
            actor_role=entry.actor_role,
            action=entry.action,
            justification=entry.justification,
            details=entry.details,
            timestamp=entry.timestamp,
        )
        self.db.add(db_entry)
        self.db.flush()
        return db_entry

    def get_by_application(self, application_id: str, limit: int = 50) -> List[AuditEntry]:
        """Audit trail of one application in chronological order"""
        records = (
            self.db.query(AuditLog)
            .filter(AuditLog.application_id == application_id)
            .order_by(AuditLog.id.asc())
            .limit(limit)
            .all()
        )
        return [self._to_entry(r) for r in records]

    def get_by_actor(self, actor_id: str, limit: int = 50) -> List[AuditEntry]:
        """Most recent actions of one actor first"""
        records = (
            self.db.query(AuditLog)
            .filter(AuditLog.actor_id == actor_id)
            .order_by(AuditLog.id.desc())
            .limit(limit)
            .all()
        )
        return [self._to_entry(r) for r in records]

    @staticmethod
    def _to_entry(record: AuditLog) -> AuditEntry:
        return AuditEntry(
            application_id=record.application_id,
            actor_id=record.actor_id,
            actor_role=record.actor_role,
            action=record.action,
            justification=record.justification,
            timestamp=record.timestamp,
            details=record.details,
        )
