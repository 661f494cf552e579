"""SQLAlchemy ORM models for applications, their decision ledger and the audit log"""

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class CreditApplication(Base):
    """Credit application with cached current decision"""

    __tablename__ = "credit_application"

    id = Column(String(36), primary_key=True)
    applicant_id = Column(Text, nullable=True, index=True)
    applicant_data = Column(JSON, nullable=False)
    current_decision = Column(Text, nullable=False, index=True)
    current_score = Column(Float, nullable=False)
    # Number of decision events; optimistic concurrency token
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    events = relationship(
        "DecisionEventRecord",
        back_populates="application",
        order_by="DecisionEventRecord.sequence",
        cascade="all, delete-orphan",
    )
    contestations = relationship(
        "ContestationRecord",
        back_populates="application",
        order_by="ContestationRecord.created_at",
        cascade="all, delete-orphan",
    )


class DecisionEventRecord(Base):
    """Append-only decision ledger entry"""

    __tablename__ = "decision_event"
    __table_args__ = (UniqueConstraint("application_id", "sequence", name="uq_decision_event_sequence"),)

    id = Column(String(36), primary_key=True)
    application_id = Column(
        String(36), ForeignKey("credit_application.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sequence = Column(Integer, nullable=False)
    kind = Column(Text, nullable=False)
    actor_id = Column(Text, nullable=False, index=True)
    actor_role = Column(Text, nullable=False)
    decision = Column(Text, nullable=False)
    score = Column(Float, nullable=False)
    justification = Column(Text, nullable=False, default="")
    payload = Column(JSON, nullable=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False)

    application = relationship("CreditApplication", back_populates="events")


class ContestationRecord(Base):
    """Contestation waiting for managerial review"""

    __tablename__ = "contestation"

    id = Column(String(36), primary_key=True)
    application_id = Column(
        String(36), ForeignKey("credit_application.id", ondelete="CASCADE"), nullable=False, index=True
    )
    actor_id = Column(Text, nullable=False, index=True)
    reason_code = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="PENDING", index=True)
    proposed_score_adjustment = Column(Integer, nullable=True)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    application = relationship("CreditApplication", back_populates="contestations")


class AuditLog(Base):
    """Immutable audit record; never updated or deleted"""

    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(String(36), nullable=False, index=True)
    actor_id = Column(Text, nullable=False, index=True)
    actor_role = Column(Text, nullable=False)
    action = Column(Text, nullable=False)
    justification = Column(Text, nullable=False, default="")
    details = Column(JSON, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
