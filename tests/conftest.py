"""Pytest fixtures for testing"""

import asyncio
import pytest
from typing import Generator, List
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from credit_workflow.api.main import create_app
from credit_workflow.api.dependencies import get_scoring_oracle
from credit_workflow.infrastructure.database.models import Base
from credit_workflow.infrastructure.database.session import get_db, init_db
from credit_workflow.domain.exceptions import ScoringUnavailable
from credit_workflow.domain.models import Actor, ApplicantData, ScoringResult
from credit_workflow.domain.permissions import RolePolicy
from credit_workflow.services.decision_service import DecisionService


# Test database: one shared in-memory SQLite connection
TEST_DATABASE_URL = "sqlite://"
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class StubOracle:
    """Deterministic scoring oracle; can fail or stall on demand"""

    def __init__(self, probability: float = 0.75, failures: int = 0, delay: float = 0.0):
        self.probability = probability
        self.failures = failures
        self.delay = delay
        self.calls: List[ApplicantData] = []

    async def score(self, applicant_data: ApplicantData) -> ScoringResult:
        self.calls.append(applicant_data)
        if self.failures > 0:
            self.failures -= 1
            raise ScoringUnavailable("stub oracle unavailable")
        if self.delay:
            await asyncio.sleep(self.delay)
        return ScoringResult(
            probability=self.probability,
            risk_factors=("stub risk factor",),
            recommendations=("stub recommendation",),
        )


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    init_db(engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def oracle() -> StubOracle:
    return StubOracle(probability=0.75)


@pytest.fixture
def service(db: Session, oracle: StubOracle) -> DecisionService:
    """Decision service with no backoff between scoring retries"""
    return DecisionService(db, oracle, policy=RolePolicy(), scoring_timeout=1.0, max_retries=1, backoff_base=0.0)


@pytest.fixture
def client(db: Session, oracle: StubOracle) -> TestClient:
    """Create FastAPI test client with test database and stub oracle"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_scoring_oracle] = lambda: oracle
    return TestClient(app)


@pytest.fixture
def scenario_data() -> ApplicantData:
    """Healthy applicant: 20% debt ratio, 170000 remaining-to-live"""
    return ApplicantData(
        revenues=250000,
        charges=80000,
        debt=50000,
        amount_asked=150000,
        guarantee_estimated_value=500000,
        is_renewal=0,
        family_circumstances="MARRIED",
        activity="COMMERCE",
        legal_form="SOLE_PROPRIETORSHIP",
    )


@pytest.fixture
def agent() -> Actor:
    return Actor(actor_id="agent_1", role="agent")


@pytest.fixture
def admin() -> Actor:
    return Actor(actor_id="admin_1", role="admin")


@pytest.fixture
def applicant_payload() -> dict:
    return {
        "revenues": 250000,
        "charges": 80000,
        "debt": 50000,
        "amount_asked": 150000,
        "guarantee_estimated_value": 500000,
        "is_renewal": 0,
        "family_circumstances": "MARRIED",
        "activity": "COMMERCE",
        "legal_form": "SOLE_PROPRIETORSHIP",
    }
