"""Dependency injection for FastAPI endpoints"""

from functools import lru_cache
from typing import Optional
from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from credit_workflow.config import settings
from credit_workflow.domain.exceptions import ValidationError
from credit_workflow.domain.permissions import RolePolicy
from credit_workflow.domain.scoring import HeuristicScoringModel, ScoringOracle
from credit_workflow.infrastructure.clients.scoring import ScoringClient
from credit_workflow.infrastructure.database.session import get_db
from credit_workflow.services.decision_service import DecisionService


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


@lru_cache
def get_scoring_oracle() -> ScoringOracle:
    """Shared scoring oracle; one seeded generator for the whole process"""
    if settings.scoring_backend == "remote":
        return ScoringClient()
    return HeuristicScoringModel(noise=settings.scoring_noise, seed=settings.scoring_seed)


@lru_cache
def get_role_policy() -> RolePolicy:
    return RolePolicy()


def get_decision_service(
    request: Request,
    db: Session = Depends(get_db),
    oracle: ScoringOracle = Depends(get_scoring_oracle),
    policy: RolePolicy = Depends(get_role_policy),
) -> DecisionService:
    return DecisionService(db, oracle, policy=policy, request_id=get_request_id(request))


def get_expected_version(if_match: Optional[str] = Header(default=None)) -> Optional[int]:
    """Parse an If-Match header carrying the application version (ETag)"""
    if if_match is None or if_match.strip() == "*":
        return None
    tag = if_match.strip()
    if tag.startswith("W/"):
        tag = tag[2:]
    try:
        return int(tag.strip('"'))
    except ValueError:
        raise ValidationError("If-Match", f"'{if_match}' is not an application version")


def etag(version: int) -> str:
    return f'"{version}"'
