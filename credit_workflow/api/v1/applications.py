"""POST/GET /v1/applications - submission and read accessors"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Response

from credit_workflow.api.dependencies import etag, get_decision_service
from credit_workflow.api.v1.schemas import (
    ApplicationListResponse,
    ApplicationResponse,
    RatiosSchema,
    ScoreSummaryResponse,
    SubmitRequest,
)
from credit_workflow.domain.models import Actor
from credit_workflow.services.decision_service import DecisionService

router = APIRouter()


@router.post("/applications", response_model=ApplicationResponse, status_code=201)
async def submit_application(
    request_body: SubmitRequest,
    response: Response,
    service: DecisionService = Depends(get_decision_service),
):
    """
    Submit a credit application.

    Flow:
    1. Validate applicant data against the credit policy
    2. Score it with the oracle (timeout + one retry)
    3. Persist the application with its first AUTO_SCORE event
    4. Return the application with its automatic decision
    """
    event = await service.submit(request_body.applicant_data.to_domain(), request_body.applicant_id)
    application = service.get_application(event.application_id)

    response.headers["ETag"] = etag(application.version)
    response.headers["Location"] = f"/v1/applications/{application.id}"
    return ApplicationResponse.from_domain(application)


@router.get("/applications", response_model=ApplicationListResponse)
def list_applications(
    applicant_id: Optional[str] = Query(None, description="Only this client's applications"),
    decision: Optional[str] = Query(None, description="Only applications currently in this decision"),
    limit: int = Query(50, ge=1, le=500),
    service: DecisionService = Depends(get_decision_service),
):
    """Applications with their current decision, newest first"""
    applications = service.list_applications(applicant_id, decision, limit)
    return ApplicationListResponse(
        applicant_id=applicant_id,
        decision=decision,
        applications=[ApplicationResponse.from_domain(a) for a in applications],
    )


# Declared before /applications/{application_id} so "summary" is not taken for an id
@router.get("/applications/summary", response_model=ScoreSummaryResponse)
def get_score_summary(
    actor_id: str = Query(..., min_length=1, description="User requesting the figures"),
    actor_role: str = Query(..., min_length=1, description="Role used for the permission check"),
    service: DecisionService = Depends(get_decision_service),
):
    """Counts per decision, average score and approval rate; requires view_analytics"""
    return ScoreSummaryResponse.from_domain(service.score_summary(Actor(actor_id=actor_id, role=actor_role)))


@router.get("/applications/{application_id}", response_model=ApplicationResponse)
def get_application(
    application_id: str,
    response: Response,
    service: DecisionService = Depends(get_decision_service),
):
    """Current decision, score, ratios and full decision history"""
    application = service.get_application(application_id)
    response.headers["ETag"] = etag(application.version)
    return ApplicationResponse.from_domain(application)


@router.get("/applications/{application_id}/ratios", response_model=RatiosSchema)
def get_ratios(
    application_id: str,
    service: DecisionService = Depends(get_decision_service),
):
    """Debt ratio, remaining-to-live, guarantee ratio and capacity, computed on read"""
    return RatiosSchema.from_domain(service.get_ratios(application_id))
