"""Agent actions on a decision: override, data correction, contestation"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Response

from credit_workflow.api.dependencies import etag, get_decision_service, get_expected_version
from credit_workflow.api.v1.schemas import (
    ApplicationResponse,
    ContestationListResponse,
    ContestationSchema,
    ContestRequest,
    CorrectionRequest,
    OverrideRequest,
)
from credit_workflow.services.decision_service import DecisionService

router = APIRouter()


@router.post("/applications/{application_id}/override", response_model=ApplicationResponse)
def override_decision(
    application_id: str,
    request_body: OverrideRequest,
    response: Response,
    expected_version: Optional[int] = Depends(get_expected_version),
    service: DecisionService = Depends(get_decision_service),
):
    """
    Manually approve, reject or send an application to review.

    Pass the ETag from the last read in If-Match to refuse the write when
    somebody else acted in between.
    """
    service.override(
        application_id,
        request_body.actor(),
        request_body.action,
        request_body.reason_code,
        request_body.justification,
        expected_version=expected_version,
    )
    application = service.get_application(application_id)
    response.headers["ETag"] = etag(application.version)
    return ApplicationResponse.from_domain(application)


@router.post("/applications/{application_id}/corrections", response_model=ApplicationResponse)
async def correct_application_data(
    application_id: str,
    request_body: CorrectionRequest,
    response: Response,
    expected_version: Optional[int] = Depends(get_expected_version),
    service: DecisionService = Depends(get_decision_service),
):
    """Correct applicant data; the application is re-scored in the same write"""
    await service.correct_data(
        application_id,
        request_body.actor(),
        request_body.applicant_data.to_domain(),
        request_body.justification,
        expected_version=expected_version,
    )
    application = service.get_application(application_id)
    response.headers["ETag"] = etag(application.version)
    return ApplicationResponse.from_domain(application)


@router.post(
    "/applications/{application_id}/contestations",
    response_model=ContestationSchema,
    status_code=201,
)
def contest_decision(
    application_id: str,
    request_body: ContestRequest,
    service: DecisionService = Depends(get_decision_service),
):
    """Queue a contestation for managerial review; the decision is unchanged"""
    event = service.contest(
        application_id,
        request_body.actor(),
        request_body.reason_code,
        request_body.justification,
        proposed_adjustment=request_body.proposed_score_adjustment,
        evidence=request_body.evidence,
    )
    return ContestationSchema.from_domain(event)


@router.get("/contestations", response_model=ContestationListResponse)
def list_pending_contestations(
    limit: int = Query(50, ge=1, le=500),
    service: DecisionService = Depends(get_decision_service),
):
    """Pending-review queue, oldest first"""
    contestations = service.list_pending_contestations(limit)
    return ContestationListResponse(contestations=[ContestationSchema.from_domain(c) for c in contestations])
