"""GET /v1/audit - Audit trail by application or by actor"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query

from credit_workflow.api.dependencies import get_decision_service
from credit_workflow.api.v1.schemas import AuditEntrySchema, AuditResponse
from credit_workflow.services.decision_service import DecisionService

router = APIRouter()


@router.get("/audit", response_model=AuditResponse)
def get_audit_trail(
    application_id: Optional[str] = Query(None, description="Application identifier"),
    actor_id: Optional[str] = Query(None, description="Actor identifier"),
    limit: int = Query(50, ge=1, le=500),
    service: DecisionService = Depends(get_decision_service),
):
    """
    Retrieve audit entries.

    Returns:
        Entries of one application in chronological order, or the most
        recent entries of one actor first
    """
    if (application_id is None) == (actor_id is None):
        raise HTTPException(status_code=400, detail="Provide exactly one of application_id or actor_id")

    if application_id is not None:
        entries = service.audit_for_application(application_id, limit)
    else:
        entries = service.audit_for_actor(actor_id, limit)

    return AuditResponse(
        application_id=application_id,
        actor_id=actor_id,
        entries=[AuditEntrySchema.from_domain(e) for e in entries],
    )
