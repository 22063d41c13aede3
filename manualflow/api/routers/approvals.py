"""Approval workflow API endpoints."""

from typing import List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from manualflow.api.deps import get_current_identity, get_workflow_service, require_admin
from manualflow.core.approval import ApprovalStatus, ApprovalWorkflowService, DecisionKind
from manualflow.core.security import Identity

router = APIRouter(prefix="/approvals", tags=["approvals"])


# Schemas
class ApprovalSummaryResponse(BaseModel):
    manual_id: str
    version_seq: int
    title: Optional[str] = None
    status: ApprovalStatus
    approvals_count: int
    rejections_count: int
    required_approvals: int
    approvers: List[str]
    last_decision_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DecisionResponse(BaseModel):
    manual_id: str
    version_seq: int
    approver_username: str = Field(validation_alias="approver")
    decision_seq: int
    decision: DecisionKind
    comment: Optional[str]
    decided_at: datetime

    class Config:
        from_attributes = True
        populate_by_name = True


class DecisionCreate(BaseModel):
    manual_id: str = Field(..., min_length=1)
    version_seq: int = Field(..., ge=1)
    decision: DecisionKind
    comment: Optional[str] = None


class DecisionResult(BaseModel):
    message: str
    summary: ApprovalSummaryResponse


class ReviewRequestCreate(BaseModel):
    manual_id: str = Field(..., min_length=1)
    version_seq: int = Field(..., ge=1)
    approvers: List[str] = Field(..., min_length=1)


class ReviewRequestResult(BaseModel):
    requested: List[str]


class ApprovalRuleCreate(BaseModel):
    manual_id: str = Field(..., min_length=1)
    required_approvals: int = Field(..., ge=0)


class ApprovalRuleResponse(BaseModel):
    manual_id: str
    required_approvals: int
    is_default: bool = False

    class Config:
        from_attributes = True


class StatusResponse(BaseModel):
    status: ApprovalStatus


class StatsResponse(BaseModel):
    total_pending: int
    total_approved: int
    total_rejected: int
    avg_approval_latency: Optional[float] = Field(
        None, description="Mean hours between first and last decision"
    )


class RemovalResponse(BaseModel):
    message: str
    summary: Optional[ApprovalSummaryResponse] = None


# Endpoints
@router.get("/requests", response_model=List[ApprovalSummaryResponse])
def list_requests(
    status_filter: Optional[ApprovalStatus] = Query(None, alias="status"),
    identity: Identity = Depends(get_current_identity),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """List every manual version that has received decisions."""
    return [
        ApprovalSummaryResponse.model_validate(s)
        for s in service.list_requests(status_filter)
    ]


@router.get("/summary/{manual_id}/{version_seq}", response_model=ApprovalSummaryResponse)
def get_summary(
    manual_id: str,
    version_seq: int,
    identity: Identity = Depends(get_current_identity),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Get the derived approval summary of a manual version."""
    return ApprovalSummaryResponse.model_validate(service.get_summary(manual_id, version_seq))


@router.get("/status/{manual_id}/{version_seq}", response_model=StatusResponse)
def check_status(
    manual_id: str,
    version_seq: int,
    identity: Identity = Depends(get_current_identity),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    return StatusResponse(status=service.check_status(manual_id, version_seq))


@router.get("/approvers/{manual_id}/{version_seq}", response_model=List[DecisionResponse])
def list_approvers(
    manual_id: str,
    version_seq: int,
    identity: Identity = Depends(get_current_identity),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Full decision history of a manual version."""
    return [
        DecisionResponse.model_validate(d)
        for d in service.list_decisions(manual_id, version_seq)
    ]


@router.post("/decision", response_model=DecisionResult)
def record_decision(
    body: DecisionCreate,
    identity: Identity = Depends(get_current_identity),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Approve or reject a manual version as the calling user."""
    summary = service.record_decision(
        body.manual_id,
        body.version_seq,
        identity.username,
        body.decision,
        body.comment,
    )
    return DecisionResult(
        message=f"Manual {body.decision.value} successfully",
        summary=ApprovalSummaryResponse.model_validate(summary),
    )


@router.post("/review-requests", response_model=ReviewRequestResult)
def request_review(
    body: ReviewRequestCreate,
    identity: Identity = Depends(get_current_identity),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Notify approvers that a version awaits their decision."""
    requested = service.request_review(
        body.manual_id,
        body.version_seq,
        body.approvers,
        actor=identity.username,
    )
    return ReviewRequestResult(requested=requested)


@router.post("/rules", response_model=ApprovalRuleResponse)
def set_rule(
    body: ApprovalRuleCreate,
    identity: Identity = Depends(require_admin),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Create or replace the approval rule of a manual (admin only)."""
    rule = service.set_rule(body.manual_id, body.required_approvals)
    return ApprovalRuleResponse.model_validate(rule)


@router.get("/rules/{manual_id}", response_model=ApprovalRuleResponse)
def get_rule(
    manual_id: str,
    identity: Identity = Depends(get_current_identity),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    return ApprovalRuleResponse.model_validate(service.get_rule(manual_id))


@router.get("/stats", response_model=StatsResponse)
def get_stats(
    identity: Identity = Depends(get_current_identity),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Status totals and approval latency across all requests."""
    return StatsResponse(**service.stats().to_dict())


@router.delete("/approval/{manual_id}/{version_seq}/{username}", response_model=RemovalResponse)
def remove_approver_decisions(
    manual_id: str,
    version_seq: int,
    username: str,
    identity: Identity = Depends(require_admin),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Remove every decision of a user on a manual version (admin only)."""
    summary = service.remove_decision(manual_id, version_seq, username, actor=identity.username)
    return RemovalResponse(
        message="All decisions of the user were removed",
        summary=ApprovalSummaryResponse.model_validate(summary) if summary else None,
    )


@router.delete(
    "/approval/{manual_id}/{version_seq}/{username}/decision/{decision_seq}",
    response_model=RemovalResponse,
)
def remove_decision(
    manual_id: str,
    version_seq: int,
    username: str,
    decision_seq: int,
    identity: Identity = Depends(require_admin),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """Remove a single decision (admin only)."""
    summary = service.remove_decision(
        manual_id, version_seq, username, decision_seq, actor=identity.username
    )
    return RemovalResponse(
        message="Decision removed",
        summary=ApprovalSummaryResponse.model_validate(summary) if summary else None,
    )
