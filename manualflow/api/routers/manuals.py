"""Manual catalogue API endpoints."""

from typing import List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException

from pydantic import BaseModel

from manualflow.api.deps import get_current_identity, get_registry, get_workflow_service
from manualflow.api.routers.approvals import ApprovalSummaryResponse
from manualflow.core.approval import ApprovalWorkflowService
from manualflow.core.security import Identity
from manualflow.services.manuals import ManualRegistry

router = APIRouter(prefix="/manuals", tags=["manuals"])


# Schemas
class ManualResponse(BaseModel):
    id: str
    title: str
    slug: str
    owner_username: str
    state: str
    latest_version_seq: int
    published_version_seq: Optional[int]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ManualVersionResponse(BaseModel):
    manual_id: str
    version_seq: int
    format: str
    checksum_sha256: Optional[str]
    size_bytes: Optional[int]
    changelog: Optional[str]
    created_by: str
    created_at: datetime

    class Config:
        from_attributes = True


class ManualStatusResponse(BaseModel):
    manual_id: str
    title: str
    owner_username: str
    state: str
    latest_version_seq: int
    summary: Optional[ApprovalSummaryResponse] = None

    class Config:
        from_attributes = True


# Endpoints
@router.get("", response_model=List[ManualResponse])
def list_manuals(
    identity: Identity = Depends(get_current_identity),
    registry: ManualRegistry = Depends(get_registry),
):
    return [ManualResponse.model_validate(m) for m in registry.list_manuals()]


@router.get("/with-approval-status", response_model=List[ManualStatusResponse])
def list_manuals_with_status(
    identity: Identity = Depends(get_current_identity),
    service: ApprovalWorkflowService = Depends(get_workflow_service),
):
    """List manuals with the approval status of their latest version."""
    return [ManualStatusResponse.model_validate(s) for s in service.list_manual_statuses()]


@router.get("/{manual_id}", response_model=ManualResponse)
def get_manual(
    manual_id: str,
    identity: Identity = Depends(get_current_identity),
    registry: ManualRegistry = Depends(get_registry),
):
    manual = registry.get_manual(manual_id)
    if not manual:
        raise HTTPException(status_code=404, detail="Manual not found")
    return ManualResponse.model_validate(manual)


@router.get("/{manual_id}/versions", response_model=List[ManualVersionResponse])
def list_versions(
    manual_id: str,
    identity: Identity = Depends(get_current_identity),
    registry: ManualRegistry = Depends(get_registry),
):
    """List every version of a manual, oldest first."""
    if not registry.get_manual(manual_id):
        raise HTTPException(status_code=404, detail="Manual not found")
    return [ManualVersionResponse.model_validate(v) for v in registry.list_versions(manual_id)]
