from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ValidationError

from core.deps import ADMIN_ROLES, get_approval_workflow, get_current_actor, get_location_access_service
from core.exceptions import ApprovalNotFound, AuditWriteError, GeolocationError
from models.location import Actor, LocationSample
from models.location_approval import LocationApproval
from services.approval_workflow import ApprovalWorkflow
from services.geolocation import ClientReportedLocation
from services.location_access import AccessCheckResult, LocationAccessService
from utils.datetime_helpers import format_utc_datetime

router = APIRouter()


# --- Pydantic Models for Requests / Responses ---

# What the client sends after asking the device for its position
class AccessCheckPayload(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None
    captured_at: Optional[datetime] = None
    speed: Optional[float] = None
    heading: Optional[float] = None
    # Set instead of a position when the device refused or failed
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    request_approval: bool = True
    device_info: Optional[dict] = None


class ApprovalCheckResponse(BaseModel):
    has_valid_approval: bool
    approval: Optional[LocationApproval] = None


class ApprovalStatusResponse(BaseModel):
    id: int
    status: str
    access_expires_at: Optional[str] = None


def build_provider(payload: AccessCheckPayload) -> ClientReportedLocation:
    if payload.error_code:
        return ClientReportedLocation(error_code=payload.error_code, error_message=payload.error_message)

    if payload.latitude is None or payload.longitude is None or payload.accuracy is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Location and accuracy required to check access.",
        )

    sample_data = {
        "latitude": payload.latitude,
        "longitude": payload.longitude,
        "accuracy_meters": payload.accuracy,
        "speed": payload.speed,
        "heading": payload.heading,
    }
    if payload.captured_at:
        sample_data["captured_at"] = payload.captured_at

    try:
        sample = LocationSample(**sample_data)
    except ValidationError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid coordinates: ({payload.latitude},{payload.longitude})",
        )
    return ClientReportedLocation(sample=sample)


# --- Operator Endpoints ---

@router.post("/check", response_model=AccessCheckResult)
async def check_access(
    payload: AccessCheckPayload,
    actor: Annotated[Actor, Depends(get_current_actor)],
    service: Annotated[LocationAccessService, Depends(get_location_access_service)],
):
    """Decide whether the caller may use the system from their current location."""
    provider = build_provider(payload)

    try:
        return await service.check_access(
            actor,
            provider,
            request_approval=payload.request_approval,
            device_info=payload.device_info,
        )
    except GeolocationError as e:
        # Fail closed: no sample, no access
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": e.code, "message": e.message, "access": "denied"},
        )
    except AuditWriteError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not record the location check. Access denied, please retry.",
        )


@router.get("/approval", response_model=ApprovalCheckResponse)
def get_my_approval(
    actor: Annotated[Actor, Depends(get_current_actor)],
    workflow: Annotated[ApprovalWorkflow, Depends(get_approval_workflow)],
):
    """Whether the caller currently holds an unexpired remote access approval."""
    is_valid, approval = workflow.has_valid_approval(actor.actor_id)
    return ApprovalCheckResponse(has_valid_approval=is_valid, approval=approval)


@router.get("/approvals/{request_id}/status", response_model=ApprovalStatusResponse)
def get_approval_status(
    request_id: int,
    actor: Annotated[Actor, Depends(get_current_actor)],
    workflow: Annotated[ApprovalWorkflow, Depends(get_approval_workflow)],
):
    """Effective status of one approval request; polled by the waiting client."""
    try:
        approval = workflow.get_request(request_id)
    except ApprovalNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    if approval.actor_id != actor.actor_id and actor.actor_role.lower() not in ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot view another user's approval request.",
        )

    effective = workflow.effective_status(approval)
    return ApprovalStatusResponse(
        id=approval.id,
        status=effective.value,
        access_expires_at=format_utc_datetime(approval.access_expires_at),
    )
