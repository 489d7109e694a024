import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field as PydanticField, field_validator
from sqlmodel import Session

from core.config import LocationSettings
from core.deps import (
    get_approval_workflow,
    get_settings,
    get_violation_alerter,
    get_zone_registry,
    require_admin_role,
)
from core.exceptions import (
    AlertNotFound,
    ApprovalAlreadyProcessed,
    ApprovalNotFound,
    AuditWriteError,
    LastZoneError,
    ZoneLimitReached,
    ZoneNotFound,
)
from db.session import get_session
from models.admin_alert import AdminAlert, AlertStatusEnum
from models.location import Actor
from models.location_approval import ApprovalAction, LocationApproval
from models.zone import Zone
from services.approval_workflow import ApprovalWorkflow
from services.location_stats import LocationStats, compute_stats
from services.violation_alerter import ViolationAlerter
from services.zone_registry import ZoneRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Pydantic Data Models ---

class ApprovalDecisionPayload(BaseModel):
    reason: Optional[str] = None


# Base model: Common fields required when describing a zone
class ZoneBase(BaseModel):
    name: str = PydanticField(..., min_length=1)
    address: Optional[str] = None
    latitude: float = PydanticField(ge=-90, le=90)
    longitude: float = PydanticField(ge=-180, le=180)
    radius_meters: float = PydanticField(gt=0)  # Ensures radius is positive


# Create model: Data needed when creating a NEW zone via POST
class ZoneCreate(ZoneBase):
    active: bool = True


# Update model: Defines fields that CAN be updated via PATCH (all optional)
class ZoneUpdate(BaseModel):
    name: Optional[str] = PydanticField(default=None, min_length=1)
    address: Optional[str] = None
    latitude: Optional[float] = PydanticField(default=None, ge=-90, le=90)
    longitude: Optional[float] = PydanticField(default=None, ge=-180, le=180)
    radius_meters: Optional[float] = PydanticField(default=None, gt=0)  # Validate if sent
    active: Optional[bool] = None

    # Omit a field to leave it alone; only address can be cleared with null
    @field_validator("name", "latitude", "longitude", "radius_meters", "active")
    @classmethod
    def reject_null(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value


class ZoneDeleteResponse(BaseModel):
    status: str = "success"
    deleted: Zone


class ExpireStaleResponse(BaseModel):
    expired: int


# --- Approval Endpoints ---

@router.get("/approvals/pending", response_model=List[LocationApproval])
def list_pending_approvals(
    admin: Annotated[Actor, Depends(require_admin_role)],
    workflow: Annotated[ApprovalWorkflow, Depends(get_approval_workflow)],
    limit: int = 100,
):
    """Pending remote access requests that have not yet expired, oldest first."""
    return workflow.list_pending(limit=limit)


def _decide(
    workflow: ApprovalWorkflow,
    request_id: int,
    action: ApprovalAction,
    admin: Actor,
    payload: ApprovalDecisionPayload,
) -> LocationApproval:
    try:
        return workflow.process(
            request_id,
            action,
            admin_id=admin.actor_id,
            admin_name=admin.actor_name,
            reason=payload.reason or "",
        )
    except ApprovalNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Approval request not found.")
    except ApprovalAlreadyProcessed as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Request is already {e.status}, cannot {action.value}.",
        )
    except AuditWriteError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not record the decision. Please retry.",
        )


@router.post("/approvals/{request_id}/approve", response_model=LocationApproval)
def approve_request(
    request_id: int,
    payload: ApprovalDecisionPayload,
    admin: Annotated[Actor, Depends(require_admin_role)],
    workflow: Annotated[ApprovalWorkflow, Depends(get_approval_workflow)],
):
    """Grants remote access for the configured approval window."""
    return _decide(workflow, request_id, ApprovalAction.APPROVE, admin, payload)


@router.post("/approvals/{request_id}/deny", response_model=LocationApproval)
def deny_request(
    request_id: int,
    payload: ApprovalDecisionPayload,
    admin: Annotated[Actor, Depends(require_admin_role)],
    workflow: Annotated[ApprovalWorkflow, Depends(get_approval_workflow)],
):
    """Denies a remote access request."""
    return _decide(workflow, request_id, ApprovalAction.DENY, admin, payload)


@router.post("/approvals/expire-stale", response_model=ExpireStaleResponse)
def expire_stale_approvals(
    admin: Annotated[Actor, Depends(require_admin_role)],
    workflow: Annotated[ApprovalWorkflow, Depends(get_approval_workflow)],
):
    try:
        return ExpireStaleResponse(expired=workflow.expire_stale_requests())
    except AuditWriteError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not expire stale requests.",
        )


# --- Zone Endpoints ---

@router.get("/zones", response_model=List[Zone])
def list_zones(
    admin: Annotated[Actor, Depends(require_admin_role)],
    registry: Annotated[ZoneRegistry, Depends(get_zone_registry)],
    active_only: bool = False,
):
    return registry.list_active_zones() if active_only else registry.list_zones()


@router.post("/zones", response_model=Zone, status_code=status.HTTP_201_CREATED)
def add_zone(
    zone_in: ZoneCreate,
    admin: Annotated[Actor, Depends(require_admin_role)],
    registry: Annotated[ZoneRegistry, Depends(get_zone_registry)],
):
    try:
        zone = registry.add_zone(**zone_in.model_dump())
    except ZoneLimitReached as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info(f"Admin {admin.actor_id} created zone {zone.id}")
    return zone


@router.patch("/zones/{zone_id}", response_model=Zone)
def update_zone(
    zone_id: int,
    zone_in: ZoneUpdate,
    admin: Annotated[Actor, Depends(require_admin_role)],
    registry: Annotated[ZoneRegistry, Depends(get_zone_registry)],
):
    # Only fields the client actually sent are applied
    patch = zone_in.model_dump(exclude_unset=True)
    if not patch:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields provided for update.")

    try:
        zone = registry.update_zone(zone_id, patch)
    except ZoneNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except AuditWriteError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not save the zone. Please retry.",
        )

    logger.info(f"Admin {admin.actor_id} updated zone {zone_id}")
    return zone


@router.post("/zones/{zone_id}/toggle", response_model=Zone)
def toggle_zone(
    zone_id: int,
    admin: Annotated[Actor, Depends(require_admin_role)],
    registry: Annotated[ZoneRegistry, Depends(get_zone_registry)],
):
    """Flip a zone's active flag. The last active zone always stays active."""
    try:
        return registry.toggle_zone(zone_id)
    except ZoneNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.delete("/zones/{zone_id}", response_model=ZoneDeleteResponse)
def delete_zone(
    zone_id: int,
    admin: Annotated[Actor, Depends(require_admin_role)],
    registry: Annotated[ZoneRegistry, Depends(get_zone_registry)],
):
    try:
        deleted = registry.delete_zone(zone_id)
    except ZoneNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except LastZoneError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"reason": e.reason, "message": str(e)},
        )

    logger.info(f"Admin {admin.actor_id} deleted zone {zone_id}")
    return ZoneDeleteResponse(deleted=deleted)


# --- Stats & Alerts ---

@router.get("/stats", response_model=LocationStats)
def get_stats(
    admin: Annotated[Actor, Depends(require_admin_role)],
    session: Annotated[Session, Depends(get_session)],
    settings: Annotated[LocationSettings, Depends(get_settings)],
    days: int = Query(default=30, ge=1, le=365),
):
    return compute_stats(
        session,
        window_days=days,
        recent_violations_limit=settings.recent_violations_limit,
        log_limit=settings.stats_log_limit,
    )


@router.get("/alerts", response_model=List[AdminAlert])
def get_alerts(
    admin: Annotated[Actor, Depends(require_admin_role)],
    alerter: Annotated[ViolationAlerter, Depends(get_violation_alerter)],
    status_filter: Optional[AlertStatusEnum] = None,
    limit: int = 100,
):
    return alerter.list_alerts(status=status_filter, limit=limit)


@router.post("/alerts/{alert_id}/read", response_model=AdminAlert)
def mark_alert_read(
    alert_id: int,
    admin: Annotated[Actor, Depends(require_admin_role)],
    alerter: Annotated[ViolationAlerter, Depends(get_violation_alerter)],
):
    try:
        return alerter.mark_read(alert_id)
    except AlertNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
