import logging
import os
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlmodel import Session

from core.config import LocationSettings, get_location_settings
from core.firebase import get_firestore_client, verify_id_token
from db.session import get_session
from models.location import Actor
from services.approval_workflow import ApprovalWorkflow
from services.attempt_logger import AttemptLogger
from services.location_access import LocationAccessService
from services.notifications import (
    FirestoreNotificationDispatcher,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
)
from services.violation_alerter import ViolationAlerter
from services.zone_registry import ZoneRegistry

logger = logging.getLogger(__name__)

# Standard credentials exception
CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Could not validate credentials",
    headers={"WWW-Authenticate": "Bearer"},
)
# Admin Roles Defined
ADMIN_ROLES = ["owner", "admin", "management"]


# Resolves the Firebase ID token to the actor identity used by the location services
async def get_current_actor(request: Request) -> Actor:
    # 1) Extract & Analyze Authorization Header
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise CREDENTIALS_EXCEPTION
    token = auth_header.split(" ", 1)[1]

    # 2) Verify Firebase Token
    try:
        decoded = verify_id_token(token)
    except Exception:
        raise CREDENTIALS_EXCEPTION
    uid = decoded.get("uid")
    if not uid:
        raise CREDENTIALS_EXCEPTION

    # 3) Fetch the Firestore user profile
    try:
        snapshot = get_firestore_client().collection("users").document(uid).get()
    except Exception as e:
        logger.error(f"Firestore error fetching profile for {uid}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not fetch user profile.",
        )
    if not snapshot.exists:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User profile not found in Firestore",
        )
    profile = snapshot.to_dict()

    return Actor(
        actor_id=uid,
        actor_name=profile.get("displayName") or profile.get("name") or "",
        actor_role=profile.get("role", ""),
    )


# Admin Role Check Dependency
async def require_admin_role(
    actor: Annotated[Actor, Depends(get_current_actor)]
) -> Actor:
    # Check That User Has Adequate Permissions
    if actor.actor_role.lower() not in ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User doesn't have sufficient privileges for this action",
        )
    return actor


# --- Service wiring ---

@lru_cache
def get_notification_dispatcher() -> NotificationDispatcher:
    firebase_configured = any(
        os.getenv(var)
        for var in (
            "FIREBASE_SERVICE_ACCOUNT_KEY",
            "FIREBASE_SERVICE_ACCOUNT_KEY_PATH",
            "GOOGLE_APPLICATION_CREDENTIALS",
        )
    )
    if firebase_configured:
        return FirestoreNotificationDispatcher(get_firestore_client())
    logger.info("Firebase not configured; notifications will only be logged")
    return LoggingNotificationDispatcher()


def get_settings() -> LocationSettings:
    return get_location_settings()


def get_zone_registry(
    session: Annotated[Session, Depends(get_session)],
    settings: Annotated[LocationSettings, Depends(get_settings)],
) -> ZoneRegistry:
    return ZoneRegistry(session, max_zones=settings.max_zones)


def get_approval_workflow(
    session: Annotated[Session, Depends(get_session)],
    settings: Annotated[LocationSettings, Depends(get_settings)],
    dispatcher: Annotated[NotificationDispatcher, Depends(get_notification_dispatcher)],
) -> ApprovalWorkflow:
    return ApprovalWorkflow(
        session,
        dispatcher=dispatcher,
        grant_window=settings.grant_window,
        request_ttl=settings.request_ttl,
    )


def get_violation_alerter(
    session: Annotated[Session, Depends(get_session)],
    dispatcher: Annotated[NotificationDispatcher, Depends(get_notification_dispatcher)],
) -> ViolationAlerter:
    return ViolationAlerter(session, dispatcher=dispatcher)


def get_location_access_service(
    session: Annotated[Session, Depends(get_session)],
    settings: Annotated[LocationSettings, Depends(get_settings)],
    zones: Annotated[ZoneRegistry, Depends(get_zone_registry)],
    approvals: Annotated[ApprovalWorkflow, Depends(get_approval_workflow)],
    alerter: Annotated[ViolationAlerter, Depends(get_violation_alerter)],
) -> LocationAccessService:
    return LocationAccessService(
        zones=zones,
        attempts=AttemptLogger(session),
        approvals=approvals,
        alerter=alerter,
        settings=settings,
    )
