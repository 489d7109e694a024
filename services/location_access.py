import logging
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_serializer

from core.config import LocationSettings
from models.location import Actor, Verdict
from services.approval_workflow import ApprovalWorkflow
from services.attempt_logger import AttemptLogger
from services.geofence_evaluator import evaluate
from services.geolocation import GeolocationProvider, fetch_location
from services.violation_alerter import ViolationAlerter
from services.zone_registry import ZoneRegistry
from utils.datetime_helpers import format_utc_datetime

logger = logging.getLogger(__name__)


class AccessOutcome(str, Enum):
    GRANTED = "granted"
    PENDING = "pending"
    DENIED = "denied"


class AccessCheckResult(BaseModel):
    access: AccessOutcome
    message: str
    verdict: Optional[Verdict] = None
    attempt_id: Optional[int] = None
    approval_id: Optional[int] = None
    alert_id: Optional[int] = None
    access_expires_at: Optional[datetime] = None
    bypassed: bool = False

    @field_serializer("access_expires_at")
    def serialize_access_expires_at(self, dt: Optional[datetime]) -> Optional[str]:
        return format_utc_datetime(dt)


def describe_violation(verdict: Verdict) -> str:
    if verdict.nearest_zone_id is None:
        return "No active factory location is configured."
    return (
        f"You are {verdict.distance_meters}m from {verdict.nearest_zone_name or 'the factory'}; "
        f"access requires being within {verdict.allowed_radius}m."
    )


class LocationAccessService:
    """
    Decides whether an actor may use the system from where they are.

    Pipeline: fetch sample -> evaluate -> log -> (invalid) existing approval
    or new pending request + alert. Any failure along the way propagates to
    the caller and nothing is granted by default.
    """

    def __init__(
        self,
        zones: ZoneRegistry,
        attempts: AttemptLogger,
        approvals: ApprovalWorkflow,
        alerter: ViolationAlerter,
        settings: LocationSettings,
    ):
        self.zones = zones
        self.attempts = attempts
        self.approvals = approvals
        self.alerter = alerter
        self.settings = settings

    def is_exempt(self, actor: Actor) -> bool:
        # Explicit role claim; never a substring match on the user name
        return actor.actor_role.strip().lower() in self.settings.bypass_roles

    async def check_access(
        self,
        actor: Actor,
        provider: GeolocationProvider,
        request_approval: bool = True,
        device_info: Optional[dict] = None,
    ) -> AccessCheckResult:
        if self.is_exempt(actor):
            logger.info(f"Location check skipped for {actor.actor_id} (role '{actor.actor_role}')")
            return AccessCheckResult(
                access=AccessOutcome.GRANTED,
                message="Location check not required for this role",
                bypassed=True,
            )

        sample = await fetch_location(provider, self.settings.fetch_timeout_seconds)
        verdict = evaluate(sample, self.zones.list_active_zones(), self.settings.min_accuracy_meters)
        attempt = self.attempts.record(actor, sample, verdict, device_info)

        if verdict.is_valid:
            return AccessCheckResult(
                access=AccessOutcome.GRANTED,
                message=f"Access granted from {verdict.nearest_zone_name or 'factory location'}",
                verdict=verdict,
                attempt_id=attempt.id,
            )

        has_approval, approval = self.approvals.has_valid_approval(actor.actor_id)
        if has_approval:
            logger.info(f"{actor.actor_id} outside zones but holds approval {approval.id}")
            return AccessCheckResult(
                access=AccessOutcome.GRANTED,
                message="Access granted by administrator approval",
                verdict=verdict,
                attempt_id=attempt.id,
                approval_id=approval.id,
                access_expires_at=approval.access_expires_at,
            )

        if not request_approval:
            alert = self.alerter.raise_alert(actor, attempt)
            return AccessCheckResult(
                access=AccessOutcome.DENIED,
                message=f"Access denied. {describe_violation(verdict)}",
                verdict=verdict,
                attempt_id=attempt.id,
                alert_id=alert.id,
            )

        approval = self.approvals.request_approval(actor, sample, verdict, attempt.id)
        alert = self.alerter.raise_alert(actor, attempt)
        return AccessCheckResult(
            access=AccessOutcome.PENDING,
            message=f"Access denied. {describe_violation(verdict)} Admin approval requested.",
            verdict=verdict,
            attempt_id=attempt.id,
            approval_id=approval.id,
            alert_id=alert.id,
        )
