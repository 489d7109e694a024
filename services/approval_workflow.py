import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from core.exceptions import ApprovalAlreadyProcessed, ApprovalNotFound, AuditWriteError
from models.location import Actor, LocationSample, Verdict
from models.location_approval import (
    ApprovalAction,
    ApprovalStatusEnum,
    EffectiveApprovalStatus,
    LocationApproval,
)
from services.notifications import LoggingNotificationDispatcher, NotificationDispatcher
from utils.datetime_helpers import ensure_utc, utc_now

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_REASON = "Remote location access request"
EXPIRED_REASON = "expired"
SYSTEM_ACTOR = "system"

# Serializes find-or-create so repeated attempts by one actor share a request.
# Process-local: separate workers can each open a request for the same actor.
_REQUEST_LOCK = threading.Lock()


class ApprovalWorkflow:
    """
    Lifecycle of remote access approval requests.

        pending --approve--> approved --(now > access_expires_at)--> expired
        pending --deny-----> denied
        pending --(now > expires_at, unprocessed)--> expired

    Expiry is evaluated lazily on read; expire_stale_requests() only tidies
    up the stored status of abandoned pending rows.
    """

    def __init__(
        self,
        session: Session,
        dispatcher: Optional[NotificationDispatcher] = None,
        grant_window: timedelta = timedelta(hours=8),
        request_ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session = session
        self.dispatcher = dispatcher or LoggingNotificationDispatcher()
        self.grant_window = grant_window
        self.request_ttl = request_ttl
        self.clock = clock

    # --- Requests ---

    def request_approval(
        self,
        actor: Actor,
        sample: LocationSample,
        verdict: Verdict,
        attempt_record_id: Optional[int],
        reason: str = DEFAULT_REQUEST_REASON,
    ) -> LocationApproval:
        """Open a pending request, or hand back the actor's open one."""
        with _REQUEST_LOCK:
            existing = self.find_open_request(actor.actor_id)
            if existing:
                logger.info(f"Reusing pending approval {existing.id} for {actor.actor_id}")
                return existing

            now = self.clock()
            approval = LocationApproval(
                actor_id=actor.actor_id,
                actor_name=actor.actor_name,
                actor_role=actor.actor_role,
                requested_at=now,
                expires_at=now + self.request_ttl,
                sample=sample.model_dump(mode="json"),
                verdict=verdict.model_dump(mode="json"),
                attempt_record_id=attempt_record_id,
                reason=reason,
            )
            try:
                self.session.add(approval)
                self.session.commit()
                self.session.refresh(approval)
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.exception(f"Failed to create approval request for {actor.actor_id}")
                raise AuditWriteError("approval request", e) from e

        logger.info(
            f"Approval {approval.id} requested by {actor.actor_id} "
            f"({verdict.distance_meters}m from zone {verdict.nearest_zone_id})"
        )
        return approval

    def find_open_request(self, actor_id: str) -> Optional[LocationApproval]:
        statement = (
            select(LocationApproval)
            .where(LocationApproval.actor_id == actor_id)
            .where(LocationApproval.status == ApprovalStatusEnum.PENDING)
            .order_by(LocationApproval.requested_at.desc())
        )
        now = self.clock()
        for approval in self.session.exec(statement):
            if not self.is_expired(approval, now):
                return approval
        return None

    def get_request(self, request_id: int) -> LocationApproval:
        approval = self.session.get(LocationApproval, request_id)
        if not approval:
            raise ApprovalNotFound(request_id)
        return approval

    def list_pending(self, limit: int = 100) -> list[LocationApproval]:
        """Unexpired pending requests, oldest first."""
        statement = (
            select(LocationApproval)
            .where(LocationApproval.status == ApprovalStatusEnum.PENDING)
            .order_by(LocationApproval.requested_at.asc())
        )
        now = self.clock()
        pending = [a for a in self.session.exec(statement) if not self.is_expired(a, now)]
        return pending[:limit]

    # --- Decisions ---

    def process(
        self,
        request_id: int,
        action: ApprovalAction,
        admin_id: str,
        admin_name: str = "",
        reason: str = "",
    ) -> LocationApproval:
        """
        Approve or deny a pending request exactly once.

        The write is a conditional UPDATE on status = pending, so when two
        admins decide the same request at once only one row update lands and
        the loser gets ApprovalAlreadyProcessed.
        """
        approval = self.get_request(request_id)
        now = self.clock()

        if approval.status != ApprovalStatusEnum.PENDING:
            raise ApprovalAlreadyProcessed(request_id, approval.status.value)
        if self.is_expired(approval, now):
            raise ApprovalAlreadyProcessed(request_id, EffectiveApprovalStatus.EXPIRED.value)

        values = {
            "processed_at": now,
            "processed_by": admin_id,
            "processed_by_name": admin_name,
            "admin_reason": reason,
        }
        if action == ApprovalAction.APPROVE:
            values["status"] = ApprovalStatusEnum.APPROVED
            values["access_expires_at"] = now + self.grant_window
        else:
            values["status"] = ApprovalStatusEnum.DENIED

        statement = (
            update(LocationApproval)
            .where(LocationApproval.id == request_id)
            .where(LocationApproval.status == ApprovalStatusEnum.PENDING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(statement)
            if result.rowcount != 1:
                self.session.rollback()
                self.session.refresh(approval)
                raise ApprovalAlreadyProcessed(request_id, approval.status.value)
            self.session.commit()
            self.session.refresh(approval)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception(f"Failed to record decision on approval {request_id}")
            raise AuditWriteError("approval decision", e) from e

        logger.info(
            f"Approval {request_id} {approval.status.value} by {admin_id}"
            + (f" until {approval.access_expires_at}" if approval.access_expires_at else "")
        )
        self.dispatcher.approval_resolved(approval)
        return approval

    def expire_stale_requests(self) -> int:
        """Mark abandoned pending requests as denied. Returns how many were flipped."""
        now = self.clock()
        statement = (
            update(LocationApproval)
            .where(LocationApproval.status == ApprovalStatusEnum.PENDING)
            .where(LocationApproval.expires_at < now)
            .values(
                status=ApprovalStatusEnum.DENIED,
                processed_at=now,
                processed_by=SYSTEM_ACTOR,
                processed_by_name=SYSTEM_ACTOR,
                admin_reason=EXPIRED_REASON,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(statement)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception("Failed to expire stale approval requests")
            raise AuditWriteError("approval expiry sweep", e) from e

        if result.rowcount:
            logger.info(f"Expired {result.rowcount} stale approval request(s)")
        return result.rowcount

    # --- Queries ---

    def has_valid_approval(self, actor_id: str) -> tuple[bool, Optional[LocationApproval]]:
        """Whether the actor's most recent approval is still inside its access window."""
        statement = (
            select(LocationApproval)
            .where(LocationApproval.actor_id == actor_id)
            .where(LocationApproval.status == ApprovalStatusEnum.APPROVED)
            .order_by(LocationApproval.processed_at.desc())
        )
        latest = self.session.exec(statement).first()
        if not latest or latest.access_expires_at is None:
            return False, None

        if self.clock() <= ensure_utc(latest.access_expires_at):
            return True, latest
        return False, None

    def is_expired(self, approval: LocationApproval, now: Optional[datetime] = None) -> bool:
        now = now or self.clock()
        if approval.status == ApprovalStatusEnum.PENDING:
            return now > ensure_utc(approval.expires_at)
        if approval.status == ApprovalStatusEnum.APPROVED and approval.access_expires_at:
            return now > ensure_utc(approval.access_expires_at)
        return False

    def effective_status(self, approval: LocationApproval) -> EffectiveApprovalStatus:
        if self.is_expired(approval):
            return EffectiveApprovalStatus.EXPIRED
        return EffectiveApprovalStatus(approval.status.value)
