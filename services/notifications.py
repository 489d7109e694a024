"""Hand-off points to the notification system. Delivery itself happens elsewhere."""
import logging
from datetime import datetime, timezone
from typing import Protocol

from models.admin_alert import AdminAlert
from models.location_approval import LocationApproval

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    """Interface for whoever fans alerts and approval results out to people."""

    def alert_created(self, alert: AdminAlert) -> None:
        ...

    def approval_resolved(self, approval: LocationApproval) -> None:
        ...


class LoggingNotificationDispatcher:
    """Dispatcher that only writes to the log. Used when Firestore is not configured."""

    def alert_created(self, alert: AdminAlert) -> None:
        logger.info(f"[notify] alert {alert.id} ({alert.severity.value}): {alert.title}")

    def approval_resolved(self, approval: LocationApproval) -> None:
        logger.info(
            f"[notify] approval {approval.id} for {approval.actor_id} resolved as {approval.status.value}"
        )


class FirestoreNotificationDispatcher:
    """Queues notification documents in Firestore for the push/notification workers."""

    def __init__(self, firestore_client, collection: str = "notifications"):
        self.db = firestore_client
        self.collection = collection

    def alert_created(self, alert: AdminAlert) -> None:
        self._queue({
            "kind": "location_alert",
            "audience": "admins",
            "alertId": alert.id,
            "actorId": alert.actor_id,
            "title": alert.title,
            "message": alert.message,
            "severity": alert.severity.value,
        })

    def approval_resolved(self, approval: LocationApproval) -> None:
        self._queue({
            "kind": "location_approval_resolved",
            "audience": approval.actor_id,
            "approvalId": approval.id,
            "status": approval.status.value,
            "accessExpiresAt": approval.access_expires_at,
            "adminReason": approval.admin_reason,
        })

    def _queue(self, payload: dict) -> None:
        payload["createdAt"] = datetime.now(timezone.utc)
        payload["delivered"] = False
        # Notification failures are logged, never propagated into the access decision
        try:
            self.db.collection(self.collection).add(payload)
        except Exception as e:
            logger.error(f"Failed to queue {payload['kind']} notification: {e}")
