import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from core.exceptions import AlertNotFound, AuditWriteError
from models.admin_alert import AdminAlert, AlertSeverityEnum, AlertStatusEnum, AlertTypeEnum
from models.location import Actor
from models.location_log import LocationLog
from models.security_event import SecurityEvent
from services.notifications import LoggingNotificationDispatcher, NotificationDispatcher
from utils.datetime_helpers import utc_now

logger = logging.getLogger(__name__)


class ViolationAlerter:
    """Raises admin alerts for out-of-zone attempts. Delivery is left to the dispatcher."""

    def __init__(
        self,
        session: Session,
        dispatcher: Optional[NotificationDispatcher] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session = session
        self.dispatcher = dispatcher or LoggingNotificationDispatcher()
        self.clock = clock

    def raise_alert(self, actor: Actor, attempt: LocationLog) -> AdminAlert:
        # Every invalid attempt is alerted on its own; no de-duplication per actor
        name = actor.actor_name or actor.actor_id
        now = self.clock()
        alert = AdminAlert(
            type=AlertTypeEnum.LOCATION_VIOLATION,
            severity=AlertSeverityEnum.HIGH,
            actor_id=actor.actor_id,
            actor_name=actor.actor_name,
            actor_role=actor.actor_role,
            title=f"Unauthorized Location Access - {name}",
            message=f"{name} attempted to access system from {attempt.distance_meters}m away from factory",
            distance_meters=attempt.distance_meters,
            attempt_record_id=attempt.id,
            created_at=now,
        )

        try:
            self.session.add(alert)
            self.session.flush()
            self.session.add(SecurityEvent(
                event_type=AlertTypeEnum.LOCATION_VIOLATION.value,
                risk_level=AlertSeverityEnum.HIGH.value,
                actor_id=actor.actor_id,
                actor_name=actor.actor_name,
                message=alert.message,
                alert_id=alert.id,
                attempt_record_id=attempt.id,
                created_at=now,
            ))
            self.session.commit()
            self.session.refresh(alert)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception(f"Failed to raise location alert for attempt {attempt.id}")
            raise AuditWriteError("location alert", e) from e

        logger.warning(f"Location violation alert {alert.id}: {alert.message}")
        self.dispatcher.alert_created(alert)
        return alert

    def mark_read(self, alert_id: int) -> AdminAlert:
        alert = self.session.get(AdminAlert, alert_id)
        if not alert:
            raise AlertNotFound(alert_id)
        if alert.status != AlertStatusEnum.READ:
            alert.status = AlertStatusEnum.READ
            self.session.add(alert)
            self.session.commit()
            self.session.refresh(alert)
        return alert

    def list_alerts(self, status: Optional[AlertStatusEnum] = None, limit: int = 100) -> list[AdminAlert]:
        statement = (
            select(AdminAlert)
            .where(AdminAlert.type == AlertTypeEnum.LOCATION_VIOLATION)
            .order_by(AdminAlert.created_at.desc(), AdminAlert.id.desc())
        )
        if status:
            statement = statement.where(AdminAlert.status == status)
        return list(self.session.exec(statement.limit(limit)).all())
