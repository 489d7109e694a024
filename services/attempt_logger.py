import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from core.exceptions import AuditWriteError
from models.location import Actor, LocationSample, Verdict
from models.location_log import AttemptStatusEnum, LocationLog
from utils.datetime_helpers import utc_now

logger = logging.getLogger(__name__)


class AttemptLogger:
    """Append-only audit log of access checks."""

    def __init__(self, session: Session, clock: Callable[[], datetime] = utc_now):
        self.session = session
        self.clock = clock

    def record(
        self,
        actor: Actor,
        sample: LocationSample,
        verdict: Verdict,
        device_info: Optional[dict] = None,
    ) -> LocationLog:
        # Status is fixed at write time; a later approval never rewrites it
        log = LocationLog(
            actor_id=actor.actor_id,
            actor_name=actor.actor_name,
            actor_role=actor.actor_role,
            latitude=sample.latitude,
            longitude=sample.longitude,
            accuracy_meters=sample.accuracy_meters,
            sampled_at=sample.captured_at,
            speed=sample.speed,
            heading=sample.heading,
            is_valid=verdict.is_valid,
            distance_meters=verdict.distance_meters,
            nearest_zone_id=verdict.nearest_zone_id,
            nearest_zone_name=verdict.nearest_zone_name,
            allowed_radius=verdict.allowed_radius,
            is_accurate=verdict.is_accurate,
            considered_zone_count=verdict.considered_zone_count,
            zone_distances=[d.model_dump() for d in verdict.zone_distances],
            device_info=device_info,
            captured_at=self.clock(),
            status=AttemptStatusEnum.APPROVED if verdict.is_valid else AttemptStatusEnum.DENIED,
            requires_admin_approval=not verdict.is_valid,
        )

        try:
            self.session.add(log)
            self.session.commit()
            self.session.refresh(log)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception(f"Failed to log location attempt for {actor.actor_id}")
            raise AuditWriteError("location attempt", e) from e

        logger.info(
            f"Location attempt {log.id} by {actor.actor_id}: "
            f"{log.status.value} ({verdict.distance_meters}m, zone {verdict.nearest_zone_id})"
        )
        return log
