from datetime import datetime, timedelta
from typing import Callable

from pydantic import BaseModel, Field
from sqlmodel import Session, select

from models.location_log import LocationLog
from utils.datetime_helpers import utc_now


class LocationStats(BaseModel):
    window_days: int
    total_attempts: int = 0
    valid_attempts: int = 0
    invalid_attempts: int = 0
    unique_actors: int = 0
    average_distance_meters: int = 0
    recent_violations: list[LocationLog] = Field(default_factory=list)
    latest_logs: list[LocationLog] = Field(default_factory=list)


def compute_stats(
    session: Session,
    window_days: int = 30,
    recent_violations_limit: int = 10,
    log_limit: int = 100,
    clock: Callable[[], datetime] = utc_now,
) -> LocationStats:
    """Read-only summary of the attempt log over the trailing window."""
    since = clock() - timedelta(days=window_days)
    logs = session.exec(
        select(LocationLog)
        .where(LocationLog.captured_at >= since)
        .order_by(LocationLog.captured_at.desc(), LocationLog.id.desc())
    ).all()

    if not logs:
        return LocationStats(window_days=window_days)

    violations = [log for log in logs if not log.is_valid]
    total_distance = sum(log.distance_meters for log in logs)

    return LocationStats(
        window_days=window_days,
        total_attempts=len(logs),
        valid_attempts=len(logs) - len(violations),
        invalid_attempts=len(violations),
        unique_actors=len({log.actor_id for log in logs}),
        average_distance_meters=round(total_distance / len(logs)),
        recent_violations=violations[:recent_violations_limit],
        latest_logs=list(logs[:log_limit]),
    )
