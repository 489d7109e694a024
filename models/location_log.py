from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import field_serializer
from sqlalchemy import JSON, Column
from sqlmodel import Field, Index, SQLModel

from utils.datetime_helpers import format_utc_datetime


class AttemptStatusEnum(str, Enum):
    APPROVED = "approved"
    DENIED = "denied"


# Append-only audit row for one access check ("locationLogs")
class LocationLog(SQLModel, table=True):
    __tablename__ = "location_logs"

    __table_args__ = (
        # Stats window scans
        Index("ix_location_logs_captured_at", "captured_at"),
        # Per-actor history
        Index("ix_location_logs_actor_id_captured_at", "actor_id", "captured_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    actor_id: str
    actor_name: str = ""
    actor_role: str = ""

    # Sample
    latitude: float
    longitude: float
    accuracy_meters: float
    sampled_at: datetime
    speed: Optional[float] = None
    heading: Optional[float] = None

    # Verdict
    is_valid: bool
    distance_meters: int
    nearest_zone_id: Optional[int] = None
    nearest_zone_name: Optional[str] = None
    allowed_radius: int
    is_accurate: bool
    considered_zone_count: int
    zone_distances: Optional[list] = Field(default=None, sa_column=Column(JSON))

    device_info: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: AttemptStatusEnum
    requires_admin_approval: bool = False

    @field_serializer("captured_at", "sampled_at")
    def serialize_timestamps(self, dt: datetime) -> str:
        result = format_utc_datetime(dt)
        return result if result is not None else dt.isoformat()

