from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import field_serializer
from sqlmodel import Field, Index, SQLModel

from utils.datetime_helpers import format_utc_datetime


class AlertTypeEnum(str, Enum):
    LOCATION_VIOLATION = "LOCATION_VIOLATION"


class AlertSeverityEnum(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class AlertStatusEnum(str, Enum):
    UNREAD = "unread"
    READ = "read"


# Admin dashboard alert ("adminAlerts"); read/unread is the only mutation
class AdminAlert(SQLModel, table=True):
    __tablename__ = "admin_alerts"

    __table_args__ = (
        Index("ix_admin_alerts_type_status", "type", "status"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    type: AlertTypeEnum = Field(default=AlertTypeEnum.LOCATION_VIOLATION)
    severity: AlertSeverityEnum = Field(default=AlertSeverityEnum.HIGH)
    actor_id: str
    actor_name: str = ""
    actor_role: str = ""
    title: str
    message: str
    distance_meters: int
    attempt_record_id: int = Field(foreign_key="location_logs.id", unique=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: AlertStatusEnum = Field(default=AlertStatusEnum.UNREAD)
    requires_action: bool = True

    @field_serializer("created_at")
    def serialize_created_at(self, dt: datetime) -> str:
        result = format_utc_datetime(dt)
        return result if result is not None else dt.isoformat()
