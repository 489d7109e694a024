from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import field_serializer
from sqlalchemy import JSON, Column
from sqlmodel import Field, Index, SQLModel

from utils.datetime_helpers import format_utc_datetime


class ApprovalStatusEnum(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


# Status as seen by a poller; EXPIRED is derived, never stored
class EffectiveApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"


class ApprovalAction(str, Enum):
    APPROVE = "approve"
    DENY = "deny"


# Remote access request raised by an out-of-zone attempt ("locationApprovals")
class LocationApproval(SQLModel, table=True):
    __tablename__ = "location_approvals"

    __table_args__ = (
        Index("ix_location_approvals_actor_id_status", "actor_id", "status"),
        Index("ix_location_approvals_status_requested_at", "status", "requested_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    actor_id: str
    actor_name: str = ""
    actor_role: str = ""
    requested_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    # requested_at + request TTL; unprocessed requests past this count as denied
    expires_at: datetime

    sample: dict = Field(sa_column=Column(JSON, nullable=False))
    verdict: dict = Field(sa_column=Column(JSON, nullable=False))
    attempt_record_id: Optional[int] = Field(default=None, foreign_key="location_logs.id")
    reason: str = "Remote location access request"

    status: ApprovalStatusEnum = Field(default=ApprovalStatusEnum.PENDING)
    processed_at: Optional[datetime] = Field(default=None)
    processed_by: Optional[str] = Field(default=None, index=True)
    processed_by_name: Optional[str] = Field(default=None)
    admin_reason: Optional[str] = Field(default=None)
    access_expires_at: Optional[datetime] = Field(default=None)

    @field_serializer("requested_at", "expires_at", "processed_at", "access_expires_at")
    def serialize_timestamps(self, dt: Optional[datetime]) -> Optional[str]:
        return format_utc_datetime(dt)
