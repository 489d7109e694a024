from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime, timezone

# Security audit trail; every location violation alert is mirrored here
class SecurityEvent(SQLModel, table=True):
    __tablename__ = "security_events"

    id: Optional[int] = Field(default=None, primary_key=True)
    event_type: str = Field(index=True)
    risk_level: str
    actor_id: str = Field(index=True)
    actor_name: str = ""
    message: str
    alert_id: Optional[int] = Field(default=None, foreign_key="admin_alerts.id")
    attempt_record_id: Optional[int] = Field(default=None, foreign_key="location_logs.id")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
