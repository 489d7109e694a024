from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_serializer

from utils.datetime_helpers import format_utc_datetime

# Sentinel distance used when there is no zone to measure against
MAX_DISTANCE = 2**31 - 1


# Identity of whoever is asking for access (supplied by the identity provider)
class Actor(BaseModel):
    actor_id: str
    actor_name: str = ""
    actor_role: str = ""


# One reading from the device positioning API; never persisted on its own
class LocationSample(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy_meters: float = Field(ge=0)
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    speed: Optional[float] = None
    heading: Optional[float] = None

    @field_serializer("captured_at")
    def serialize_captured_at(self, dt: datetime) -> str:
        result = format_utc_datetime(dt)
        return result if result is not None else dt.isoformat()


class ZoneDistance(BaseModel):
    zone_id: int
    name: Optional[str] = None
    distance_meters: int


# Outcome of evaluating a sample against the active zones
class Verdict(BaseModel):
    is_valid: bool
    distance_meters: int
    nearest_zone_id: Optional[int] = None
    nearest_zone_name: Optional[str] = None
    allowed_radius: int
    is_accurate: bool
    considered_zone_count: int
    zone_distances: list[ZoneDistance] = Field(default_factory=list)
