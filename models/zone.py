from sqlmodel import SQLModel, Field
from typing import Optional

# Defines the Structure of a Factory Zone an Operator Must Be Inside to Use the System

# Factory Location w/ Circular Geofence
class Zone(SQLModel, table=True):
    __tablename__ = "location_zones"

    id: Optional[int] = Field(default=None, primary_key=True, description="Zone identifier, assigned as max existing id + 1")
    name: str = Field(..., description="Human-friendly zone name")
    address: Optional[str] = Field(default=None, description="Street address of the site")
    latitude: float = Field(..., description="Latitude of zone center")
    longitude: float = Field(..., description="Longitude of zone center")
    radius_meters: float = Field(..., description="Allowed access radius in meters")
    active: bool = Field(default=True, index=True)
