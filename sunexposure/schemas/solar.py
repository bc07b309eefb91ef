"""
Pydantic schemas for Solar API endpoints.
"""
from datetime import date, datetime

from pydantic import BaseModel, Field


class SolarPositionResponse(BaseModel):
    """Sun position for one place and UTC instant."""

    azimuth: float = Field(..., description="Compass bearing of the sun in degrees, 0 = north, clockwise")
    elevation: float = Field(..., description="Refraction-corrected elevation above the horizon in degrees")
    declination: float = Field(..., description="Solar declination in degrees")
    hour_angle: float = Field(..., description="Hour angle in degrees, 0 at solar noon")
    earth_distance_au: float = Field(..., description="Earth-sun distance in astronomical units")
    timestamp: datetime = Field(..., description="UTC instant of the calculation")
    local_time: datetime = Field(..., description="Same instant in the configured local timezone")
    latitude: float
    longitude: float


class SunTimesResponse(BaseModel):
    """Sunrise, sunset and solar noon for one date and place."""

    date: date
    latitude: float
    longitude: float
    sunrise_utc: datetime
    sunset_utc: datetime
    sunrise_local: datetime
    sunset_local: datetime
    solar_noon_utc: datetime
    solar_noon_local: datetime
    max_elevation: float = Field(..., description="Elevation at solar noon in degrees")
    day_length_hours: float = Field(..., description="Sunset minus sunrise in hours")
