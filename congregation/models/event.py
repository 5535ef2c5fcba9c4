"""Event models"""

from datetime import datetime
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator


class Location(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    coordinates: Tuple[float, float]  # (latitude, longitude)

    @field_validator("coordinates")
    @classmethod
    def validate_coordinates(cls, v: Tuple[float, float]) -> Tuple[float, float]:
        lat, lng = v
        if not -90 <= lat <= 90:
            raise ValueError("Latitude must be between -90 and 90")
        if not -180 <= lng <= 180:
            raise ValueError("Longitude must be between -180 and 180")
        return v


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    date: datetime
    description: str = ""
    expiry_date: Optional[datetime] = None
    locations: List[Location] = []


class RsvpRequest(BaseModel):
    response: Literal["yes", "no"] = "yes"


class Event(BaseModel):
    id: str
    title: str
    date: str
    description: str = ""
    expiry_date: str
    locations: List[Location] = []
    attendees: List[str] = []
    declined: List[str] = []
    created_by: Optional[str] = None
    created_at: Optional[str] = None
