from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from pydantic import ConfigDict

from models.event import EVENT_TYPES, EVENT_STATUSES


def _check_choice(value, choices, name):
    if value is not None and value not in choices:
        raise ValueError(f"invalid event {name}: must be one of {', '.join(choices)}")
    return value


class EventCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    type: str = "other"
    is_public: bool = True
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    device_id: Optional[int] = None

    @field_validator("type")
    @classmethod
    def check_type(cls, v):
        return _check_choice(v, EVENT_TYPES, "type")


class EventUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    is_public: Optional[bool] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    @field_validator("type")
    @classmethod
    def check_type(cls, v):
        return _check_choice(v, EVENT_TYPES, "type")

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        return _check_choice(v, EVENT_STATUSES, "status")


class EventOut(BaseModel):
    id: int
    title: str
    description: Optional[str]
    type: str
    status: str
    is_public: bool
    latitude: float
    longitude: float
    device_id: Optional[int]
    created_by_id: int
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)
