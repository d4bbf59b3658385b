from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from pydantic import ConfigDict


class DeviceCreate(BaseModel):
    number: Optional[str] = None
    imei: Optional[str] = None
    password: Optional[str] = None
    tracking: bool = False


class DeviceUpdate(BaseModel):
    number: Optional[str] = None
    imei: Optional[str] = None
    password: Optional[str] = None
    tracking: Optional[bool] = None


class DeviceOut(BaseModel):
    # credentials and the portal session never leave the server
    id: int
    number: Optional[str]
    imei: Optional[str]
    tracking: bool
    has_credentials: bool
    owner_id: Optional[int]
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class LocationFixOut(BaseModel):
    id: int
    device_id: int
    latitude: float
    longitude: float
    captured_at: datetime

    model_config = ConfigDict(from_attributes=True)
