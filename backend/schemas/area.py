from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from pydantic import ConfigDict


class AreaOfInterestIn(BaseModel):
    """Either `polygon_area` (WKT) or `latitude` + `longitude` + `radius_in_meters`."""

    polygon_area: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_in_meters: Optional[float] = None


class AreaOfInterestOut(BaseModel):
    id: int
    polygon_area: str
    latitude: Optional[float]
    longitude: Optional[float]
    radius_in_meters: Optional[float]
    user_id: Optional[int]
    community_id: Optional[int]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)
