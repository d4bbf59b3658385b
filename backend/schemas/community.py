from pydantic import BaseModel, Field
from typing import Optional
from pydantic import ConfigDict


class CommunityCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None


class CommunityOut(BaseModel):
    id: int
    name: str
    description: Optional[str]
    admin_id: int

    model_config = ConfigDict(from_attributes=True)
