from pydantic import BaseModel, Field
from pydantic import ConfigDict


class AppConfigOut(BaseModel):
    poll_interval: int

    model_config = ConfigDict(from_attributes=True)


class AppConfigUpdate(BaseModel):
    poll_interval: int = Field(ge=1, le=3600)
