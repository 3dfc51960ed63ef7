from pydantic import BaseModel, Field

from app.schemas.common import Identifier


class RoomPayload(BaseModel):
    id: Identifier = Field(min_length=1, max_length=36)
    name: str | None = Field(default=None, max_length=100)
    building: str | None = Field(default=None, max_length=200)
    capacity: int = Field(ge=1, le=100_000)

    model_config = {"from_attributes": True}
