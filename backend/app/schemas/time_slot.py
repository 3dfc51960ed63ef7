from pydantic import BaseModel, Field, model_validator

from app.schemas.common import Identifier, TimeValue, parse_time_to_minutes


class TimeSlotPayload(BaseModel):
    id: Identifier = Field(min_length=1, max_length=36)
    start_time: TimeValue
    end_time: TimeValue
    label: str | None = Field(default=None, max_length=50)

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def validate_order(self) -> "TimeSlotPayload":
        if parse_time_to_minutes(self.end_time) <= parse_time_to_minutes(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self

    @property
    def start_minutes(self) -> int:
        return parse_time_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return parse_time_to_minutes(self.end_time)
