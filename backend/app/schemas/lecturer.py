from pydantic import BaseModel, Field, model_validator

from app.schemas.common import DayValue, Identifier, TimeValue, parse_time_to_minutes


class AvailabilityWindow(BaseModel):
    day: DayValue
    start_time: TimeValue
    end_time: TimeValue

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def validate_order(self) -> "AvailabilityWindow":
        if parse_time_to_minutes(self.end_time) <= parse_time_to_minutes(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self


class LecturerPayload(BaseModel):
    id: Identifier = Field(min_length=1, max_length=36)
    name: str | None = Field(default=None, max_length=200)
    department_id: Identifier | None = Field(default=None, max_length=36)
    availability: list[AvailabilityWindow] = Field(default_factory=list, max_length=200)

    model_config = {"from_attributes": True}
