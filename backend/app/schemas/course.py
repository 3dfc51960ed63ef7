from pydantic import BaseModel, Field

from app.schemas.common import Identifier


class CourseSectionPayload(BaseModel):
    id: Identifier = Field(min_length=1, max_length=36)
    code: str | None = Field(default=None, max_length=50)
    name: str | None = Field(default=None, max_length=200)
    expected_enrollment: int = Field(default=0, ge=0, le=100_000)
    contact_hours: int = Field(default=3, ge=0, le=40)
    lecturer_id: Identifier = Field(min_length=1, max_length=36)
    department_id: Identifier | None = Field(default=None, max_length=36)

    model_config = {"from_attributes": True}
