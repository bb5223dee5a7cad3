from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class PresenceDay(BaseModel):
    """One table row of the presence sheet.

    Rows past the end of the month are ``blank``: every text is empty and the
    other fields keep their defaults.
    """

    day_number: int
    blank: bool = False
    is_weekend: bool = False
    is_absent: bool = False
    planned_shift: str | None = None
    shift_index: int | None = None
    real_time_range: str | None = None
    date_label: str = ""
    task_text: str = ""
    time_text: str = ""


class PresenceSheetResponse(BaseModel):
    id: int
    employee_id: UUID
    employee_code: str | None = None
    employee_name: str | None = None
    department: str | None = None
    year: int
    month: int
    file_name: str
    file_path: str
    generated_by: UUID | None
    generated_by_name: str | None = None
    generated_at: datetime
    size: int


class GenerateAllRequest(BaseModel):
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)
    department: str | None = None


class GenerationFailure(BaseModel):
    employee_code: str
    name: str
    message: str


class GenerateAllResult(BaseModel):
    year: int
    month: int
    department: str | None
    total_employees: int
    generated: int
    failed: int
    errors: list[GenerationFailure]
