from datetime import date, datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

AttendanceStatus = Literal[
    "present", "absent", "late", "half-day", "on-leave", "pending-absence"
]


class LocationPayload(BaseModel):
    latitude: float | None = None
    longitude: float | None = None
    address: str = ""


class CheckRequest(BaseModel):
    location: LocationPayload | None = None
    notes: str | None = Field(default=None, max_length=500)


class AbsenceRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=500)


class AttendanceUpdate(BaseModel):
    check_in: datetime | None = None
    check_out: datetime | None = None
    status: AttendanceStatus | None = None
    notes: str | None = Field(default=None, max_length=500)


class AttendanceResponse(BaseModel):
    id: int
    employee_id: UUID
    work_date: date
    check_in: datetime | None
    check_out: datetime | None
    status: str
    work_hours: float
    overtime_hours: float
    notes: str
    check_in_location: dict | None
    check_out_location: dict | None

    model_config = {"from_attributes": True}


class MonthlySummary(BaseModel):
    total_days: int
    recorded_days: int
    present: int = 0
    absent: int = 0
    late: int = 0
    half_day: int = 0
    on_leave: int = 0
    total_work_hours: float = 0.0
    total_overtime_hours: float = 0.0
    average_work_hours: float = 0.0


class MonthlyReportResponse(BaseModel):
    summary: MonthlySummary
    records: list[AttendanceResponse]
