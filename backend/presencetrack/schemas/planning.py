import re
from datetime import date
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

HHMM_RE = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")


def _check_hhmm(value: str) -> str:
    value = value.strip()
    if not HHMM_RE.match(value):
        raise ValueError("Time must be in HH:mm format")
    return value.zfill(5)


class PlanningRow(BaseModel):
    """One validated schedule row, as produced by the planning Excel parser."""

    employee_code: str
    employee_name: str
    work_date: date
    shift: str
    start_time: str
    end_time: str

    @field_validator("employee_code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Employee ID is required")
        return v.strip().upper()

    @field_validator("employee_name", "shift")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Field must not be empty")
        return v.strip()

    @field_validator("start_time", "end_time")
    @classmethod
    def hhmm(cls, v: str) -> str:
        return _check_hhmm(v)


class PlanningUpdate(BaseModel):
    shift: str | None = Field(default=None, min_length=1)
    start_time: str | None = None
    end_time: str | None = None
    break_duration: int | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=500)

    @field_validator("start_time", "end_time")
    @classmethod
    def hhmm(cls, v: str | None) -> str | None:
        return None if v is None else _check_hhmm(v)


class PlanningResponse(BaseModel):
    id: int
    employee_id: UUID | None
    employee_code: str
    employee_name: str
    work_date: date
    shift: str
    start_time: str
    end_time: str
    break_duration: int
    upload_batch: str
    notes: str

    model_config = {"from_attributes": True}


class PlanningImportResult(BaseModel):
    filename: str
    batch_id: str | None
    total: int
    inserted_count: int
    linked_count: int
    error_count: int
    errors: list[str]
    status: Literal["success", "partial", "failed"]
