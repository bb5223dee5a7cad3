from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class UserCreate(BaseModel):
    username: str
    password: str = Field(..., min_length=6)
    role: Literal["admin", "employee"] = "employee"
    employee_code: str
    full_name: str = Field(..., min_length=2, max_length=100)
    email: str | None = None
    department: str = ""

    @field_validator("employee_code")
    @classmethod
    def upper_code(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Employee code must not be empty")
        return v.strip().upper()


class UserUpdate(BaseModel):
    role: Literal["admin", "employee"] | None = None
    is_active: bool | None = None
    full_name: str | None = None
    email: str | None = None
    department: str | None = None
    employee_code: str | None = None

    @field_validator("employee_code")
    @classmethod
    def upper_code(cls, v: str | None) -> str | None:
        return v.strip().upper() if v else v


class UserResponse(BaseModel):
    id: UUID
    username: str
    role: str
    employee_code: str
    full_name: str
    department: str
    is_active: bool
    email: str | None

    model_config = {"from_attributes": True}
