from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel


class StatusCounts(BaseModel):
    total: int = 0
    present: int = 0
    absent: int = 0
    late: int = 0
    half_day: int = 0
    on_leave: int = 0
    pending: int = 0


class EmployeeCounts(BaseModel):
    total: int
    active: int
    inactive: int


class TodayOverview(StatusCounts):
    scheduled_shifts: int = 0
    checked_in: int = 0
    not_checked_in: int = 0


class DashboardStats(BaseModel):
    date: date
    employees: EmployeeCounts
    today: TodayOverview
    monthly: StatusCounts


class RecentCheckIn(BaseModel):
    employee_code: str
    full_name: str
    department: str
    status: str
    check_in: datetime | None
    check_out: datetime | None


class TodaySummary(BaseModel):
    date: date
    stats: StatusCounts
    recent_check_ins: list[RecentCheckIn]


class DayStatusCounts(StatusCounts):
    date: date
    day: str


class WeeklySummary(BaseModel):
    start: date
    end: date
    days: list[DayStatusCounts]


class TopPerformer(BaseModel):
    employee_id: UUID
    employee_code: str
    full_name: str
    department: str
    present_days: int
    total_hours: float


class DepartmentStats(BaseModel):
    department: str
    total: int
    present: int
    late: int


class MonthlyOverview(BaseModel):
    month: str
    stats: StatusCounts
    top_performers: list[TopPerformer]
    departments: list[DepartmentStats]
