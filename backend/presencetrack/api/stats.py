"""
Dashboard API routes (admin only).

Aggregates are computed over attendance records by ``services.stats``;
"today" is the organization's local date.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from presencetrack.core.middleware import require_role
from presencetrack.db.models import User
from presencetrack.db.session import get_db
from presencetrack.periods import local_today
from presencetrack.schemas.stats import (
    DashboardStats,
    MonthlyOverview,
    TodaySummary,
    WeeklySummary,
)
from presencetrack.services import stats as stats_service

router = APIRouter()


@router.get(
    "/stats",
    response_model=DashboardStats,
    summary="Headcount plus today's and this month's status counts",
)
async def get_stats(
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> DashboardStats:
    return await stats_service.dashboard_stats(db, local_today())


@router.get(
    "/today",
    response_model=TodaySummary,
    summary="Today's status counts and latest check-ins",
)
async def get_today(
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> TodaySummary:
    return await stats_service.today_summary(db, local_today())


@router.get(
    "/weekly",
    response_model=WeeklySummary,
    summary="Per-day status counts for the current week (Monday to Sunday)",
)
async def get_weekly(
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> WeeklySummary:
    return await stats_service.weekly_summary(db, local_today())


@router.get(
    "/monthly",
    response_model=MonthlyOverview,
    summary="Month status counts, top performers and per-department totals",
)
async def get_monthly(
    year: int | None = Query(default=None, ge=2000, le=2100),
    month: int | None = Query(default=None, ge=1, le=12),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> MonthlyOverview:
    today = local_today()
    return await stats_service.monthly_overview(db, year or today.year, month or today.month)
