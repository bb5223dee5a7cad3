"""
Attendance state machine tests.

Tests:
  - check-in sets present/late around the 09:15 cutoff
  - a second check-in the same day fails "Already checked in today"
  - check-out guards and hour computation (2 decimals, overtime over 8h)
  - absence declaration, approval and rejection
  - geofence enforcement
  - monthly summary ignores pending absences
"""

from __future__ import annotations

from datetime import date

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import IntegrityError

from presencetrack.core.config import settings
from presencetrack.core.errors import BadRequestError, ForbiddenError, NotFoundError
from presencetrack.db.models import AttendanceRecord
from presencetrack.schemas.attendance import AttendanceUpdate, LocationPayload
from presencetrack.services import attendance as attendance_service
from presencetrack.services.attendance import (
    apply_check_in,
    apply_check_out,
    compute_hours,
    ensure_within_geofence,
    is_late,
    summarize_month,
)
from presencetrack.services.geo import distance_m

DAY = date(2026, 2, 10)


@pytest.fixture
def day_store(monkeypatch: pytest.MonkeyPatch) -> dict:
    """Replace the per-day lookup with a dict keyed by (employee_id, work_date)."""
    store: dict = {}

    async def _get_day_record(db, employee_id, work_date):
        return store.get((employee_id, work_date))

    monkeypatch.setattr(attendance_service, "get_day_record", _get_day_record)
    return store


class TestHours:
    def test_hours_rounded_with_overtime(self, at_local) -> None:
        worked, overtime = compute_hours(at_local(2026, 2, 10, 6, 5), at_local(2026, 2, 10, 14, 10))
        assert worked == 8.08
        assert overtime == 0.08

    def test_short_day_has_no_overtime(self, at_local) -> None:
        worked, overtime = compute_hours(at_local(2026, 2, 10, 9, 0), at_local(2026, 2, 10, 13, 20))
        assert worked == 4.33
        assert overtime == 0.0

    def test_negative_span_clamped(self, at_local) -> None:
        worked, overtime = compute_hours(at_local(2026, 2, 10, 14, 0), at_local(2026, 2, 10, 9, 0))
        assert (worked, overtime) == (0.0, 0.0)


class TestCheckInRules:
    def test_on_time_until_grace_end(self, at_local) -> None:
        assert not is_late(at_local(2026, 2, 10, 9, 15))
        assert is_late(at_local(2026, 2, 10, 9, 16))

    def test_check_in_sets_status_and_location(
        self, employee_user, make_attendance, at_local
    ) -> None:
        record = make_attendance(employee_user, DAY, status="present")
        location = LocationPayload(latitude=36.8, longitude=10.18, address="Tunis")
        apply_check_in(record, at_local(2026, 2, 10, 9, 30), location, "train delayed")
        assert record.status == "late"
        assert record.notes == "train delayed"
        assert record.check_in_location == {
            "latitude": 36.8,
            "longitude": 10.18,
            "address": "Tunis",
        }

    def test_second_check_in_rejected(self, employee_user, make_attendance, at_local) -> None:
        record = make_attendance(employee_user, DAY, check_in=at_local(2026, 2, 10, 8, 0))
        with pytest.raises(BadRequestError, match="Already checked in today"):
            apply_check_in(record, at_local(2026, 2, 10, 8, 30))

    def test_check_in_refused_on_declared_absence(
        self, employee_user, make_attendance, at_local
    ) -> None:
        record = make_attendance(employee_user, DAY, status="pending-absence")
        with pytest.raises(BadRequestError, match="marked absence"):
            apply_check_in(record, at_local(2026, 2, 10, 8, 0))


class TestCheckOutRules:
    def test_check_out_computes_hours_and_appends_notes(
        self, employee_user, make_attendance, at_local
    ) -> None:
        record = make_attendance(
            employee_user, DAY, check_in=at_local(2026, 2, 10, 8, 0), notes="early"
        )
        apply_check_out(record, at_local(2026, 2, 10, 18, 30), notes="stayed for backup")
        assert record.work_hours == 10.5
        assert record.overtime_hours == 2.5
        assert record.notes == "early; stayed for backup"

    def test_check_out_without_check_in(self, employee_user, make_attendance, at_local) -> None:
        record = make_attendance(employee_user, DAY)
        with pytest.raises(BadRequestError, match="Must check in before checking out"):
            apply_check_out(record, at_local(2026, 2, 10, 17, 0))

    def test_check_out_twice(self, employee_user, make_attendance, at_local) -> None:
        record = make_attendance(
            employee_user,
            DAY,
            check_in=at_local(2026, 2, 10, 8, 0),
            check_out=at_local(2026, 2, 10, 16, 0),
        )
        with pytest.raises(BadRequestError, match="Already checked out today"):
            apply_check_out(record, at_local(2026, 2, 10, 17, 0))

    def test_check_out_on_absent_day(self, employee_user, make_attendance, at_local) -> None:
        record = make_attendance(employee_user, DAY, status="absent")
        with pytest.raises(BadRequestError, match="Marked as absent"):
            apply_check_out(record, at_local(2026, 2, 10, 17, 0))


class TestGeofence:
    def test_disabled_by_default(self) -> None:
        assert ensure_within_geofence(None) is None

    def test_location_required(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "REQUIRE_GEOFENCE", True)
        with pytest.raises(BadRequestError, match="Location is required"):
            ensure_within_geofence(LocationPayload())

    def test_outside_radius_forbidden(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "REQUIRE_GEOFENCE", True)
        monkeypatch.setattr(settings, "COMPANY_LAT", 36.8065)
        monkeypatch.setattr(settings, "COMPANY_LNG", 10.1815)
        monkeypatch.setattr(settings, "CHECKIN_RADIUS_METERS", 100.0)

        with pytest.raises(ForbiddenError, match="within 100m"):
            ensure_within_geofence(LocationPayload(latitude=36.8165, longitude=10.1815))

        inside = ensure_within_geofence(LocationPayload(latitude=36.8068, longitude=10.1815))
        assert inside is not None and inside < 100

    def test_distance_one_degree_latitude(self) -> None:
        assert distance_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(111_195, rel=1e-3)


class TestCheckInFlow:
    async def test_first_check_in_creates_record(
        self, fake_db, day_store, employee_user, at_local
    ) -> None:
        record = await attendance_service.check_in(
            fake_db, employee_user, now=at_local(2026, 2, 10, 8, 55)
        )
        assert record in fake_db.added
        assert record.work_date == DAY
        assert record.status == "present"
        assert fake_db.commits == 1

    async def test_second_check_in_same_day_fails(
        self, fake_db, day_store, employee_user, make_attendance, at_local
    ) -> None:
        day_store[(employee_user.id, DAY)] = make_attendance(
            employee_user, DAY, check_in=at_local(2026, 2, 10, 8, 55)
        )
        with pytest.raises(BadRequestError, match="Already checked in today"):
            await attendance_service.check_in(
                fake_db, employee_user, now=at_local(2026, 2, 10, 9, 5)
            )
        assert fake_db.commits == 0

    async def test_concurrent_insert_reported_as_duplicate(
        self, fake_db, day_store, employee_user, at_local
    ) -> None:
        fake_db.commit_error = IntegrityError("INSERT", {}, Exception("duplicate key"))
        with pytest.raises(BadRequestError, match="Already checked in today"):
            await attendance_service.check_in(
                fake_db, employee_user, now=at_local(2026, 2, 10, 8, 0)
            )
        assert fake_db.rollbacks == 1

    async def test_local_day_used_for_late_night_check_in(
        self, fake_db, day_store, employee_user, at_local
    ) -> None:
        # 00:30 local on the 11th is still the 10th in UTC
        record = await attendance_service.check_in(
            fake_db, employee_user, now=at_local(2026, 2, 11, 0, 30)
        )
        assert record.work_date == date(2026, 2, 11)

    async def test_check_out_without_record(self, fake_db, day_store, employee_user, at_local) -> None:
        with pytest.raises(BadRequestError, match="No check-in found for today"):
            await attendance_service.check_out(
                fake_db, employee_user, now=at_local(2026, 2, 10, 17, 0)
            )


class TestAbsence:
    async def test_mark_absent_creates_pending(
        self, fake_db, day_store, employee_user, at_local
    ) -> None:
        record = await attendance_service.mark_absent(
            fake_db, employee_user, "sick", now=at_local(2026, 2, 10, 7, 0)
        )
        assert record.status == "pending-absence"
        assert record.notes == "sick"
        assert record.work_hours == 0.0

    async def test_mark_absent_after_check_in_refused(
        self, fake_db, day_store, employee_user, make_attendance, at_local
    ) -> None:
        day_store[(employee_user.id, DAY)] = make_attendance(
            employee_user, DAY, check_in=at_local(2026, 2, 10, 8, 0)
        )
        with pytest.raises(BadRequestError, match="Already checked in today"):
            await attendance_service.mark_absent(
                fake_db, employee_user, now=at_local(2026, 2, 10, 10, 0)
            )

    async def test_approve_flips_to_absent(
        self, fake_db, employee_user, make_attendance
    ) -> None:
        fake_db.put(make_attendance(employee_user, DAY, status="pending-absence", record_id=5))
        record = await attendance_service.approve_absence(fake_db, 5)
        assert record.status == "absent"

    async def test_approve_requires_pending(
        self, fake_db, employee_user, make_attendance
    ) -> None:
        fake_db.put(make_attendance(employee_user, DAY, status="present", record_id=6))
        with pytest.raises(BadRequestError, match="not pending approval"):
            await attendance_service.approve_absence(fake_db, 6)

    async def test_approve_missing_record(self, fake_db) -> None:
        with pytest.raises(NotFoundError):
            await attendance_service.approve_absence(fake_db, 404)

    async def test_reject_deletes_record(
        self, fake_db, employee_user, make_attendance
    ) -> None:
        record = fake_db.put(
            make_attendance(employee_user, DAY, status="pending-absence", record_id=7)
        )
        await attendance_service.reject_absence(fake_db, 7)
        assert record in fake_db.deleted


class TestAdminEdit:
    async def test_update_recomputes_hours(
        self, fake_db, employee_user, make_attendance, at_local
    ) -> None:
        fake_db.put(
            make_attendance(
                employee_user, DAY, check_in=at_local(2026, 2, 10, 8, 0), record_id=9
            )
        )
        body = AttendanceUpdate(check_out=at_local(2026, 2, 10, 17, 45))
        record = await attendance_service.update_record(fake_db, 9, body)
        assert record.work_hours == 9.75
        assert record.overtime_hours == 1.75

    async def test_update_rejects_inverted_times(
        self, fake_db, employee_user, make_attendance, at_local
    ) -> None:
        fake_db.put(
            make_attendance(
                employee_user, DAY, check_in=at_local(2026, 2, 10, 8, 0), record_id=10
            )
        )
        body = AttendanceUpdate(check_out=at_local(2026, 2, 10, 7, 0))
        with pytest.raises(BadRequestError):
            await attendance_service.update_record(fake_db, 10, body)


class TestMonthlySummary:
    def test_counts_and_totals(self, employee_user, make_attendance) -> None:
        records: list[AttendanceRecord] = [
            make_attendance(employee_user, date(2026, 2, 2), status="present"),
            make_attendance(employee_user, date(2026, 2, 3), status="late"),
            make_attendance(employee_user, date(2026, 2, 4), status="absent"),
            make_attendance(employee_user, date(2026, 2, 5), status="pending-absence"),
        ]
        records[0].work_hours, records[0].overtime_hours = 9.0, 1.0
        records[1].work_hours = 7.5

        summary = summarize_month(records, 2026, 2)
        assert summary.total_days == 28
        assert (summary.present, summary.late, summary.absent) == (1, 1, 1)
        assert summary.total_work_hours == 16.5
        assert summary.total_overtime_hours == 1.0


class TestAttendanceRoutes:
    async def test_check_in_route(
        self, client: AsyncClient, login_as, employee_user, monkeypatch: pytest.MonkeyPatch,
        make_attendance, at_local,
    ) -> None:
        login_as(employee_user)

        async def _check_in(db, employee, location, notes):
            record = make_attendance(
                employee, DAY, check_in=at_local(2026, 2, 10, 8, 50), record_id=1
            )
            record.notes = notes or ""
            return record

        monkeypatch.setattr(attendance_service, "check_in", _check_in)
        resp = await client.post("/api/attendance/check-in", json={"notes": "hello"})
        assert resp.status_code == 201, resp.text
        assert resp.json()["notes"] == "hello"

    async def test_service_errors_rendered(
        self, client: AsyncClient, login_as, employee_user, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        login_as(employee_user)

        async def _check_in(db, employee, location, notes):
            raise BadRequestError("Already checked in today")

        monkeypatch.setattr(attendance_service, "check_in", _check_in)
        resp = await client.post("/api/attendance/check-in", json={})
        assert resp.status_code == 400
        assert resp.json() == {"detail": "Already checked in today", "code": "bad_request"}

    async def test_notes_length_validated(
        self, client: AsyncClient, login_as, employee_user
    ) -> None:
        login_as(employee_user)
        resp = await client.post("/api/attendance/check-in", json={"notes": "x" * 501})
        assert resp.status_code == 422
