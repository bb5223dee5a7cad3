"""
Planning import tests.

Tests:
  - test_parse_valid_rows            : aliases, code upper-casing, H:mm padding
  - test_header_below_title_rows     : header detection + visible row numbers in errors
  - test_bad_rows_do_not_abort       : one bad row reported, others kept
  - test_missing_columns             : single explanatory error, no rows
  - test_upload_*                    : status success / partial / failed, 400, 413
"""

from __future__ import annotations

from datetime import date
from io import BytesIO

import pytest
from httpx import AsyncClient
from openpyxl import Workbook

from presencetrack.core.config import settings
from presencetrack.core.errors import NotFoundError
from presencetrack.db.models import ImportHistory
from presencetrack.schemas.planning import PlanningUpdate
from presencetrack.services import planning as planning_service
from presencetrack.services.planning_parser import (
    build_planning_template,
    parse_date,
    parse_planning_excel,
    parse_time,
)

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
HEADER = ["EmployeeID", "Name", "Date", "Shift", "StartTime", "EndTime"]


# ---------------------------------------------------------------------------
# Helper: build an in-memory workbook
# ---------------------------------------------------------------------------


def _xlsx(*rows: list) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    stream = BytesIO()
    wb.save(stream)
    return stream.getvalue()


# ---------------------------------------------------------------------------
# Cell parsing
# ---------------------------------------------------------------------------


class TestCellParsing:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("9:00", "09:00"),
            ("17:45", "17:45"),
            ("09:30:00", "09:30"),
            ("2:15 PM", "14:15"),
            ("0.375", "09:00"),
            ("1.5", None),
            ("25:00", None),
            ("", None),
            ("noon", None),
        ],
    )
    def test_parse_time(self, raw: str, expected: str | None) -> None:
        assert parse_time(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        ["2026-02-10", "2026-02-10 00:00:00", "10/02/2026", "10.02.2026", "46063"],
    )
    def test_parse_date(self, raw: str) -> None:
        assert parse_date(raw) == date(2026, 2, 10)

    def test_parse_date_rejects_garbage(self) -> None:
        assert parse_date("not-a-date") is None
        assert parse_date("") is None


# ---------------------------------------------------------------------------
# Workbook parsing
# ---------------------------------------------------------------------------


class TestParsePlanning:
    def test_parse_valid_rows(self) -> None:
        data = _xlsx(
            ["Employee ID", "Full Name", "Work Date", "Shift Type", "Start", "End"],
            ["emp007", "Sami Ben Ali", "2026-02-10", "Shift 1", "6:00", "14:00"],
            ["EMP008", "Leila Trabelsi", "11/02/2026", "Shift 2", "14:00", "22:00"],
        )
        rows, errors = parse_planning_excel(BytesIO(data))
        assert errors == []
        assert [r.employee_code for r in rows] == ["EMP007", "EMP008"]
        assert rows[0].start_time == "06:00"
        assert rows[1].work_date == date(2026, 2, 11)
        assert rows[1].shift == "Shift 2"

    def test_header_below_title_rows(self) -> None:
        data = _xlsx(
            ["Planning Février 2026"],
            ["Département Monétique"],
            HEADER,
            ["EMP007", "Sami Ben Ali", "not-a-date", "Shift 1", "06:00", "14:00"],
            ["EMP007", "Sami Ben Ali", "2026-02-11", "Shift 1", "06:00", "14:00"],
        )
        rows, errors = parse_planning_excel(BytesIO(data))
        assert len(rows) == 1
        assert errors == ["Row 4: Invalid date format: 'not-a-date'"]

    def test_bad_rows_do_not_abort(self) -> None:
        data = _xlsx(
            HEADER,
            ["EMP007", "Sami Ben Ali", "2026-02-10", "Shift 1", "25:00", "14:00"],
            ["EMP007", "Sami Ben Ali", "2026-02-11", "Shift 1", "06:00", "later"],
            ["EMP007", "", "2026-02-12", "Shift 1", "06:00", "14:00"],
            ["EMP007", "Sami Ben Ali", "2026-02-13", "Shift 1", "06:00", "14:00"],
        )
        rows, errors = parse_planning_excel(BytesIO(data))
        assert [r.work_date for r in rows] == [date(2026, 2, 13)]
        assert errors[0] == "Row 2: Invalid start time format"
        assert errors[1] == "Row 3: Invalid end time format"
        assert errors[2].startswith("Row 4: employee_name")

    def test_missing_columns(self) -> None:
        data = _xlsx(
            ["EmployeeID", "Name", "Date", "StartTime", "EndTime"],
            ["EMP007", "Sami Ben Ali", "2026-02-10", "06:00", "14:00"],
        )
        rows, errors = parse_planning_excel(BytesIO(data))
        assert rows == []
        assert len(errors) == 1
        assert errors[0].startswith("Missing required columns: shift.")

    def test_unreadable_file(self) -> None:
        rows, errors = parse_planning_excel(BytesIO(b"this is not a workbook"))
        assert rows == []
        assert errors[0].startswith("Failed to parse Excel file")

    def test_template_parses_cleanly(self) -> None:
        rows, errors = parse_planning_excel(
            BytesIO(build_planning_template(date(2026, 2, 10)))
        )
        assert errors == []
        assert [(r.employee_code, r.shift) for r in rows] == [
            ("EMP001", "Shift 0"),
            ("EMP002", "Shift 1"),
        ]


# ---------------------------------------------------------------------------
# Upload route
# ---------------------------------------------------------------------------


@pytest.fixture
def saved_batches(monkeypatch: pytest.MonkeyPatch) -> list:
    batches: list = []

    async def _save(db, rows, uploaded_by):
        batches.append(rows)
        return "batch-1", len(rows), 1

    monkeypatch.setattr(planning_service, "save_planning_rows", _save)
    return batches


async def _upload(client: AsyncClient, content: bytes, filename: str = "planning.xlsx"):
    return await client.post("/api/planning/upload", files={"file": (filename, content, XLSX)})


class TestUpload:
    async def test_upload_success(
        self, client: AsyncClient, login_as, admin_user, fake_db, saved_batches
    ) -> None:
        login_as(admin_user)
        resp = await _upload(
            client,
            _xlsx(HEADER, ["EMP007", "Sami Ben Ali", "2026-02-10", "Shift 1", "06:00", "14:00"]),
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["status"] == "success"
        assert (body["inserted_count"], body["linked_count"], body["error_count"]) == (1, 1, 0)
        assert body["batch_id"] == "batch-1"

        history = [o for o in fake_db.added if isinstance(o, ImportHistory)]
        assert len(history) == 1
        assert history[0].status == "success"
        assert history[0].logs["inserted"] == 1
        assert fake_db.commits == 1

    async def test_upload_partial(
        self, client: AsyncClient, login_as, admin_user, saved_batches
    ) -> None:
        login_as(admin_user)
        resp = await _upload(
            client,
            _xlsx(
                HEADER,
                ["EMP007", "Sami Ben Ali", "2026-02-10", "Shift 1", "06:00", "14:00"],
                ["EMP007", "Sami Ben Ali", "soon", "Shift 1", "06:00", "14:00"],
            ),
        )
        body = resp.json()
        assert body["status"] == "partial"
        assert body["total"] == 2
        assert body["errors"] == ["Row 3: Invalid date format: 'soon'"]

    async def test_upload_without_valid_rows_fails(
        self, client: AsyncClient, login_as, admin_user, fake_db, saved_batches
    ) -> None:
        login_as(admin_user)
        resp = await _upload(client, _xlsx(["Foo", "Bar"], ["1", "2"]))
        body = resp.json()
        assert body["status"] == "failed"
        assert body["batch_id"] is None
        assert saved_batches == []
        assert fake_db.added[0].status == "failed"

    async def test_upload_invalid_extension(
        self, client: AsyncClient, login_as, admin_user
    ) -> None:
        login_as(admin_user)
        resp = await _upload(client, b"a,b,c", filename="planning.csv")
        assert resp.status_code == 400, resp.text

    async def test_upload_too_large(
        self, client: AsyncClient, login_as, admin_user, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        login_as(admin_user)
        monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE_BYTES", 10)
        resp = await _upload(client, _xlsx(HEADER))
        assert resp.status_code == 413, resp.text

    async def test_template_download(
        self, client: AsyncClient, login_as, admin_user
    ) -> None:
        login_as(admin_user)
        resp = await client.get("/api/planning/template")
        assert resp.status_code == 200
        assert resp.headers["content-type"] == XLSX
        rows, errors = parse_planning_excel(BytesIO(resp.content))
        assert len(rows) == 2 and errors == []


# ---------------------------------------------------------------------------
# Manual edits
# ---------------------------------------------------------------------------


class TestEntries:
    async def test_update_entry(self, fake_db, make_planning) -> None:
        entry = fake_db.put(make_planning("EMP007", date(2026, 2, 10), "Shift 1", record_id=5))
        await planning_service.update_entry(
            fake_db, 5, PlanningUpdate(shift="Shift 2", start_time="7:30")
        )
        assert entry.shift == "Shift 2"
        assert entry.start_time == "07:30"
        assert entry.end_time == "14:00"
        assert fake_db.commits == 1

    async def test_update_cannot_move_row_to_other_employee(
        self, fake_db, make_planning, employee_user
    ) -> None:
        entry = fake_db.put(
            make_planning(
                "EMP007", date(2026, 2, 10), "Shift 1",
                employee_id=employee_user.id, record_id=7,
            )
        )
        body = PlanningUpdate.model_validate(
            {"employee_code": "EMP999", "employee_id": None, "shift": "Shift 2"}
        )
        await planning_service.update_entry(fake_db, 7, body)
        assert entry.shift == "Shift 2"
        assert entry.employee_code == "EMP007"
        assert entry.employee_id == employee_user.id

    async def test_delete_entry(self, fake_db, make_planning) -> None:
        entry = fake_db.put(make_planning("EMP007", date(2026, 2, 10), "Shift 1", record_id=6))
        await planning_service.delete_entry(fake_db, 6)
        assert fake_db.deleted == [entry]

    async def test_missing_entry(self, fake_db) -> None:
        with pytest.raises(NotFoundError):
            await planning_service.get_entry(fake_db, 404)

    async def test_update_route_validates_time(
        self, client: AsyncClient, login_as, admin_user
    ) -> None:
        login_as(admin_user)
        resp = await client.put("/api/planning/1", json={"start_time": "7h30"})
        assert resp.status_code == 422
