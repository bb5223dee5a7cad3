"""
conftest.py — shared fixtures for all tests.

Strategy:
- Route and service tests need no database: ``get_db`` is overridden with
  ``FakeSession``, an in-memory stand-in that supports the handful of session
  calls the code makes (get, add, delete, expunge, execute, flush, commit,
  rollback, refresh); ``execute`` answers from the ``results`` queue.
- Session behaviour that the double cannot model (rollback expiry, ON CONFLICT
  upserts, the planning id-or-code query) is covered in ``test_sessions.py``
  against real SQLAlchemy sessions.
- Query helpers that need SQL (month records, upserts, employee lists) are
  monkeypatched with plain Python functions (``month_data``, ``sheet_store``).
- Authentication is bypassed by overriding ``get_current_user``; role checks
  still run against the returned user.
- The presence sheet template and the storage root live in ``tmp_path``.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from itertools import count
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from presencetrack.core.config import settings
from presencetrack.core.middleware import get_current_user
from presencetrack.db.models import AttendanceRecord, PlanningRecord, PresenceSheet, User
from presencetrack.db.session import get_db
from presencetrack.main import app
from presencetrack.periods import organization_timezone
from presencetrack.services import presence_sheets, reconciliation
from presencetrack.services.template_builder import write_default_template


# ---------------------------------------------------------------------------
# In-memory session double
# ---------------------------------------------------------------------------


class FakeResult:
    def __init__(self, rows: list) -> None:
        self._rows = rows
        self.rowcount = len(rows)

    def scalar_one_or_none(self):
        return self._rows[0] if self._rows else None

    def scalar_one(self):
        (row,) = self._rows
        return row

    def one(self):
        (row,) = self._rows
        return row

    def scalars(self) -> "FakeResult":
        return self

    def first(self):
        return self._rows[0] if self._rows else None

    def all(self) -> list:
        return list(self._rows)


class FakeSession:
    def __init__(self) -> None:
        self.objects: dict[tuple[type, object], object] = {}
        self.added: list[object] = []
        self.deleted: list[object] = []
        self.expunged: list[object] = []
        self.commits = 0
        self.rollbacks = 0
        self.commit_error: Exception | None = None
        # Rows returned by successive execute() calls
        self.results: list[list] = []

    def put(self, obj: object) -> object:
        self.objects[(type(obj), obj.id)] = obj
        return obj

    async def get(self, model: type, key: object) -> object | None:
        return self.objects.get((model, key))

    def add(self, obj: object) -> None:
        self.added.append(obj)

    async def delete(self, obj: object) -> None:
        self.deleted.append(obj)
        self.objects.pop((type(obj), getattr(obj, "id", None)), None)

    def expunge(self, obj: object) -> None:
        self.expunged.append(obj)

    async def execute(self, stmt, *args, **kwargs) -> FakeResult:
        return FakeResult(self.results.pop(0) if self.results else [])

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        if self.commit_error is not None:
            raise self.commit_error
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1

    async def refresh(self, obj: object) -> None:
        pass


@pytest.fixture
def fake_db() -> FakeSession:
    return FakeSession()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def _user(role: str, code: str, name: str, department: str = "Monétique") -> User:
    return User(
        id=uuid.uuid4(),
        username=code.lower(),
        password_hash="",
        role=role,
        employee_code=code,
        full_name=name,
        email=None,
        department=department,
        is_active=True,
    )


@pytest.fixture
def admin_user() -> User:
    return _user("admin", "ADM001", "Admin Principal", department="Direction")


@pytest.fixture
def employee_user() -> User:
    return _user("employee", "EMP007", "Sami Ben Ali")


@pytest.fixture
def make_user():
    return _user


# ---------------------------------------------------------------------------
# Record factories
# ---------------------------------------------------------------------------


def local_dt(year: int, month: int, day: int, hour: int, minute: int) -> datetime:
    """Aware datetime in the organization timezone."""
    return datetime(year, month, day, hour, minute, tzinfo=organization_timezone())


@pytest.fixture
def at_local():
    return local_dt


@pytest.fixture
def make_attendance():
    def _make(
        employee: User,
        work_date: date,
        check_in: datetime | None = None,
        check_out: datetime | None = None,
        status: str = "present",
        notes: str = "",
        record_id: int | None = None,
    ) -> AttendanceRecord:
        return AttendanceRecord(
            id=record_id,
            employee_id=employee.id,
            work_date=work_date,
            check_in=check_in,
            check_out=check_out,
            status=status,
            work_hours=0.0,
            overtime_hours=0.0,
            notes=notes,
        )

    return _make


@pytest.fixture
def make_planning():
    def _make(
        employee_code: str,
        work_date: date,
        shift: str,
        start_time: str = "06:00",
        end_time: str = "14:00",
        employee_id: uuid.UUID | None = None,
        record_id: int | None = None,
    ) -> PlanningRecord:
        return PlanningRecord(
            id=record_id,
            employee_id=employee_id,
            employee_code=employee_code,
            employee_name="Planned Employee",
            work_date=work_date,
            shift=shift,
            start_time=start_time,
            end_time=end_time,
            break_duration=60,
            upload_batch="batch-test",
            notes="",
        )

    return _make


# ---------------------------------------------------------------------------
# Template and storage
# ---------------------------------------------------------------------------


@pytest.fixture
def template_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = write_default_template(tmp_path / "templates" / "feuille_presence_template.xlsx")
    monkeypatch.setattr(settings, "PRESENCE_TEMPLATE_PATH", path)
    return path


@pytest.fixture
def storage_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    root = tmp_path / "uploads"
    monkeypatch.setattr(settings, "PRESENCE_STORAGE_ROOT", root)
    return root


@pytest.fixture
def month_data(monkeypatch: pytest.MonkeyPatch) -> dict:
    """Per employee code: (attendance, planning) or an exception to raise."""
    data: dict = {}

    async def _fetch(db, employee, year, month):
        entry = data.get(employee.employee_code, ([], []))
        if isinstance(entry, Exception):
            raise entry
        return entry

    monkeypatch.setattr(reconciliation, "fetch_month_records", _fetch)
    return data


@pytest.fixture
def sheet_store(monkeypatch: pytest.MonkeyPatch, fake_db: FakeSession) -> dict:
    """In-memory upsert keyed on (employee_id, year, month)."""
    rows: dict[tuple, PresenceSheet] = {}
    ids = count(1)

    async def _upsert(db, values: dict) -> PresenceSheet:
        key = (values["employee_id"], values["year"], values["month"])
        record = rows.get(key)
        if record is None:
            record = PresenceSheet(id=next(ids), **values)
            rows[key] = record
        else:
            for field in ("file_name", "file_path", "generated_by", "generated_at", "size"):
                setattr(record, field, values[field])
        fake_db.put(record)
        await db.commit()
        return record

    monkeypatch.setattr(presence_sheets, "upsert_presence_sheet", _upsert)
    return rows


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(fake_db: FakeSession) -> AsyncClient:
    """HTTPX async client against the app with the DB dependency replaced."""

    async def _get_db():
        yield fake_db

    app.dependency_overrides[get_db] = _get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def login_as():
    """Make every request authenticate as ``user``."""

    def _login(user: User) -> User:
        app.dependency_overrides[get_current_user] = lambda: user
        return user

    return _login
