import logging
import subprocess
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from presencetrack.api.attendance import router as attendance_router
from presencetrack.api.auth import router as auth_router
from presencetrack.api.planning import router as planning_router
from presencetrack.api.presence import router as presence_router
from presencetrack.api.stats import router as stats_router
from presencetrack.api.users import router as users_router
from presencetrack.core.config import settings
from presencetrack.core.errors import ApiError, api_error_handler
from presencetrack.services.template_builder import write_default_template

logger = logging.getLogger(__name__)

_BACKEND_DIR = Path(__file__).resolve().parent.parent


def run_migrations() -> None:
    logger.info("Running Alembic migrations...")
    try:
        result = subprocess.run(
            ["alembic", "upgrade", "head"],
            capture_output=True,
            text=True,
            cwd=_BACKEND_DIR,
        )
    except OSError:
        logger.exception("Failed to run migrations")
        return

    if result.returncode != 0:
        logger.error("Alembic migration failed:\n%s", result.stderr)
    else:
        logger.info("Migrations applied successfully:\n%s", result.stdout)


def ensure_presence_template() -> bool:
    path = Path(settings.PRESENCE_TEMPLATE_PATH)
    if path.is_file():
        return True
    try:
        write_default_template(path)
    except OSError:
        logger.exception("Presence sheet template missing at %s and could not be created", path)
        return False
    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Apply migrations and make sure a presence sheet template exists."""
    run_migrations()
    ensure_presence_template()

    yield

    logger.info("Shutting down PresenceTrack backend.")


app = FastAPI(
    title="PresenceTrack API",
    description="Attendance, planning and monthly presence sheets.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(ApiError, api_error_handler)

app.include_router(auth_router, prefix="/api/auth", tags=["Auth"])
app.include_router(users_router, prefix="/api/users", tags=["Users"])
app.include_router(attendance_router, prefix="/api/attendance", tags=["Attendance"])
app.include_router(planning_router, prefix="/api/planning", tags=["Planning"])
app.include_router(presence_router, prefix="/api/presence", tags=["Presence"])
app.include_router(stats_router, prefix="/api/dashboard", tags=["Dashboard"])


@app.get("/health", tags=["System"])
async def health_check() -> dict:
    return {"status": "ok"}
