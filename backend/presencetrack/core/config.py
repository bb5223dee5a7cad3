from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_PACKAGE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    DATABASE_URL: str = "postgresql+asyncpg://presence:presence_secret@db:5432/presencetrack"
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    CORS_ORIGINS: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Single organizational timezone: all "today" and HH:mm rendering happen here
    ORGANIZATION_TIMEZONE: str = "Africa/Tunis"
    REPORT_LOCALE: str = "fr"

    LATE_THRESHOLD_TIME: str = "09:00"
    LATE_GRACE_MINUTES: int = 15
    STANDARD_WORK_HOURS: float = 8.0

    REQUIRE_GEOFENCE: bool = False
    COMPANY_LAT: float = 0.0
    COMPANY_LNG: float = 0.0
    CHECKIN_RADIUS_METERS: float = 100.0

    PRESENCE_TEMPLATE_PATH: Path = _PACKAGE_DIR / "templates" / "feuille_presence_template.xlsx"
    PRESENCE_STORAGE_ROOT: Path = Path("uploads")
    PRESENCE_TASK_WEEKDAY: str = (
        "Assurer les tâches quotidiennes de fin de journée et la supervision "
        "de système monetique et des sauvegardes"
    )
    PRESENCE_TASK_WEEKEND: str = "Monitoring Appdynamics/Monétique/Elasticsearch"

    MAX_UPLOAD_SIZE_BYTES: int = 10 * 1024 * 1024


settings = Settings()
