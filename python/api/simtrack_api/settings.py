from __future__ import annotations

import logging
import os

from pydantic import BaseModel


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Settings(BaseModel):
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    cors_origins: list[str] = [o.strip() for o in os.getenv("API_CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()]

    data_dir: str = os.getenv("DATA_DIR", "./data")
    files_dir: str = os.getenv("FILES_DIR", "./data/files")
    db_url: str = os.getenv("DB_URL", "sqlite:///./data/simtrack.sqlite")

    # Sessions (in-memory, cookie-addressed)
    session_cookie_name: str = os.getenv("SESSION_COOKIE_NAME", "simtrack_session")
    session_ttl_hours: int = int(os.getenv("SESSION_TTL_HOURS", "24"))
    session_cookie_secure: bool = _flag("SESSION_COOKIE_SECURE", "false")

    # Demo users, projects and jobs on an empty database
    seed_demo_data: bool = _flag("SEED_DEMO_DATA", "true")

    max_upload_bytes: int = int(os.getenv("MAX_UPLOAD_BYTES", str(100 * 1024 * 1024)))

    # STORAGE_BACKEND and S3_* are read by simtrack_core.storage_backend.get_storage_backend


settings = Settings()

logger = logging.getLogger("simtrack.api.settings")
if settings.seed_demo_data and settings.session_cookie_secure:
    logger.warning(
        "SEED_DEMO_DATA is on with secure cookies; demo credentials should not reach production.",
        extra={"event": "settings.seed_demo_in_production"},
    )
