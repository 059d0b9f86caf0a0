# demarcation/config.py
"""Application configuration, read once from the environment (.env supported)."""

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent  # demarcation/

# load .env from the project root before any os.getenv calls
load_dotenv(BASE_DIR.parent / ".env")


def _env_bool(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def _env_list(name: str, default: str = "") -> list[str]:
    raw = os.getenv(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


# ----------------------------
# Database
# ----------------------------
DATABASE_URL = os.getenv("DATABASE_URL") or f"sqlite+aiosqlite:///{(BASE_DIR / 'demarcation.db').as_posix()}"
DB_TIMEOUT_SECONDS = float(os.getenv("DB_TIMEOUT_SECONDS", "15"))
SQL_ECHO = _env_bool("SQL_ECHO")

# ----------------------------
# Auth
# ----------------------------
JWT_SECRET = os.getenv("JWT_SECRET", "change_this_in_prod")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "120"))
AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME", "demarcation_token")

# invite codes required to self-register as officer / supervisor
OFFICER_INVITE_CODES = _env_list("OFFICER_INVITE_CODES", "OFFICER123,ADC456")

# bootstrap administrator, created at startup when both are set
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")
SEED_DEMO_DATA = _env_bool("SEED_DEMO_DATA")

# ----------------------------
# Uploads
# ----------------------------
UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", "uploads"))
MAX_UPLOAD_BYTES = int(float(os.getenv("MAX_UPLOAD_MB", "10")) * 1024 * 1024)
ALLOWED_MIME_TYPES = {
    "image/jpeg",
    "image/png",
    "image/jpg",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/plain",
    "text/csv",
}

# ----------------------------
# HTTP
# ----------------------------
ALLOWED_ORIGINS = _env_list(
    "ALLOWED_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173",
)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
