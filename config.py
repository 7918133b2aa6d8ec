import os
from pathlib import Path

from dotenv import load_dotenv


BASE_DIR = Path(__file__).resolve().parent

load_dotenv(BASE_DIR / ".env")


def _env(key: str, default: str = "") -> str:
    return os.getenv(key, default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = os.getenv(key)
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")


def _env_int(key: str, default: int) -> int:
    val = os.getenv(key)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except ValueError:
        return default


def _database_url() -> str:
    url = _env("DATABASE_URL").strip()
    if url:
        return url
    host = _env("DB_HOST").strip()
    if not host:
        db_dir = BASE_DIR / "db"
        db_dir.mkdir(exist_ok=True)
        return f"sqlite:///{db_dir / 'survey.db'}"
    driver = _env("DB_DRIVER", "postgresql+psycopg2")
    user = _env("DB_USER", "survey")
    password = _env("DB_PASSWORD", "survey123")
    port = _env("DB_PORT", "5432")
    name = _env("DB_NAME", "survey_db")
    return f"{driver}://{user}:{password}@{host}:{port}/{name}"


APP_NAME = _env("APP_NAME", "Survey Kepuasan Layanan")
APP_ENV = _env("APP_ENV", "development").strip().lower()
IS_PRODUCTION = APP_ENV in ("prod", "production")

HOST = _env("HOST", "0.0.0.0")
PORT = _env_int("PORT", 3000)
DEBUG = _env_bool("DEBUG", APP_ENV in ("dev", "development", "local"))

DATABASE_URL = _database_url()
DB_POOL_SIZE = _env_int("DB_POOL_SIZE", 10)
DB_CONNECT_RETRIES = _env_int("DB_CONNECT_RETRIES", 30)
DB_CONNECT_DELAY = _env_int("DB_CONNECT_DELAY", 2)

# ADMIN_SECRET is the historical name of the signing secret.
JWT_SECRET = _env("JWT_SECRET", _env("ADMIN_SECRET", "survey-kiosk-dev-secret"))
ADMIN_DEFAULT_PASSWORD = _env("ADMIN_DEFAULT_PASSWORD", "")

APP_TIMEZONE = _env("APP_TIMEZONE", _env("TZ", "Asia/Jakarta"))

RATE_LIMIT_MAX = _env_int("RATE_LIMIT_MAX", 5)
RATE_LIMIT_WINDOW = _env_int("RATE_LIMIT_WINDOW", 10 * 60)
SURVEY_SESSION_TTL = _env_int("SURVEY_SESSION_TTL", 10 * 60)
ADMIN_TOKEN_TTL = _env_int("ADMIN_TOKEN_TTL", 24 * 60 * 60)

CORS_ORIGINS = [o.strip() for o in _env("CORS_ORIGINS", "*").split(",") if o.strip()]

LOG_LEVEL = _env("LOG_LEVEL", "INFO").upper()
LOG_DIR = _env("LOG_DIR", "")
