import os

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _normalize_database_url(url: str) -> str:
    # SQLAlchemy only knows the "postgresql" dialect name
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://"):]
    return url


APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = _normalize_database_url(os.getenv("DATABASE_URL", "sqlite:///./campus_access.db"))
DB_ECHO = _get_bool(os.getenv("DB_ECHO"), default=False)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "")

# Appointment access codes stay valid this long after the appointment ends.
APT_CODE_GRACE_MINUTES = int(os.getenv("APT_CODE_GRACE_MINUTES", "60"))
APT_CODE_LENGTH = int(os.getenv("APT_CODE_LENGTH", "6"))
APT_CODE_MAX_ATTEMPTS = int(os.getenv("APT_CODE_MAX_ATTEMPTS", "10"))
REFERENCE_MAX_ATTEMPTS = int(os.getenv("REFERENCE_MAX_ATTEMPTS", "5"))

DEFAULT_MAX_GUESTS = int(os.getenv("DEFAULT_MAX_GUESTS", "5"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
