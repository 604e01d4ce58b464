import os

from dotenv import load_dotenv

load_dotenv()



def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./mindcare.db")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:5173"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# Booking rules
ENFORCE_COUNSELLOR_AVAILABILITY = _get_bool(os.getenv("ENFORCE_COUNSELLOR_AVAILABILITY"), default=False)
MAX_APPOINTMENT_NOTES_LENGTH = int(os.getenv("MAX_APPOINTMENT_NOTES_LENGTH", "600"))
MAX_CHAT_MESSAGE_LENGTH = int(os.getenv("MAX_CHAT_MESSAGE_LENGTH", "2000"))
PREVIOUS_SESSIONS_LIMIT = int(os.getenv("PREVIOUS_SESSIONS_LIMIT", "5"))

DEFAULT_INSTITUTION_NAME = os.getenv("DEFAULT_INSTITUTION_NAME", "Default Institution")
DEFAULT_INSTITUTION_DOMAIN = os.getenv("DEFAULT_INSTITUTION_DOMAIN", "example.edu")

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
