"""Environment configuration for the Task Tracker."""
import os
from dotenv import load_dotenv

# Load environment variables from a local .env file if present
load_dotenv()


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


ENVIRONMENT = os.environ.get("ENVIRONMENT", "development")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# Database URL from environment, with fallback to SQLite for local dev
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./task_tracker.db")
SQL_ECHO = _as_bool(os.environ.get("SQL_ECHO", "false"))

# Token settings
AUTH_SECRET = os.environ.get("AUTH_SECRET", "dev-secret-change-me-0mbJv2O1s7AApOa1")
JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_DAYS = int(os.environ.get("ACCESS_TOKEN_EXPIRE_DAYS", "7"))
PASSWORD_RESET_EXPIRE_MINUTES = int(os.environ.get("PASSWORD_RESET_EXPIRE_MINUTES", "30"))
MIN_PASSWORD_LENGTH = 6

# CORS
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")

# Client defaults
API_BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:8000")
FEED_REFRESH_ON_RECONNECT = _as_bool(os.environ.get("FEED_REFRESH_ON_RECONNECT", "true"))
