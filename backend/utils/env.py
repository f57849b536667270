"""
Centralized environment variable access.
Required keys are checked once at startup; optional keys have documented defaults.
"""
import os
import logging
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parent.parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

REQUIRED_ENV = [
    "MONGO_URL",
    "DB_NAME",
    "STRIPE_WEBHOOK_SECRET",
    "PUBLIC_APP_URL",
]


def missing_env(keys: Optional[List[str]] = None) -> List[str]:
    """Return the required keys that are unset or blank."""
    return [key for key in (keys or REQUIRED_ENV) if not (os.getenv(key) or "").strip()]


def validate_env() -> None:
    """Raise RuntimeError listing every missing required variable."""
    missing = missing_env()
    if missing:
        raise RuntimeError(
            "Missing required environment variables:\n"
            + "\n".join(missing)
            + "\n\nCheck backend/.env or the deployment environment."
        )


def get_env(key: str) -> str:
    """Return a required variable or raise RuntimeError."""
    value = (os.getenv(key) or "").strip()
    if not value:
        raise RuntimeError(f"Environment variable {key} is not set")
    return value


def get_env_optional(key: str, default: Optional[str] = None) -> Optional[str]:
    value = (os.getenv(key) or "").strip()
    return value or default


def get_float_env(key: str, default: float) -> float:
    """Parse a float variable; invalid values fall back to default with a warning."""
    raw = (os.getenv(key) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid float for %s=%r, using default %s", key, raw, default)
        return default


def get_stripe_secret_key() -> str:
    return (os.getenv("STRIPE_SECRET_KEY") or os.getenv("STRIPE_API_KEY") or "").strip()


def get_webhook_secret() -> str:
    return (os.getenv("STRIPE_WEBHOOK_SECRET") or "").strip()
