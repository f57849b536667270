"""
Canonical public site base URL for access links and redirects.
Use get_public_app_url() for ALL generated links (access email, access-explanation redirect).
"""
import os
import logging

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_URL = "http://localhost:3000"
ACCESS_PAGE_PATH = "/hozzaferes"


def get_public_app_url() -> str:
    """
    Return normalized public site base URL (no trailing slash).
    Fallback order: PUBLIC_APP_URL, FRONTEND_PUBLIC_URL, VERCEL_URL (as https).

    Rules:
    - Result is stripped and trailing slashes removed.
    - A value without scheme gets https://.
    - http:// is upgraded to https:// unless the host is localhost.
    - Nothing configured: http://localhost:3000 (logged as a warning outside development).
    """
    raw = (
        (os.getenv("PUBLIC_APP_URL") or "").strip()
        or (os.getenv("FRONTEND_PUBLIC_URL") or "").strip()
    )
    if not raw and os.getenv("VERCEL_URL"):
        raw = f"https://{os.getenv('VERCEL_URL', '').strip()}"
    raw = raw.rstrip("/")
    if not raw:
        env = (os.getenv("ENVIRONMENT") or os.getenv("ENV") or "").strip().lower()
        if env in ("production", "prod"):
            logger.warning("PUBLIC_APP_URL not set in production; generated links point to localhost")
        return DEFAULT_LOCAL_URL
    if not raw.startswith("http://") and not raw.startswith("https://"):
        raw = "https://" + raw
    if raw.startswith("http://") and "localhost" not in raw and "127.0.0.1" not in raw:
        raw = "https://" + raw.split("://", 1)[1]
    return raw


def get_access_page_url() -> str:
    """Access-explanation view that unentitled visitors are redirected to."""
    return f"{get_public_app_url()}{ACCESS_PAGE_PATH}"
