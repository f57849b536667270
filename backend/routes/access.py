"""Access Routes - lets the frontend ask whether an email has live access.

GET /api/access?email=... -> {"email", "has_access", "valid_until"}
"""
from fastapi import APIRouter, HTTPException, Query, Request, status
import logging

from services.errors import StoreUnavailableError
from utils import messages
from utils.email import MAX_EMAIL_LENGTH, is_valid_email, normalize_email

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/access", tags=["access"])


@router.get("")
async def check_access(request: Request, email: str = Query("")):
    """Report the access window for an email. Unknown and lapsed emails are has_access=False."""
    identity = normalize_email(email)
    if not identity:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=messages.EMAIL_REQUIRED)
    if len(identity) > MAX_EMAIL_LENGTH:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=messages.EMAIL_TOO_LONG)
    if not is_valid_email(identity):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=messages.EMAIL_INVALID)

    try:
        grant = await request.app.state.access_validator.get_active_grant(identity)
    except StoreUnavailableError as e:
        logger.error(f"Access check failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=messages.ACCESS_CHECK_UNAVAILABLE,
        )

    return {
        "email": identity,
        "has_access": grant is not None,
        "valid_until": grant.valid_until.isoformat() if grant else None,
    }
