"""
Access Gating
Server-side enforcement of paid access for calculator endpoints.
The identity is read from the `email` query parameter and checked fresh against
the entitlement store on every request; nothing is trusted from the client.
"""
from typing import Optional

from fastapi import HTTPException, Query, Request, status
import logging

from models import AccessGrant
from services.errors import StoreUnavailableError
from utils import messages
from utils.public_app_url import get_access_page_url

logger = logging.getLogger(__name__)


async def require_access(
    request: Request,
    email: Optional[str] = Query(None, max_length=320),
) -> AccessGrant:
    """
    FastAPI dependency enforcing an active access grant.

    - no email, malformed email, no grant or lapsed grant -> 303 to the access page
    - store unavailable -> 503 (an outage is never reported as "no access")

    Usage:
        @router.post("/endpoint")
        async def my_endpoint(body: Model, grant: AccessGrant = Depends(require_access)):
            ...
    """
    validator = request.app.state.access_validator
    try:
        grant = await validator.get_active_grant(email)
    except StoreUnavailableError as e:
        logger.error(f"Access check failed for {request.url.path}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=messages.ACCESS_CHECK_UNAVAILABLE,
        )

    if grant is None:
        logger.info(f"ACCESS_DENIED path={request.url.path} method={request.method}")
        raise HTTPException(
            status_code=status.HTTP_303_SEE_OTHER,
            detail=messages.ACCESS_REQUIRED,
            headers={"Location": get_access_page_url()},
        )

    return grant
