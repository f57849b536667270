"""Access Validator - read path used by calculator routes to gate content."""
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from models import AccessGrant
from services.entitlement_store import EntitlementStore
from utils.email import is_valid_email, normalize_email

logger = logging.getLogger(__name__)


class AccessValidator:
    def __init__(self, store: EntitlementStore, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def get_active_grant(self, raw_identity) -> Optional[AccessGrant]:
        """Live grant for the identity, None when absent, lapsed or malformed.

        StoreUnavailableError propagates so an outage is not mistaken for "no access".
        """
        if not raw_identity or not isinstance(raw_identity, str):
            return None
        identity = normalize_email(raw_identity)
        if not is_valid_email(identity):
            return None

        grant = await self.store.lookup(identity)
        if grant is None or not grant.is_active(self._clock()):
            return None
        return grant

    async def is_entitled(self, raw_identity) -> bool:
        return await self.get_active_grant(raw_identity) is not None
