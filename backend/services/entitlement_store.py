"""Entitlement Store - time-boxed access grants, one row per identity.

Collection: access_grants
    {identity, valid_until, source_reference, customer_reference,
     applied_references, version, created_at, updated_at}

Key Principles:
1. Single row per identity: enforced by the unique index on identity.
2. No lost updates: every change is a compare-and-set on `version`; a writer that
   loses the race re-reads and recomputes.
3. Replay safety: a source_reference already in applied_references is a no-op, so a
   redelivered webhook never grants a second extra year.
4. Store failures raise StoreUnavailableError and are never reported as "no access".

Extension rules:
- no row                    -> valid_until = now + 1 calendar year
- row, valid_until > now    -> valid_until + 1 calendar year (renewals stack)
- row, lapsed or unparsable -> now + 1 calendar year
"""
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from models import AccessGrant
from services.errors import InputValidationError, StoreUnavailableError
from utils.email import normalize_email

logger = logging.getLogger(__name__)

GRANT_PERIOD_YEARS = 1
MAX_CAS_ATTEMPTS = 5
# Older references are dropped; a payment is never redelivered after this many newer ones
MAX_APPLIED_REFERENCES = 50

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def add_years(moment: datetime, years: int) -> datetime:
    """Same calendar date `years` later; Feb 29 maps to Feb 28 in non-leap years."""
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        return moment.replace(year=moment.year + years, day=28)


def parse_valid_until(value) -> Optional[datetime]:
    """Coerce a stored valid_until into an aware datetime, None when unparsable."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def next_valid_until(current, now: datetime) -> datetime:
    """Expiry after one more grant period, given the stored expiry."""
    current_expiry = parse_valid_until(current)
    if current_expiry is not None and current_expiry > now:
        return add_years(current_expiry, GRANT_PERIOD_YEARS)
    return add_years(now, GRANT_PERIOD_YEARS)


class EntitlementStore:
    """Grant, extend and look up access windows in MongoDB."""

    def __init__(self, db, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _now(self) -> datetime:
        return self._clock()

    @staticmethod
    def _require_identity(identity) -> str:
        if not isinstance(identity, str):
            raise InputValidationError("identity must be a string", field="identity")
        normalized = normalize_email(identity)
        if not normalized:
            raise InputValidationError("identity is empty after normalization", field="identity")
        return normalized

    @staticmethod
    def _to_grant(doc: dict) -> AccessGrant:
        data = dict(doc)
        data.pop("_id", None)
        data["valid_until"] = parse_valid_until(data.get("valid_until")) or _EPOCH
        for key in ("created_at", "updated_at"):
            parsed = parse_valid_until(data.get(key))
            if parsed is None:
                data.pop(key, None)
            else:
                data[key] = parsed
        data["applied_references"] = list(data.get("applied_references") or [])
        return AccessGrant(**data)

    # =========================================================================
    # Read path
    # =========================================================================

    async def lookup(self, identity: str) -> Optional[AccessGrant]:
        """Current grant for identity, or None. Read-only."""
        normalized = self._require_identity(identity)
        try:
            doc = await self.db.access_grants.find_one({"identity": normalized}, {"_id": 0})
        except PyMongoError as e:
            logger.error(f"Access lookup failed: {e}")
            raise StoreUnavailableError(f"access lookup failed: {e}") from e
        if not doc:
            return None
        return self._to_grant(doc)

    # =========================================================================
    # Write path
    # =========================================================================

    async def grant(
        self,
        identity: str,
        source_reference: str,
        customer_reference: Optional[str] = None,
    ) -> AccessGrant:
        """
        Grant or extend access for identity by one calendar year.

        Idempotent per source_reference. Raises InputValidationError for a malformed
        identity or missing reference (before any store access) and
        StoreUnavailableError when the store fails or contention does not settle.
        """
        normalized = self._require_identity(identity)
        if not source_reference or not isinstance(source_reference, str):
            raise InputValidationError("source_reference is required", field="source_reference")

        for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
            try:
                grant = await self._try_grant(normalized, source_reference, customer_reference)
            except PyMongoError as e:
                logger.error(f"Access grant failed for {normalized}: {e}")
                raise StoreUnavailableError(f"access grant failed: {e}") from e
            if grant is not None:
                return grant
            logger.info(f"Access grant for {normalized} lost a concurrent update (attempt {attempt}), retrying")

        raise StoreUnavailableError(f"access grant for {normalized} did not settle after {MAX_CAS_ATTEMPTS} attempts")

    async def _try_grant(
        self,
        identity: str,
        source_reference: str,
        customer_reference: Optional[str],
    ) -> Optional[AccessGrant]:
        """One compare-and-set round. Returns None when another writer got there first."""
        now = self._now()
        existing = await self.db.access_grants.find_one({"identity": identity}, {"_id": 0})

        if existing is None:
            grant = AccessGrant(
                identity=identity,
                valid_until=add_years(now, GRANT_PERIOD_YEARS),
                source_reference=source_reference,
                customer_reference=customer_reference,
                applied_references=[source_reference],
                version=1,
                created_at=now,
                updated_at=now,
            )
            try:
                await self.db.access_grants.insert_one(grant.model_dump())
            except DuplicateKeyError:
                return None
            logger.info(f"ACCESS_GRANTED identity={identity} valid_until={grant.valid_until.isoformat()} ref={source_reference}")
            return grant

        if source_reference in (existing.get("applied_references") or []):
            logger.info(f"ACCESS_GRANT_REPLAY identity={identity} ref={source_reference} - already applied")
            return self._to_grant(existing)

        version = existing.get("version")
        version_filter = {"$exists": False} if version is None else version
        valid_until = next_valid_until(existing.get("valid_until"), now)

        updated = await self.db.access_grants.find_one_and_update(
            {"identity": identity, "version": version_filter},
            {
                "$set": {
                    "valid_until": valid_until,
                    "source_reference": source_reference,
                    "customer_reference": customer_reference or existing.get("customer_reference"),
                    "updated_at": now,
                    "version": (version or 0) + 1,
                },
                "$push": {
                    "applied_references": {
                        "$each": [source_reference],
                        "$slice": -MAX_APPLIED_REFERENCES,
                    }
                },
            },
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            return None

        logger.info(f"ACCESS_EXTENDED identity={identity} valid_until={valid_until.isoformat()} ref={source_reference}")
        return self._to_grant(updated)
