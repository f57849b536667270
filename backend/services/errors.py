"""Error taxonomy shared by the calculators, the entitlement store and the webhook.

- InputValidationError: malformed identity, out-of-range year/amount. Surfaced as a
  localized 4xx message, never a server error.
- AuthenticationFailure: missing/invalid webhook signature. Never retried with trust.
- StoreUnavailableError: the database could not be reached or a write could not be
  applied. Retryable; must never be read as "no access".
- NotificationError: outbound email failed. Logged and swallowed on the grant path.
- DataGapError: a requested year is absent from the inflation series.
"""
from typing import Optional


class FinappError(Exception):
    """Base exception for backend operations."""
    pass


class InputValidationError(FinappError):
    """Input rejected at the boundary closest to the caller."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(message)


class AuthenticationFailure(FinappError):
    """Webhook delivery could not be authenticated."""
    pass


class StoreUnavailableError(FinappError):
    """Entitlement or macro data store failed; the caller should retry."""

    retryable = True


class NotificationError(FinappError):
    """Access notification could not be delivered."""
    pass


class DataGapError(FinappError):
    """Inflation series is missing a year or contains duplicates."""

    def __init__(self, country: str, detail: str):
        self.country = country
        self.detail = detail
        super().__init__(f"Inflation series for {country} unusable: {detail}")
