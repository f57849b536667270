"""Rate limiting for public write endpoints (checkout)."""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

class RateLimiter:
    def __init__(self, max_attempts: int = 5, window_seconds: int = 60):
        # In-memory, per process. One instance per app, created in the lifespan.
        self.max_attempts = max_attempts
        self.window = timedelta(seconds=window_seconds)
        self.attempts: Dict[str, List[datetime]] = {}

    def check_rate_limit(
        self,
        key: str,
        now: Optional[datetime] = None
    ) -> tuple[bool, Optional[int]]:
        """
        Check and record an attempt for key.

        Returns:
            (allowed: bool, retry_after_seconds: Optional[int])
        """
        now = now or datetime.now(timezone.utc)

        # Clean old entries
        recent = [
            timestamp for timestamp in self.attempts.get(key, [])
            if now - timestamp < self.window
        ]
        self.attempts[key] = recent

        if len(recent) >= self.max_attempts:
            wait_until = min(recent) + self.window
            wait_seconds = max(int((wait_until - now).total_seconds()), 1)
            logger.warning(f"Rate limit exceeded for {key}, retry in {wait_seconds}s")
            return False, wait_seconds

        recent.append(now)
        return True, None
