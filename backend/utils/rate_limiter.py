"""Sliding-window rate limiting for intake endpoints (per IP and endpoint)."""
from datetime import timedelta
from typing import Dict, List, Optional
import logging

from utils.clock import system_clock

logger = logging.getLogger(__name__)

class RateLimiter:
    def __init__(self, clock=None):
        # In-memory, per process
        self.attempts: Dict[str, List] = {}
        self.clock = clock or system_clock

    async def check_rate_limit(
        self,
        key: str,
        max_attempts: int,
        window_minutes: int
    ) -> tuple[bool, Optional[str], int]:
        """
        Check if rate limit is exceeded.

        Returns:
            (allowed: bool, error_message: Optional[str], retry_after_seconds: int)
        """
        now = self.clock.now()
        window = timedelta(minutes=window_minutes)

        # Clean old entries
        self.attempts[key] = [
            timestamp for timestamp in self.attempts.get(key, [])
            if now - timestamp < window
        ]

        # Check limit
        if len(self.attempts[key]) >= max_attempts:
            oldest = min(self.attempts[key])
            wait_seconds = max(1, int((oldest + window - now).total_seconds()))
            logger.warning(f"Rate limit hit for {key}")
            return False, f"Too many requests. Try again in {wait_seconds} seconds", wait_seconds

        # Record attempt
        self.attempts[key].append(now)
        return True, None, 0

    def reset(self) -> None:
        self.attempts.clear()

rate_limiter = RateLimiter()
