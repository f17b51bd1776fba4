"""Token bucket rate limiter for oracle request throttling."""

import asyncio
import threading
import time

from loguru import logger


class TokenBucket:
    """
    Token bucket algorithm implementation for rate limiting.

    Tokens refill continuously at a fixed rate. Requests consume tokens.
    If insufficient tokens are available, the request must wait.

    Attributes:
        capacity: Maximum number of tokens the bucket can hold
        refill_rate: Tokens added per second
        tokens: Current number of tokens available
        last_refill: Monotonic timestamp of last token refill
        lock: Thread lock for safe concurrent access
    """

    def __init__(self, capacity: int, refill_rate: float):
        """
        Initialize token bucket with capacity and refill rate.

        Args:
            capacity: Maximum tokens (e.g., 60 for 60 RPM)
            refill_rate: Tokens per second (e.g., 1.0 = 60 per minute)
        """
        self.capacity = capacity
        self.refill_rate = refill_rate
        self.tokens = float(capacity)
        self.last_refill = time.monotonic()
        self.lock = threading.Lock()

        logger.debug(
            f"TokenBucket initialized: capacity={capacity}, "
            f"refill_rate={refill_rate}/s"
        )

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def acquire(self, tokens: int = 1) -> bool:
        """
        Attempt to acquire tokens from the bucket (thread-safe).

        Args:
            tokens: Number of tokens to acquire

        Returns:
            True if tokens were acquired, False if insufficient tokens available
        """
        with self.lock:
            self._refill()

            if self.tokens >= tokens:
                self.tokens -= tokens
                return True

            return False

    def seconds_until(self, tokens: int = 1) -> float:
        """Time until ``tokens`` would be available, 0.0 if already available."""
        with self.lock:
            self._refill()
            missing = tokens - self.tokens
        if missing <= 0:
            return 0.0
        return missing / self.refill_rate


class RateLimiter:
    """
    Requests-per-minute limiter for the oracle.

    Unlike a reject-on-empty limiter, wait() suspends the calling task until
    a token is free, so a batch slows down instead of dropping entities.

    Attributes:
        rpm_bucket: Token bucket for request rate limiting
    """

    def __init__(self, max_rpm: int = 60):
        """
        Initialize rate limiter.

        Args:
            max_rpm: Maximum requests per minute
        """
        if max_rpm < 1:
            raise ValueError("max_rpm must be at least 1")

        self.max_rpm = max_rpm
        self.rpm_bucket = TokenBucket(capacity=max_rpm, refill_rate=max_rpm / 60.0)

        logger.info(f"RateLimiter initialized: {max_rpm} RPM")

    def can_proceed(self) -> bool:
        """Consume a request token if one is available."""
        if self.rpm_bucket.acquire(1):
            return True
        logger.warning("RPM limit reached, request throttled")
        return False

    async def wait(self) -> None:
        """Block the calling task until a request token has been consumed."""
        while not self.rpm_bucket.acquire(1):
            delay = self.rpm_bucket.seconds_until(1)
            logger.debug(f"Rate limited, sleeping {delay:.2f}s")
            await asyncio.sleep(max(delay, 0.01))
