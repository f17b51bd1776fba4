"""Tests for TokenBucket and RateLimiter."""

import time

import pytest

from content_sync.llm.rate_limiter import RateLimiter, TokenBucket


class TestTokenBucket:
    def test_acquire_until_empty(self):
        """Bucket hands out capacity tokens, then refuses."""
        bucket = TokenBucket(capacity=3, refill_rate=0.001)

        assert bucket.acquire() is True
        assert bucket.acquire() is True
        assert bucket.acquire() is True
        assert bucket.acquire() is False

    def test_seconds_until_reports_wait(self):
        bucket = TokenBucket(capacity=1, refill_rate=1.0)
        assert bucket.seconds_until() == 0.0

        bucket.acquire()
        wait = bucket.seconds_until()
        assert 0.0 < wait <= 1.0

    def test_refill_caps_at_capacity(self):
        bucket = TokenBucket(capacity=2, refill_rate=1000.0)
        bucket.acquire(2)
        time.sleep(0.01)

        assert bucket.seconds_until(2) == 0.0
        assert bucket.tokens == 2


class TestRateLimiter:
    def test_rejects_invalid_rpm(self):
        with pytest.raises(ValueError):
            RateLimiter(max_rpm=0)

    def test_can_proceed_throttles(self):
        limiter = RateLimiter(max_rpm=2)
        assert limiter.can_proceed() is True
        assert limiter.can_proceed() is True
        assert limiter.can_proceed() is False

    @pytest.mark.asyncio
    async def test_wait_returns_when_token_available(self):
        limiter = RateLimiter(max_rpm=60)
        await limiter.wait()
        assert limiter.rpm_bucket.tokens < 60

    @pytest.mark.asyncio
    async def test_wait_sleeps_when_empty(self):
        limiter = RateLimiter(max_rpm=6000)
        limiter.rpm_bucket.tokens = 0.0

        await limiter.wait()

        assert limiter.rpm_bucket.tokens < 1.0
