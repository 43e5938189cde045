"""Sliding-window rate limiting on Redis sorted sets"""
import math
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

import redis

from rizara.config import settings
from rizara.utils.logger import otp_logger


@dataclass
class RateLimitResult:
    allowed: bool
    attempts_remaining: int
    message: str
    reset_in: Optional[int] = None
    key: Optional[str] = None
    member: Optional[str] = None


class RateLimiter:
    """Counts attempts per identifier inside a trailing window.

    An attempt is recorded and counted in a single MULTI/EXEC transaction, so
    a burst of concurrent requests cannot all pass the check before any of
    them is recorded. Rejected attempts are removed again and do not extend
    the window.
    """

    def __init__(self, redis_client: redis.Redis, fail_open: Optional[bool] = None,
                 clock: Callable[[], float] = time.time):
        self.redis = redis_client
        self.fail_open = settings.rate_limit_fail_open if fail_open is None else fail_open
        self.clock = clock

    @staticmethod
    def _get_key(identifier: str, scope: str) -> str:
        return f"rate_limit:{scope}:{identifier.strip().lower()}"

    def check_limit(self, identifier: str, max_attempts: int = 3,
                    window_minutes: int = 15, scope: str = "otp") -> RateLimitResult:
        """Record an attempt and report whether it is within the limit.

        The count includes the attempt just recorded, so `attempts_remaining`
        is the number of further attempts still allowed in the window: a
        fresh window with `max_attempts=3` reports 2, and the last allowed
        attempt reports 0.
        """
        key = self._get_key(identifier, scope)
        now = self.clock()
        window_seconds = window_minutes * 60
        member = f"{now:.6f}:{uuid.uuid4().hex}"

        try:
            pipe = self.redis.pipeline(transaction=True)
            pipe.zremrangebyscore(key, "-inf", now - window_seconds)
            pipe.zadd(key, {member: now})
            pipe.zcard(key)
            pipe.zrange(key, 0, 0, withscores=True)
            pipe.expire(key, window_seconds)
            _, _, count, oldest, _ = pipe.execute()
        except redis.RedisError as e:
            otp_logger.error(f"Error checking rate limit for {identifier}: {e}")
            if self.fail_open:
                return RateLimitResult(
                    allowed=True,
                    attempts_remaining=1,
                    message="Rate limit check failed, allowing request",
                )
            return RateLimitResult(
                allowed=False,
                attempts_remaining=0,
                reset_in=1,
                message="Unable to process the request right now. Please try again in 1 minute.",
            )

        count = int(count)
        if count > max_attempts:
            self._remove(key, member)
            oldest_score = float(oldest[0][1]) if oldest else now
            minutes_left = max(
                1, math.ceil((oldest_score + window_seconds - now) / 60))
            otp_logger.warning(
                f"Rate limit exceeded for {identifier} (scope: {scope})")
            return RateLimitResult(
                allowed=False,
                attempts_remaining=0,
                reset_in=minutes_left,
                message=f"Too many attempts. Please try again in {minutes_left} minute{'s' if minutes_left != 1 else ''}.",
            )

        return RateLimitResult(
            allowed=True,
            attempts_remaining=max_attempts - count,
            message="Rate limit OK",
            key=key,
            member=member,
        )

    def release(self, result: RateLimitResult) -> None:
        """Give back an attempt whose action did not go through"""
        if result.key and result.member:
            self._remove(result.key, result.member)

    def reset(self, identifier: str, scope: str) -> None:
        """Clear the window for an identifier"""
        try:
            self.redis.delete(self._get_key(identifier, scope))
        except redis.RedisError as e:
            otp_logger.error(f"Error resetting rate limit for {identifier}: {e}")

    def _remove(self, key: str, member: str) -> None:
        try:
            self.redis.zrem(key, member)
        except redis.RedisError as e:
            otp_logger.error(f"Error releasing rate limit slot {key}: {e}")
