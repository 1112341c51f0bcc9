"""Fixed-window request limiting backed by a shared Redis counter."""

import redis

from kutable.common.config import settings
from kutable.common.errors import RateLimitedError
from kutable.common.logging import logger
from kutable.common.metrics import rate_limited_total


class RateLimiter:
    """Counts requests per `(action, identifier)` in a Redis key with a TTL.

    Every instance behind the load balancer shares the same counters. When
    Redis is unreachable the request is let through and the failure logged.
    """

    def __init__(self, rdb: redis.Redis, service_name: str | None = None) -> None:
        self.rdb = rdb
        self.service_name = service_name or settings.service_name

    @classmethod
    def from_url(cls, url: str | None = None) -> "RateLimiter":
        return cls(redis.Redis.from_url(url or settings.redis_url, decode_responses=True))

    def consume(self, action: str, identifier: str, limit: int, window_seconds: int = 60) -> None:
        key = f"ratelimit:{action}:{identifier}"
        try:
            pipe = self.rdb.pipeline()
            pipe.incr(key)
            pipe.expire(key, window_seconds, nx=True)
            count, _ = pipe.execute()
        except redis.RedisError as exc:
            logger.warning("rate_limit_unavailable action=%s error=%s", action, exc)
            return
        if int(count) > limit:
            rate_limited_total.labels(service=self.service_name, action=action).inc()
            logger.info("rate_limited action=%s identifier=%s count=%s", action, identifier, count)
            raise RateLimitedError()
