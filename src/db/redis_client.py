"""Redis connection and utilities."""

import redis

from src.config import RATE_LIMIT_REQUESTS, RATE_LIMIT_WINDOW, REDIS_CONFIG


class RedisClient:
    def __init__(self):
        self.client = redis.Redis(**REDIS_CONFIG)

    def rate_limit_check(self, actor_id: str, endpoint: str) -> bool:
        """Count one request in the actor's current window. Returns False once the window is exhausted."""
        key = f"rate_limit:{actor_id}:{endpoint}"
        pipe = self.client.pipeline()
        pipe.incr(key)
        pipe.ttl(key)
        count, ttl = pipe.execute()
        if ttl is None or ttl < 0:
            # first hit in this window (or a key that lost its expiry)
            self.client.expire(key, RATE_LIMIT_WINDOW)
        return int(count) <= RATE_LIMIT_REQUESTS


# Singleton instance
redis_client = RedisClient()
