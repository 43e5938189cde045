"""Redis connection for rate-limit windows and revoked session tokens"""
from typing import Optional

import redis
from rizara.config import settings
from rizara.utils.logger import app_logger


class RedisClient:
    """Lazily created, process-wide client backed by one connection pool"""
    _instance: Optional[redis.Redis] = None

    @classmethod
    def get_instance(cls) -> redis.Redis:
        if cls._instance is None:
            cls._instance = redis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        return cls._instance

    @classmethod
    def is_available(cls, client: Optional[redis.Redis] = None) -> bool:
        """Ping the server; rate limiting degrades instead of failing when this is False"""
        client = client or cls.get_instance()
        try:
            return bool(client.ping())
        except redis.RedisError as e:
            app_logger.warning(f"Redis unavailable: {e}")
            return False

    @classmethod
    def close(cls):
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None


def get_redis() -> redis.Redis:
    """Redis client dependency"""
    return RedisClient.get_instance()
