"""
Redis client wrapper with connection pooling, retry logic, and error handling.

One RedisClient serves one tenant partition (a Redis logical database).
"""
import logging
import random
import time
from typing import Any, Callable, List, Optional

import redis
from redis.exceptions import (
    AuthenticationError,
    ConnectionError,
    RedisError,
    TimeoutError,
)

from storefront.config import Config
from storefront.exceptions import StorageConnectionError

logger = logging.getLogger(__name__)


class RedisClient:
    """Redis client for a single tenant partition"""

    def __init__(self, tenant_id: str, db: int = 0, client: Optional[redis.Redis] = None):
        self.tenant_id = tenant_id
        self.db = db
        self.pool: Optional[redis.ConnectionPool] = None
        self.client: Optional[redis.Redis] = client
        if client is None:
            self._connect()

    def _redis_url(self) -> str:
        scheme = "rediss" if Config.REDIS_SSL else "redis"
        auth = f":{Config.REDIS_AUTH_TOKEN}@" if Config.REDIS_AUTH_TOKEN else ""
        return f"{scheme}://{auth}{Config.REDIS_HOST}:{Config.REDIS_PORT}/{self.db}"

    def _connect(self):
        """Initialize Redis connection pool"""
        try:
            self.pool = redis.ConnectionPool.from_url(
                self._redis_url(),
                max_connections=Config.REDIS_MAX_CONNECTIONS,
                socket_connect_timeout=Config.REDIS_SOCKET_CONNECT_TIMEOUT,
                socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
                retry_on_timeout=Config.REDIS_RETRY_ON_TIMEOUT,
                decode_responses=True,
            )
            self.client = redis.Redis(connection_pool=self.pool)
        except (ConnectionError, AuthenticationError) as e:
            raise StorageConnectionError(
                f"Failed to connect to Redis for tenant {self.tenant_id}: {e}"
            )

    def _retry_with_backoff(
        self,
        func: Callable,
        max_retries: int = 3,
        initial_backoff: float = 0.1,
        max_backoff: float = 2.0
    ) -> Any:
        """
        Execute function with exponential backoff retry.

        Args:
            func: Function to execute
            max_retries: Maximum number of retry attempts
            initial_backoff: Initial backoff delay in seconds
            max_backoff: Maximum backoff delay in seconds

        Returns:
            Result of function execution

        Raises:
            StorageConnectionError: If all retries fail
        """
        backoff = initial_backoff

        for attempt in range(max_retries):
            try:
                return func()
            except (ConnectionError, TimeoutError) as e:
                if attempt == max_retries - 1:
                    raise StorageConnectionError(
                        f"Redis operation failed after {max_retries} retries: {e}"
                    )

                # Exponential backoff with jitter
                jitter = random.uniform(0, backoff * 0.1)
                time.sleep(backoff + jitter)
                backoff = min(backoff * 2, max_backoff)

                if self.pool is not None:
                    try:
                        self.pool.disconnect()
                    except RedisError as disconnect_error:
                        logger.warning(f"Could not reset Redis pool: {disconnect_error}")

            except RedisError as e:
                # Non-retryable errors
                raise StorageConnectionError(f"Redis error: {e}")

    def incr(self, key: str) -> int:
        """Increment a counter and return the new value"""
        return self._retry_with_backoff(lambda: self.client.incr(key))

    def hget(self, key: str, field: str) -> Optional[str]:
        """Get field from hash"""
        return self._retry_with_backoff(lambda: self.client.hget(key, field))

    def hset(self, key: str, field: str, value: Any) -> int:
        """Set field in hash"""
        return self._retry_with_backoff(lambda: self.client.hset(key, field, value))

    def hdel(self, key: str, *fields: str) -> int:
        """Delete fields from hash"""
        return self._retry_with_backoff(lambda: self.client.hdel(key, *fields))

    def hvals(self, key: str) -> List[str]:
        """Get all values from hash"""
        return self._retry_with_backoff(lambda: self.client.hvals(key))

    def ping(self) -> bool:
        """Test Redis connection"""
        try:
            return bool(self.client.ping())
        except RedisError:
            return False

    def close(self):
        """Close connection pool"""
        if self.pool:
            self.pool.disconnect()
