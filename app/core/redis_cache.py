import json
import logging
from typing import Optional, Any
import redis
from redis.exceptions import RedisError
from app.core.config import settings

logger = logging.getLogger(__name__)


class RedisCache:
    """Redis-backed JSON cache (lazy connection, degrades to a miss when Redis is down)"""

    def __init__(self, redis_url: Optional[str] = None, password: Optional[str] = None):
        self._redis_url = redis_url or settings.redis_url
        self._password = password or settings.redis_password
        self._client: Optional[redis.Redis] = None
        self._connected = False

    def _connect(self):
        """Connect to Redis server"""
        if self._connected and self._client is not None:
            return

        try:
            client_kwargs = {
                'decode_responses': False,
                'socket_connect_timeout': 2,
                'socket_timeout': 2,
                'retry_on_timeout': False,
            }
            # Password from settings takes precedence over the one in the URL
            if self._password:
                client_kwargs['password'] = self._password

            self._client = redis.from_url(self._redis_url, **client_kwargs)
            self._client.ping()
            self._connected = True
            logger.info("RedisCache: Connected to Redis")
        except (RedisError, ValueError) as e:
            error_msg = str(e)
            if 'auth' in error_msg.lower() or 'password' in error_msg.lower():
                logger.error(f"RedisCache: Authentication failed - {error_msg}. Check REDIS_PASSWORD or REDIS_URL.")
            else:
                logger.warning(f"RedisCache: Connection failed - {error_msg}")
            self._connected = False
            self._client = None

    def _available(self, key: str, op: str) -> bool:
        self._connect()
        if self._client is None:
            logger.warning(f"RedisCache: Cannot {op} key {key} - Redis not available")
            return False
        return True

    def get(self, key: str) -> Optional[Any]:
        """Get cached value if present"""
        if not self._available(key, 'get'):
            return None

        try:
            data = self._client.get(key)
            if data is None:
                logger.debug(f"Cache miss: {key}")
                return None

            try:
                decoded = json.loads(data.decode('utf-8'))
                logger.debug(f"Cache hit: {key}")
                return decoded
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                logger.warning(f"RedisCache: Failed to decode value for key {key}: {e}")
                # Corrupted entry
                self._client.delete(key)
                return None
        except RedisError as e:
            logger.error(f"RedisCache: Error getting key {key}: {e}")
            self._connected = False
            return None

    def set(self, key: str, value: Any, ttl_minutes: int):
        """Set cache value with TTL in minutes"""
        if not self._available(key, 'set'):
            return

        try:
            self._client.setex(key, ttl_minutes * 60, json.dumps(value).encode('utf-8'))
            logger.debug(f"Cache set: {key}, TTL: {ttl_minutes} minutes")
        except RedisError as e:
            logger.error(f"RedisCache: Error setting key {key}: {e}")
            self._connected = False

    def delete(self, key: str):
        """Delete cache entry"""
        if not self._available(key, 'delete'):
            return

        try:
            self._client.delete(key)
            logger.debug(f"Cache deleted: {key}")
        except RedisError as e:
            logger.error(f"RedisCache: Error deleting key {key}: {e}")
            self._connected = False
