"""
Redis-backed JSON document store

Holds brand configs, calendar defaults and OAuth state. Unlike a cache,
these documents are the only copy, so storage errors propagate.
"""

import json
import logging
import os
from typing import Any, Optional

import redis

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client
    Supports REDIS_URL or individual host/port settings
    """
    global redis_client

    if redis_client is None:
        logger.info("🔄 Initializing Redis connection...")
        redis_url = os.getenv("REDIS_URL")

        if redis_url:
            # Mask password in URL for logging
            if "@" in redis_url:
                url_parts = redis_url.split("@")
                protocol = url_parts[0].split(":")[0]
                masked_url = f"{protocol}:****@{url_parts[1]}"
            else:
                masked_url = "****"
            logger.info(f"📡 Using Redis URL connection: {masked_url}")

            client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=15,
                socket_timeout=30,
                retry_on_timeout=True,
                health_check_interval=30,
                max_connections=20,
            )
        else:
            redis_host = os.getenv("REDIS_HOST", "localhost")
            redis_port = int(os.getenv("REDIS_PORT", "6379"))
            redis_ssl = os.getenv("REDIS_SSL", "false").lower() == "true"
            logger.info(f"📡 Using Redis at {redis_host}:{redis_port} (SSL: {redis_ssl})")

            client = redis.Redis(
                host=redis_host,
                port=redis_port,
                password=os.getenv("REDIS_PASSWORD"),
                db=int(os.getenv("REDIS_DB", "0")),
                ssl=redis_ssl,
                decode_responses=True,
                socket_connect_timeout=15,
                socket_timeout=30,
                retry_on_timeout=True,
                health_check_interval=30,
                max_connections=20,
            )

        try:
            client.ping()
        except redis.RedisError as e:
            logger.error(f"❌ Failed to connect to Redis: {e}")
            raise
        logger.info("Redis connected successfully")
        redis_client = client

    return redis_client


class KVStore:
    """JSON documents keyed by string"""

    def __init__(self, client: Optional[redis.Redis] = None):
        self.redis_client = client

    def get_client(self) -> redis.Redis:
        """Lazy load Redis client"""
        if self.redis_client is None:
            self.redis_client = get_redis_client()
        return self.redis_client

    def get_json(self, key: str) -> Optional[Any]:
        value = self.get_client().get(key)
        if value is None:
            logger.debug(f"KV MISS: {key}")
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.error(f"❌ Corrupt KV document at {key}, ignoring")
            return None

    def put_json(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        serialized = json.dumps(value)
        client = self.get_client()
        if ttl:
            client.setex(key, ttl, serialized)
        else:
            client.set(key, serialized)
        logger.debug(f"KV PUT: {key} (TTL: {ttl or 'none'})")

    def delete(self, key: str) -> None:
        self.get_client().delete(key)
        logger.debug(f"KV DELETE: {key}")


# Global store instance
kv_store = KVStore()


def get_kv() -> KVStore:
    """FastAPI dependency for the document store"""
    return kv_store


def brand_config_key(location_id: str) -> str:
    return f"brand_config:{location_id}"


def calendar_defaults_key(location_id: str) -> str:
    return f"location:{location_id}:defaults"


def oauth_state_key(state: str) -> str:
    return f"oauth_state:{state}"
