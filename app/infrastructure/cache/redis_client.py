import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisClient:
    """Cliente Redis para cache"""

    def __init__(self, url: str, pool_size: int = 10):
        self.url = url
        self.pool_size = pool_size
        self.client: Optional[redis.Redis] = None

    async def connect(self):
        """Conecta ao Redis e valida a conexão"""
        self.client = redis.from_url(
            self.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=self.pool_size,
        )
        await self.client.ping()
        logger.info("Connected to Redis")

    async def disconnect(self):
        """Desconecta do Redis"""
        if self.client:
            await self.client.aclose()
            self.client = None
            logger.info("Disconnected from Redis")

    async def ping(self) -> bool:
        """Verifica conexão com Redis"""
        if not self.client:
            return False
        try:
            await self.client.ping()
            return True
        except Exception as e:
            logger.error(f"Redis ping failed: {e}")
            return False

    async def get_cache(self, key: str) -> Optional[Any]:
        """Recupera valor do cache"""
        if not self.client:
            return None
        try:
            value = await self.client.get(key)
            return json.loads(value) if value else None
        except Exception as e:
            logger.error(f"Error getting cache {key}: {e}")
            return None

    async def set_cache(self, key: str, value: Any, ttl: int = 3600):
        """Define valor no cache com TTL"""
        if not self.client:
            return
        try:
            await self.client.setex(key, ttl, json.dumps(value, default=str))
        except Exception as e:
            logger.error(f"Error setting cache {key}: {e}")

    async def delete_cache(self, key: str):
        if not self.client:
            return
        try:
            await self.client.delete(key)
        except Exception as e:
            logger.error(f"Error deleting cache {key}: {e}")
