"""
Key-Value Store Repository Redis Implementation

Provides concrete Redis operation implementation for the KV store.
Uses Redis native TTL for automatic key expiration.
"""

import json
from typing import Optional

from redis.asyncio import Redis

from onemin_gateway.common.time import utc_now
from onemin_gateway.domain.kv_store import KeyValueModel
from onemin_gateway.repositories.kv_store_repo import KVStoreRepository


class RedisKVStoreRepository(KVStoreRepository):
    """
    Key-Value Store Repository Redis Implementation

    Leverages Redis native TTL for automatic key expiration,
    eliminating the need for scheduled cleanup tasks.
    """

    def __init__(self, client: Redis, key_prefix: str = "onemin:"):
        """
        Initialize Repository

        Args:
            client: Async Redis client instance (decode_responses=True)
            key_prefix: Namespace prepended to every key
        """
        self.client = client
        self.key_prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def _deserialize(self, key: str, raw: str) -> KeyValueModel:
        """Deserialize JSON string to domain model"""
        data = json.loads(raw)
        return KeyValueModel(
            key=key,
            value=data["value"],
            expires_at=None,  # Redis manages TTL natively, not tracked in data
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    async def get(self, key: str) -> Optional[KeyValueModel]:
        """Get value by key, returns None if not found or expired"""
        raw = await self.client.get(self._key(key))
        if raw is None:
            return None
        return self._deserialize(key, raw)

    async def set(
        self, key: str, value: str, ttl_seconds: Optional[int] = None
    ) -> KeyValueModel:
        """Set a key-value pair with optional TTL"""
        now_iso = utc_now().isoformat()

        # Preserve original created_at if key already exists
        existing = await self.client.get(self._key(key))
        created_at = json.loads(existing).get("created_at", now_iso) if existing else now_iso

        data = json.dumps({"value": value, "created_at": created_at, "updated_at": now_iso})
        if ttl_seconds is not None and ttl_seconds > 0:
            await self.client.set(self._key(key), data, ex=ttl_seconds)
        else:
            await self.client.set(self._key(key), data)

        return KeyValueModel(
            key=key,
            value=value,
            expires_at=None,
            created_at=created_at,
            updated_at=now_iso,
        )

    async def delete(self, key: str) -> bool:
        """Delete a key"""
        deleted_count = await self.client.delete(self._key(key))
        return deleted_count > 0

    async def cleanup_expired(self) -> int:
        """
        No-op for Redis backend.

        Redis manages key expiration natively via TTL.
        """
        return 0
