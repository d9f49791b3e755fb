"""
Key-Value Store Repository In-Memory Implementation

Process-local storage for single-instance deployments and tests.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Optional

from onemin_gateway.common.time import utc_now
from onemin_gateway.domain.kv_store import KeyValueModel
from onemin_gateway.repositories.kv_store_repo import KVStoreRepository


class InMemoryKVStoreRepository(KVStoreRepository):
    """
    Key-Value Store Repository In-Memory Implementation

    Expired entries are dropped lazily on read and by `cleanup_expired`.
    """

    def __init__(self):
        self._data: dict[str, KeyValueModel] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _is_expired(entry: KeyValueModel, now: datetime) -> bool:
        return entry.expires_at is not None and entry.expires_at <= now

    async def get(self, key: str) -> Optional[KeyValueModel]:
        async with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            if self._is_expired(entry, utc_now()):
                del self._data[key]
                return None
            return entry

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> KeyValueModel:
        now = utc_now()
        expires_at = None
        if ttl_seconds is not None and ttl_seconds > 0:
            expires_at = now + timedelta(seconds=ttl_seconds)

        async with self._lock:
            existing = self._data.get(key)
            entry = KeyValueModel(
                key=key,
                value=value,
                expires_at=expires_at,
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
            self._data[key] = entry
            return entry

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._data.pop(key, None) is not None

    async def cleanup_expired(self) -> int:
        now = utc_now()
        async with self._lock:
            expired = [k for k, v in self._data.items() if self._is_expired(v, now)]
            for key in expired:
                del self._data[key]
            return len(expired)
