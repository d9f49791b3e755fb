"""
Key-Value Store Repository Interface

Storage contract shared by the memory, database and Redis backends. The model
registry keeps its second cache tier here and the rate limiter keeps its
per-client window counters here.
"""

from abc import ABC, abstractmethod
from typing import Optional

from onemin_gateway.domain.kv_store import KeyValueModel


class KVStoreRepository(ABC):
    """
    Key-Value Store Repository Interface

    Callers treat every backend error as a cache miss, so implementations
    raise freely instead of logging and returning defaults.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[KeyValueModel]:
        """
        Read a live entry

        Expired entries are reported as missing even before the cleanup job
        has purged them.

        Args:
            key: Cache key (`model-data`, `rate-limit:<client>`)

        Returns:
            KeyValueModel if present and unexpired, None otherwise
        """

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> KeyValueModel:
        """
        Create or overwrite an entry

        Overwrites keep the original `created_at` and restart the TTL.

        Args:
            key: Cache key
            value: JSON document
            ttl_seconds: Lifetime in seconds (None means never expires)

        Returns:
            KeyValueModel: The stored entry
        """

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Drop an entry; returns False when the key was absent"""

    @abstractmethod
    async def cleanup_expired(self) -> int:
        """
        Purge expired entries (run by the scheduler)

        Returns:
            Number of purged entries
        """
