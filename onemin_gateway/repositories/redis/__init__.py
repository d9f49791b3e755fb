"""
Redis Repository Implementation Module Initialization
"""

from onemin_gateway.repositories.redis.kv_store_repo import RedisKVStoreRepository

__all__ = [
    "RedisKVStoreRepository",
]
