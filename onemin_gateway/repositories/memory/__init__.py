"""In-Memory Repository Implementations"""

from onemin_gateway.repositories.memory.kv_store_repo import InMemoryKVStoreRepository

__all__ = ["InMemoryKVStoreRepository"]
