"""
Data Access Layer Module Initialization
"""

from onemin_gateway.repositories.kv_store_repo import KVStoreRepository

__all__ = [
    "KVStoreRepository",
]
