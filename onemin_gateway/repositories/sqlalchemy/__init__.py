"""
SQLAlchemy Repository Implementation Module Initialization
"""

from onemin_gateway.repositories.sqlalchemy.kv_store_repo import SQLAlchemyKVStoreRepository

__all__ = [
    "SQLAlchemyKVStoreRepository",
]
