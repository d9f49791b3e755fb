"""
Key-Value Store Repository SQLAlchemy Implementation

Provides concrete database operation implementation for the KV store.
"""

from datetime import timedelta
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from onemin_gateway.common.time import ensure_utc, utc_now_naive
from onemin_gateway.db.models import KeyValueStore as KeyValueStoreORM
from onemin_gateway.domain.kv_store import KeyValueModel
from onemin_gateway.repositories.kv_store_repo import KVStoreRepository


class SQLAlchemyKVStoreRepository(KVStoreRepository):
    """
    Key-Value Store Repository SQLAlchemy Implementation

    Opens a short-lived session per operation, since the repository outlives
    any single request (registry background writes, scheduler cleanup).
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Initialize Repository

        Args:
            session_factory: Async session factory
        """
        self.session_factory = session_factory

    def _to_domain(self, entity: KeyValueStoreORM) -> KeyValueModel:
        """Convert ORM entity to domain model"""
        return KeyValueModel(
            key=entity.key,
            value=entity.value,
            expires_at=ensure_utc(entity.expires_at) if entity.expires_at else None,
            created_at=ensure_utc(entity.created_at),
            updated_at=ensure_utc(entity.updated_at),
        )

    async def get(self, key: str) -> Optional[KeyValueModel]:
        """Get value by key, returns None if not found or expired"""
        async with self.session_factory() as session:
            entity = await session.get(KeyValueStoreORM, key)
            if not entity:
                return None

            if entity.expires_at is not None and entity.expires_at <= utc_now_naive():
                # Key is expired, delete it and return None
                await session.delete(entity)
                await session.commit()
                return None

            return self._to_domain(entity)

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> KeyValueModel:
        """Set a key-value pair with optional TTL"""
        expires_at = None
        if ttl_seconds is not None and ttl_seconds > 0:
            expires_at = utc_now_naive() + timedelta(seconds=ttl_seconds)

        async with self.session_factory() as session:
            entity = await session.get(KeyValueStoreORM, key)
            if entity:
                entity.value = value
                entity.expires_at = expires_at
            else:
                entity = KeyValueStoreORM(key=key, value=value, expires_at=expires_at)
                session.add(entity)

            await session.commit()
            await session.refresh(entity)
            return self._to_domain(entity)

    async def delete(self, key: str) -> bool:
        """Delete a key"""
        async with self.session_factory() as session:
            entity = await session.get(KeyValueStoreORM, key)
            if not entity:
                return False
            await session.delete(entity)
            await session.commit()
            return True

    async def cleanup_expired(self) -> int:
        """Delete all expired keys"""
        async with self.session_factory() as session:
            result = await session.execute(
                delete(KeyValueStoreORM).where(
                    KeyValueStoreORM.expires_at.isnot(None),
                    KeyValueStoreORM.expires_at <= utc_now_naive(),
                )
            )
            await session.commit()
            return result.rowcount
