"""
SQLAlchemy ORM Model Definitions

Defines the database table used by the "database" KV backend:
- kv_store: Key-value entries with optional expiration
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from onemin_gateway.common.time import utc_now_naive


class Base(DeclarativeBase):
    """SQLAlchemy ORM Base Class"""
    pass


class KeyValueStore(Base):
    """
    Key-Value Store Table

    Holds the cached model list and rate-limit counters.
    """

    __tablename__ = "kv_store"

    # Key
    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    # Value (JSON text)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    # Expiration Time (UTC, naive), NULL means never expires
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    # Creation Time
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now_naive, nullable=False
    )
    # Update Time
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now_naive, onupdate=utc_now_naive, nullable=False
    )

    __table_args__ = (Index("idx_kv_store_expires_at", "expires_at"),)
