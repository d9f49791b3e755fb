"""
Key-Value Store Domain Model

Two kinds of entries live in the KV store:
- `model-data`: the serialized `CachedModelData` capability index (JSON, camelCase keys)
- `rate-limit:<client id>`: a fixed-window `RateLimitRecord` per client

Both are written with a TTL, so `expires_at` is normally set.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class KeyValueModel(BaseModel):
    """One cached JSON document with its expiry"""

    key: str = Field(..., description="Cache key, e.g. model-data or rate-limit:<client>")
    value: str = Field(..., description="JSON document")
    expires_at: Optional[datetime] = Field(None, description="UTC expiry, None keeps the entry")
    created_at: Optional[datetime] = Field(None, description="First write (UTC)")
    updated_at: Optional[datetime] = Field(None, description="Last overwrite (UTC)")

    model_config = ConfigDict(from_attributes=True)
