"""
Domain Model Module Initialization
"""

from onemin_gateway.domain.kv_store import KeyValueModel
from onemin_gateway.domain.model import CachedModelData, ModelEntry
from onemin_gateway.domain.upstream import (
    ChatWithAIBody,
    ChatWithImageBody,
    ImageGeneratorBody,
    UpstreamRequestBody,
    UpstreamRequestType,
    WebSearchConfig,
)

__all__ = [
    # KV
    "KeyValueModel",
    # Model
    "CachedModelData",
    "ModelEntry",
    # Upstream
    "ChatWithAIBody",
    "ChatWithImageBody",
    "ImageGeneratorBody",
    "UpstreamRequestBody",
    "UpstreamRequestType",
    "WebSearchConfig",
]
