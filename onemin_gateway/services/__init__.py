"""
Service Layer Module Initialization
"""

from onemin_gateway.services.gateway_service import GatewayService
from onemin_gateway.services.image_ingestion import ImageIngestionService
from onemin_gateway.services.model_registry import ModelRegistry
from onemin_gateway.services.onemin_client import OneMinClient
from onemin_gateway.services.stream_relay import StreamRelay

__all__ = [
    "GatewayService",
    "ImageIngestionService",
    "ModelRegistry",
    "OneMinClient",
    "StreamRelay",
]
