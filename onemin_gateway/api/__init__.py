"""
API Router Module Initialization
"""

from onemin_gateway.api.deps import get_current_api_key, get_gateway_service

__all__ = [
    "get_current_api_key",
    "get_gateway_service",
]
