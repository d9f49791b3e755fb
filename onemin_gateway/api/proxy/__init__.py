"""
Proxy API Module Initialization
"""

from onemin_gateway.api.proxy.openai import router as openai_router
from onemin_gateway.api.proxy.anthropic import router as anthropic_router

__all__ = [
    "openai_router",
    "anthropic_router",
]
