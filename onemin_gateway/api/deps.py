"""
API Dependency Injection Module

Provides the dependencies required by FastAPI routes. Process-scoped
services live on `app.state` and are created in the application lifespan.
"""

import hmac
from typing import Annotated, Optional

from fastapi import Depends, Header, Request

from onemin_gateway.common.errors import AuthenticationError
from onemin_gateway.config import Settings, get_settings
from onemin_gateway.middleware.rate_limit import RateLimiter
from onemin_gateway.services.gateway_service import GatewayService


def get_gateway_service(request: Request) -> GatewayService:
    """Get the process-wide gateway service"""
    return request.app.state.gateway_service


def get_rate_limiter(request: Request) -> RateLimiter:
    """Get the process-wide rate limiter"""
    return request.app.state.rate_limiter


def _extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    if authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return authorization.strip() or None


async def get_current_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    authorization: str = Header(None, description="Bearer token"),
    x_api_key: str = Header(None, description="Anthropic style API key", alias="x-api-key"),
) -> str:
    """
    Resolve the upstream 1min.ai API key for the current request

    When AUTH_TOKEN and ONE_MIN_API_KEY are both configured, the caller must
    present AUTH_TOKEN and the server-side key is used. Otherwise the caller's
    token is forwarded as the upstream key. x-api-key takes precedence.

    Raises:
        AuthenticationError: Token missing or not accepted
    """
    token = x_api_key or _extract_bearer_token(authorization)
    if not token:
        raise AuthenticationError(
            "Missing API key. Provide it via 'Authorization: Bearer <key>' or 'x-api-key'.",
            code="missing_api_key",
        )

    if settings.AUTH_TOKEN and settings.ONE_MIN_API_KEY:
        if not hmac.compare_digest(token.encode("utf-8"), settings.AUTH_TOKEN.encode("utf-8")):
            raise AuthenticationError("Invalid API key")
        return settings.ONE_MIN_API_KEY

    return token


# Dependency type aliases
GatewayServiceDep = Annotated[GatewayService, Depends(get_gateway_service)]
RateLimiterDep = Annotated[RateLimiter, Depends(get_rate_limiter)]
CurrentApiKey = Annotated[str, Depends(get_current_api_key)]
