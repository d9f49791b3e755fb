"""
Anthropic Compatible Proxy API

Provides the Anthropic Messages endpoint backed by 1min.ai.
Errors use the Anthropic error envelope.
"""

from typing import Any

from fastapi import APIRouter, Request

from onemin_gateway.api.deps import CurrentApiKey, GatewayServiceDep, RateLimiterDep
from onemin_gateway.api.errors import error_response
from onemin_gateway.api.proxy.openai import read_json_body, render_result
from onemin_gateway.common.errors import AppError
from onemin_gateway.common.token_counter import calculate_anthropic_request_tokens
from onemin_gateway.middleware.rate_limit import get_client_id

router = APIRouter(tags=["Proxy - Anthropic"])


@router.post("/v1/messages")
async def messages(
    request: Request,
    api_key: CurrentApiKey,
    service: GatewayServiceDep,
    limiter: RateLimiterDep,
) -> Any:
    """
    Anthropic Messages

    Supports normal and streaming requests.
    """
    try:
        body = await read_json_body(request)
        await limiter.check(get_client_id(request), calculate_anthropic_request_tokens(body))
        result = await service.messages(body, api_key)
        return render_result(result)
    except AppError as e:
        return error_response(e, anthropic=True)
