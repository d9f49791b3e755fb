"""
OpenAI Proxy API

Provides OpenAI-compatible API endpoints backed by 1min.ai.
"""

import json
from typing import Any, Callable

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse

from onemin_gateway.api.deps import CurrentApiKey, GatewayServiceDep, RateLimiterDep
from onemin_gateway.api.errors import error_response
from onemin_gateway.common.errors import AppError, ValidationError
from onemin_gateway.common.sse import SSE_HEADERS
from onemin_gateway.common.token_counter import (
    calculate_chat_request_tokens,
    calculate_image_request_tokens,
    calculate_responses_request_tokens,
)
from onemin_gateway.middleware.rate_limit import get_client_id
from onemin_gateway.services.gateway_service import GatewayResult

router = APIRouter(tags=["Proxy - OpenAI"])


async def read_json_body(request: Request) -> dict[str, Any]:
    """
    Parse the request body as a JSON object

    Raises:
        ValidationError: Body is not valid JSON or not an object
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError("Invalid JSON in request body", code="invalid_json") from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object", code="invalid_json")
    return body


def render_result(result: GatewayResult) -> Any:
    """Turn a gateway result into a JSON or SSE response"""
    if result.is_stream:
        return StreamingResponse(
            result.stream.stream(),
            media_type="text/event-stream",
            headers={**SSE_HEADERS, **result.headers},
        )
    return JSONResponse(content=result.body, headers=result.headers)


async def _handle(
    request: Request,
    api_key: str,
    limiter: RateLimiterDep,
    count_tokens: Callable[[dict[str, Any]], int],
    handler: Callable[..., Any],
) -> Any:
    try:
        body = await read_json_body(request)
        await limiter.check(get_client_id(request), count_tokens(body))
        result = await handler(body, api_key)
        return render_result(result)
    except AppError as e:
        return error_response(e)


@router.get("/v1/models")
async def list_models(service: GatewayServiceDep):
    """
    OpenAI Models API (List)

    Returns the 1min.ai chat and image models with capability flags.
    """
    try:
        return await service.list_models()
    except AppError as e:
        return error_response(e)


@router.post("/v1/chat/completions")
async def chat_completions(
    request: Request,
    api_key: CurrentApiKey,
    service: GatewayServiceDep,
    limiter: RateLimiterDep,
):
    """OpenAI Chat Completions"""
    return await _handle(
        request, api_key, limiter, calculate_chat_request_tokens, service.chat_completions
    )


@router.post("/v1/responses")
async def responses(
    request: Request,
    api_key: CurrentApiKey,
    service: GatewayServiceDep,
    limiter: RateLimiterDep,
):
    """OpenAI Responses (structured output and reasoning effort via prompting)"""
    return await _handle(
        request, api_key, limiter, calculate_responses_request_tokens, service.responses
    )


@router.post("/v1/images/generations")
async def images_generations(
    request: Request,
    api_key: CurrentApiKey,
    service: GatewayServiceDep,
    limiter: RateLimiterDep,
):
    """OpenAI Images"""
    return await _handle(
        request, api_key, limiter, calculate_image_request_tokens, service.images_generations
    )
