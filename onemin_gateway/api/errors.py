"""
Error Response Rendering

Renders AppError in the caller's protocol shape.
"""

from fastapi.responses import JSONResponse

from onemin_gateway.common.errors import AppError, RateLimitError
from onemin_gateway.config import get_settings

ANTHROPIC_PATH_PREFIX = "/v1/messages"


def error_response(exc: AppError, anthropic: bool = False) -> JSONResponse:
    """
    Build the JSON error response

    Args:
        exc: Application error
        anthropic: Use the Anthropic error envelope instead of the OpenAI one
    """
    headers = {}
    if isinstance(exc, RateLimitError) and exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)

    content = (
        exc.to_anthropic_dict()
        if anthropic
        else exc.to_dict(include_details=get_settings().DEBUG)
    )
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


def is_anthropic_path(path: str) -> bool:
    return path.startswith(ANTHROPIC_PATH_PREFIX)
