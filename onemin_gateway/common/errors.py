"""
Error Definitions

Defines custom exception classes used in the application for unified error handling.
Each error renders itself in the OpenAI error shape (`to_dict`) and in the
Anthropic error shape (`to_anthropic_dict`).
"""

from typing import Any, Optional


class AppError(Exception):
    """
    Application Base Exception

    Base class for all custom exceptions, containing error message, type, code and param.
    """

    # Error type used by the Anthropic error envelope
    anthropic_type = "api_error"

    def __init__(
        self,
        message: str,
        error_type: str = "internal_error",
        code: Optional[str] = "internal_error",
        param: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        status_code: int = 500,
    ):
        """
        Initialize exception

        Args:
            message: Error message
            error_type: Error type
            code: Error code
            param: Name of the offending request parameter
            details: Extra error details
            status_code: HTTP status code
        """
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.code = code
        self.param = param
        self.details = details or {}
        self.status_code = status_code

    def to_dict(self, include_details: bool = False) -> dict[str, Any]:
        """
        Convert to OpenAI error format

        Args:
            include_details: Attach `details` (debug mode only)

        Returns:
            dict: {"error": {"message", "type", "param", "code"}}
        """
        result: dict[str, Any] = {
            "error": {
                "message": self.message,
                "type": self.error_type,
                "param": self.param,
                "code": self.code,
            }
        }
        if include_details and self.details:
            result["error"]["details"] = self.details
        return result

    def to_anthropic_dict(self) -> dict[str, Any]:
        """
        Convert to Anthropic error format

        Returns:
            dict: {"type": "error", "error": {"type", "message"}}
        """
        return {
            "type": "error",
            "error": {
                "type": self.anthropic_type,
                "message": self.message,
            },
        }


class ValidationError(AppError):
    """
    Parameter Validation Error

    Raised when a request field is missing or malformed.
    """

    anthropic_type = "invalid_request_error"

    def __init__(
        self,
        message: str = "Validation failed",
        param: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            error_type="invalid_request_error",
            code=code,
            param=param,
            details=details,
            status_code=400,
        )


class ModelNotFoundError(AppError):
    """
    Model Not Found Error

    Raised when the requested model is absent from the model registry.
    """

    anthropic_type = "not_found_error"

    def __init__(self, model: str):
        super().__init__(
            message=f"The model '{model}' does not exist",
            error_type="invalid_request_error",
            code="model_not_found",
            param="model",
            details={"model": model},
            status_code=404,
        )
        self.model = model


class ModelNotSupportedError(AppError):
    """
    Capability Mismatch Error

    Raised when a request needs a capability (vision, code interpreter,
    image generation) the model does not have.
    """

    anthropic_type = "invalid_request_error"

    def __init__(self, model: str, capability: str):
        super().__init__(
            message=f"Model '{model}' does not support {capability}",
            error_type="invalid_request_error",
            code="model_not_supported",
            param="model",
            details={"model": model, "capability": capability},
            status_code=400,
        )
        self.model = model
        self.capability = capability


class AuthenticationError(AppError):
    """
    Authentication Error

    Raised when the bearer token is missing or invalid.
    """

    anthropic_type = "authentication_error"

    def __init__(
        self,
        message: str = "Authentication failed",
        code: str = "invalid_api_key",
    ):
        super().__init__(
            message=message,
            error_type="authentication_error",
            code=code,
            status_code=401,
        )


class RateLimitError(AppError):
    """
    Rate Limit Error

    Raised when a client exceeds its request or token budget.
    """

    anthropic_type = "rate_limit_error"

    def __init__(
        self,
        message: str = "Rate limit exceeded. Please try again later.",
        retry_after: Optional[int] = None,
    ):
        super().__init__(
            message=message,
            error_type="rate_limit_error",
            code="rate_limit_exceeded",
            details={"retry_after": retry_after} if retry_after else None,
            status_code=429,
        )
        self.retry_after = retry_after


class UpstreamApiError(AppError):
    """
    Upstream Service Error

    Raised when 1min.ai answers with a non-2xx status or cannot be reached.
    The upstream status is kept in `upstream_status`.
    """

    def __init__(
        self,
        upstream_status: int,
        status_text: str = "",
        message: Optional[str] = None,
        status_code: int = 502,
    ):
        super().__init__(
            message=message or f"1min.ai API error: {upstream_status} {status_text}".strip(),
            error_type="upstream_error",
            code="upstream_error",
            details={"upstream_status": upstream_status, "status_text": status_text},
            status_code=status_code,
        )
        self.upstream_status = upstream_status
        self.status_text = status_text


class UpstreamUnavailableError(AppError):
    """
    Upstream Unavailable Error

    Raised when the model list cannot be fetched and no cached copy exists.
    Retryable.
    """

    anthropic_type = "overloaded_error"

    def __init__(
        self,
        message: str = "Unable to fetch model list from upstream API. Please try again shortly.",
    ):
        super().__init__(
            message=message,
            error_type="service_unavailable",
            code="upstream_unavailable",
            status_code=503,
        )
