"""
Response Transformers

Pure functions mapping 1min.ai results onto the surface protocols:
OpenAI Chat Completions, OpenAI Responses, Anthropic Messages and OpenAI Images.
"""

import json
import logging
import uuid
from typing import Any, Optional

from onemin_gateway.common.errors import AppError
from onemin_gateway.common.time import unix_seconds
from onemin_gateway.common.token_counter import calculate_tokens, estimate_input_tokens
from onemin_gateway.domain.model import CachedModelData

logger = logging.getLogger(__name__)

NO_RESPONSE_TEXT = "No response generated"
DEFAULT_OWNER = "1min-ai"
JSON_RESPONSE_FORMATS = ("json_object", "json_schema")


def new_chat_completion_id() -> str:
    return f"chatcmpl-{uuid.uuid4()}"


def new_response_id() -> str:
    return f"resp-{uuid.uuid4()}"


def new_output_message_id() -> str:
    return f"msg-{uuid.uuid4()}"


def new_anthropic_message_id() -> str:
    return f"msg_{uuid.uuid4().hex[:20]}"


def _ai_record_results(data: Any) -> Any:
    if not isinstance(data, dict):
        return None
    record = data.get("aiRecord")
    if not isinstance(record, dict):
        return None
    detail = record.get("aiRecordDetail")
    if not isinstance(detail, dict):
        return None
    return detail.get("resultObject")


def extract_onemin_content(data: Any) -> str:
    """
    Extract the assistant text from a 1min.ai result

    `aiRecord.aiRecordDetail.resultObject[0]`, then `content`, then a fixed placeholder.
    """
    results = _ai_record_results(data)
    if isinstance(results, list) and results and results[0]:
        return str(results[0])
    if isinstance(results, str) and results:
        return results
    if isinstance(data, dict) and data.get("content"):
        return str(data["content"])
    return NO_RESPONSE_TEXT


def _upstream_usage(data: Any) -> dict[str, Any]:
    usage = data.get("usage") if isinstance(data, dict) else None
    return usage if isinstance(usage, dict) else {}


def to_chat_completion(data: dict[str, Any], model: str) -> dict[str, Any]:
    """Build an OpenAI `chat.completion` object"""
    usage = _upstream_usage(data)
    return {
        "id": new_chat_completion_id(),
        "object": "chat.completion",
        "created": unix_seconds(),
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": extract_onemin_content(data)},
                "finish_reason": "stop",
            }
        ],
        "usage": {
            "prompt_tokens": usage.get("prompt_tokens") or 0,
            "completion_tokens": usage.get("completion_tokens") or 0,
            "total_tokens": usage.get("total_tokens") or 0,
        },
    }


def build_output_message(text: str, message_id: str, status: str = "completed") -> dict[str, Any]:
    """Responses API output item holding one output_text part"""
    return {
        "type": "message",
        "id": message_id,
        "role": "assistant",
        "content": [{"type": "output_text", "text": text}],
        "status": status,
    }


def to_responses_response(
    data: dict[str, Any],
    model: str,
    response_format: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """
    Build an OpenAI Responses object with a single completed message item

    JSON response formats are re-serialised when the text parses as JSON.
    """
    content = extract_onemin_content(data)
    if isinstance(response_format, dict) and response_format.get("type") in JSON_RESPONSE_FORMATS:
        try:
            content = json.dumps(json.loads(content), ensure_ascii=False)
        except ValueError:
            logger.warning("Failed to parse response as JSON")

    usage = _upstream_usage(data)
    return {
        "id": new_response_id(),
        "object": "response",
        "created_at": unix_seconds(),
        "model": model,
        "output": [build_output_message(content, new_output_message_id())],
        "status": "completed",
        "usage": {
            "input_tokens": usage.get("prompt_tokens") or 0,
            "output_tokens": usage.get("completion_tokens") or 0,
            "total_tokens": usage.get("total_tokens") or 0,
        },
    }


def to_anthropic_message(
    data: dict[str, Any],
    model: str,
    messages: list[dict[str, Any]],
) -> dict[str, Any]:
    """
    Build an Anthropic `message` object

    Usage comes from upstream when reported, otherwise it is estimated.
    """
    content = extract_onemin_content(data)
    usage = _upstream_usage(data)
    input_tokens = usage.get("prompt_tokens") or estimate_input_tokens(messages)
    output_tokens = usage.get("completion_tokens") or calculate_tokens(content, model)
    return {
        "id": new_anthropic_message_id(),
        "type": "message",
        "role": "assistant",
        "content": [{"type": "text", "text": content}],
        "model": model,
        "stop_reason": "end_turn",
        "stop_sequence": None,
        "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
    }


def to_image_generation_response(data: dict[str, Any]) -> dict[str, Any]:
    """
    Build an OpenAI Images response from the generated URLs

    Raises:
        AppError: No image URLs in the upstream result (500)
    """
    results = _ai_record_results(data)
    if isinstance(results, str):
        results = [results]
    urls = [url for url in results if isinstance(url, str) and url] if isinstance(results, list) else []
    if not urls:
        raise AppError(
            message="No image URLs found in API response",
            error_type="api_error",
            code="no_image_urls",
            status_code=500,
        )
    return {
        "created": unix_seconds(),
        "data": [{"url": url} for url in urls],
    }


def to_model_list(data: CachedModelData) -> dict[str, Any]:
    """Project the capability index onto the OpenAI models list"""
    chat_ids = set(data.chat_model_ids)
    vision_ids = set(data.vision_model_ids)
    code_ids = set(data.code_interpreter_model_ids)
    created = data.fetched_at // 1000

    return {
        "object": "list",
        "data": [
            {
                "id": entry.model_id,
                "object": "model",
                "created": created,
                "owned_by": entry.provider or DEFAULT_OWNER,
                "permission": [],
                "root": entry.model_id,
                "parent": None,
                "capabilities": {
                    "vision": entry.model_id in vision_ids,
                    "code_interpreter": entry.model_id in code_ids,
                    "retrieval": entry.model_id in chat_ids,
                },
            }
            for entry in data.entries
        ],
    }
