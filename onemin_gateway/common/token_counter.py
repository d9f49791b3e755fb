"""
Token Counter Module

Token estimation for rate limiting and for usage fields the upstream does not report.
Uses tiktoken's cl100k_base encoding; any tokenizer failure falls back to a
word/character heuristic so counting never breaks a request.
"""

import logging
import math
from typing import Any, Optional

import tiktoken

from onemin_gateway.common.messages import extract_all_message_text

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "cl100k_base"

_encodings: dict[str, Any] = {}


def _get_encoding(name: str = DEFAULT_ENCODING) -> Any:
    """Get (and cache) a tiktoken encoder"""
    if name not in _encodings:
        _encodings[name] = tiktoken.get_encoding(name)
    return _encodings[name]


def estimate_token_count(text: str) -> int:
    """
    Heuristic token estimate

    max(ceil(words * 0.75), ceil(chars / 4))
    """
    if not text:
        return 0
    words = len(text.split())
    return max(math.ceil(words * 0.75), math.ceil(len(text) / 4))


def calculate_tokens(text: Optional[str], model: str = "") -> int:
    """
    Count tokens in text

    Args:
        text: Text to count
        model: Model name (all 1min.ai models share one tokenizer approximation)

    Returns:
        int: Token count
    """
    if not text:
        return 0
    try:
        return len(_get_encoding().encode(text))
    except Exception as e:
        logger.debug("tiktoken unavailable, using estimate: %s", e)
        return estimate_token_count(text)


def calculate_chat_request_tokens(body: dict[str, Any]) -> int:
    """Input tokens of a Chat Completions request"""
    messages = body.get("messages") if isinstance(body, dict) else None
    return calculate_tokens(extract_all_message_text(messages))


def calculate_responses_request_tokens(body: dict[str, Any]) -> int:
    """Input tokens of a Responses request (string input, item list or messages)"""
    if not isinstance(body, dict):
        return 0
    input_value = body.get("input")
    if isinstance(input_value, str):
        text = input_value
    elif isinstance(input_value, list):
        text = extract_all_message_text(input_value)
    else:
        text = extract_all_message_text(body.get("messages"))
    instructions = body.get("instructions")
    if isinstance(instructions, str) and instructions:
        text = f"{instructions} {text}".strip()
    return calculate_tokens(text)


def extract_anthropic_system_text(system: Any) -> str:
    """Flatten an Anthropic `system` field (string or text blocks)"""
    if isinstance(system, str):
        return system
    if isinstance(system, list):
        return "\n".join(
            block["text"]
            for block in system
            if isinstance(block, dict) and isinstance(block.get("text"), str)
        )
    return ""


def calculate_anthropic_request_tokens(body: dict[str, Any]) -> int:
    """Input tokens of an Anthropic Messages request, system prompt included"""
    if not isinstance(body, dict):
        return 0
    system_text = extract_anthropic_system_text(body.get("system"))
    messages_text = extract_all_message_text(body.get("messages"))
    return calculate_tokens(f"{system_text} {messages_text}".strip())


def calculate_image_request_tokens(body: dict[str, Any]) -> int:
    """Input tokens of an image generation prompt"""
    prompt = body.get("prompt") if isinstance(body, dict) else None
    return calculate_tokens(prompt if isinstance(prompt, str) else "")


def estimate_input_tokens(messages: Optional[list[Any]]) -> int:
    """Input tokens of an already-normalised message list"""
    return calculate_tokens(extract_all_message_text(messages))
