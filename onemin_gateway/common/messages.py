"""
Message Processing Helpers

Shared by the chat, responses and messages surfaces:
- text extraction from string or mixed text/image content
- single-pass image detection and normalisation
- rendering a message list into the 1min.ai prompt transcript
"""

from __future__ import annotations

from typing import Any, Optional

ROLE_PREFIXES = {
    "system": "System",
    "user": "Human",
    "assistant": "Assistant",
}


def extract_text_from_content(content: Any) -> str:
    """
    Extract text from message content (string or list of parts).

    Only `text` parts are kept, joined by newlines; image parts contribute nothing.
    """
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""

    parts: list[str] = []
    for item in content:
        if isinstance(item, dict) and item.get("type") == "text":
            text = item.get("text")
            if isinstance(text, str) and text:
                parts.append(text)
    return "\n".join(parts)


def extract_all_message_text(messages: Optional[list[Any]]) -> str:
    """
    Extract all text from a messages array (for token counting).

    Accepts OpenAI, Anthropic and internal message shapes.
    """
    if not isinstance(messages, list):
        return ""
    parts: list[str] = []
    for message in messages:
        if not isinstance(message, dict):
            continue
        content = message.get("content")
        if isinstance(content, str):
            parts.append(content)
        elif isinstance(content, list):
            for item in content:
                if isinstance(item, dict) and isinstance(item.get("text"), str):
                    parts.append(item["text"])
    return " ".join(parts)


def _image_url_of(item: Any) -> Optional[str]:
    if not isinstance(item, dict) or item.get("type") != "image_url":
        return None
    image_url = item.get("image_url")
    if isinstance(image_url, dict) and isinstance(image_url.get("url"), str):
        return image_url["url"] or None
    if isinstance(image_url, str):
        return image_url or None
    return None


def extract_image_urls(messages: Optional[list[Any]]) -> list[str]:
    """Ordered image URLs across a message batch"""
    if not isinstance(messages, list):
        return []
    urls: list[str] = []
    for message in messages:
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, list):
            continue
        for item in content:
            url = _image_url_of(item)
            if url:
                urls.append(url)
    return urls


def process_messages_with_image_check(
    messages: list[dict[str, Any]],
) -> tuple[list[dict[str, Any]], bool]:
    """
    Process messages in a single pass.

    Messages with at least one image part are rebuilt with image parts normalised
    to `{"type": "image_url", "image_url": {"url": ...}}`; order is preserved and
    text parts pass through. When no message has an image the input list itself
    is returned. Input messages are never mutated.

    Returns:
        tuple: (processed messages, has_images)
    """
    has_images = False
    processed: list[dict[str, Any]] = []

    for message in messages:
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, list) and any(_image_url_of(item) for item in content):
            has_images = True
            new_content: list[Any] = []
            for item in content:
                url = _image_url_of(item)
                if url:
                    new_content.append({"type": "image_url", "image_url": {"url": url}})
                else:
                    new_content.append(item)
            rewritten = {"role": message.get("role"), "content": new_content}
            if "name" in message:
                rewritten["name"] = message["name"]
            processed.append(rewritten)
        else:
            processed.append(message)

    if not has_images:
        return messages, False
    return processed, True


def format_conversation_history(messages: list[dict[str, Any]], new_input: str = "") -> str:
    """
    Render messages into the transcript format expected by 1min.ai.

    Each turn is prefixed with System:/Human:/Assistant: and followed by a blank
    line. Unknown roles are skipped. `new_input` is appended as a final Human turn.
    """
    history = ""
    for message in messages:
        prefix = ROLE_PREFIXES.get(message.get("role"))
        if prefix is None:
            continue
        history += f"{prefix}: {extract_text_from_content(message.get('content'))}\n\n"

    if new_input:
        history += f"Human: {new_input}\n\n"

    return history
