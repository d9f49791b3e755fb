"""
Gateway Service Module

Orchestrates one request per surface protocol:
validation -> upstream payload -> upstream call -> transformer or stream relay.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from onemin_gateway.common.errors import ModelNotFoundError, ModelNotSupportedError, ValidationError
from onemin_gateway.common.messages import process_messages_with_image_check
from onemin_gateway.common.model_parser import parse_and_get_config
from onemin_gateway.common.token_counter import estimate_input_tokens
from onemin_gateway.config import Settings, get_settings
from onemin_gateway.domain.upstream import WebSearchConfig
from onemin_gateway.services.model_registry import ModelRegistry
from onemin_gateway.services.onemin_client import DEGRADED_HEADER, OneMinClient
from onemin_gateway.services.stream_relay import StreamProtocol, StreamRelay, create_formatter
from onemin_gateway.services.transformers import (
    to_anthropic_message,
    to_chat_completion,
    to_image_generation_response,
    to_model_list,
    to_responses_response,
)

logger = logging.getLogger(__name__)

STRUCTURE_PROMPTS = {
    "json_object": (
        "Please respond with a valid JSON object only. "
        "Do not include any text outside the JSON structure."
    ),
    "text": "Please provide a clear and structured text response.",
}

REASONING_EFFORT_PROMPTS = {
    "low": "Provide a direct and concise response.",
    "medium": "Think through the problem step by step and provide a well-reasoned response.",
    "high": (
        "Carefully analyze all aspects of the problem, consider multiple perspectives, "
        "and provide a thoroughly reasoned response with detailed explanations."
    ),
}


@dataclass
class ValidatedRequest:
    """Outcome of the per-request model and message checks"""

    model: str
    messages: list[dict[str, Any]]
    has_images: bool = False
    web_search_config: Optional[WebSearchConfig] = None


@dataclass
class GatewayResult:
    """Either a JSON body or an SSE stream, plus headers for the client"""

    body: Optional[dict[str, Any]] = None
    stream: Optional[StreamRelay] = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def is_stream(self) -> bool:
        return self.stream is not None


def _passthrough_headers(response: httpx.Response) -> dict[str, str]:
    if response.headers.get(DEGRADED_HEADER):
        return {DEGRADED_HEADER: "true"}
    return {}


def convert_responses_input(input_value: Any, instructions: Optional[str] = None) -> list[dict[str, Any]]:
    """
    Convert Responses API `input` to chat messages

    Instructions become a leading system message; a string input becomes one
    user message; `message` items keep their role with text parts joined.
    """
    messages: list[dict[str, Any]] = []
    if instructions:
        messages.append({"role": "system", "content": instructions})

    if isinstance(input_value, str):
        messages.append({"role": "user", "content": input_value})
        return messages

    for item in input_value or []:
        if not isinstance(item, dict):
            continue
        # Items without an explicit type are treated as easy-input messages
        if item.get("type", "message") != "message":
            continue
        content = item.get("content")
        if isinstance(content, list):
            content = "\n".join(
                part["text"]
                for part in content
                if isinstance(part, dict)
                and part.get("type") in ("text", "input_text", "output_text")
                and part.get("text")
            )
        messages.append({"role": item.get("role", "user"), "content": content or ""})
    return messages


def enhance_messages_for_structured_response(
    messages: list[dict[str, Any]],
    response_format: Optional[dict[str, Any]] = None,
    reasoning_effort: Optional[str] = None,
) -> list[dict[str, Any]]:
    """
    Add output-format instructions to the system prompt

    Only applies when `response_format` is given. Returns a new list.
    """
    enhanced = list(messages)
    if not isinstance(response_format, dict):
        return enhanced

    format_type = response_format.get("type")
    if format_type == "json_schema":
        schema = response_format.get("json_schema") or {}
        structure_prompt = (
            "Please respond with a valid JSON object that strictly follows this schema: "
            f"{json.dumps(schema.get('schema'), ensure_ascii=False)}. "
            f"The response should be named \"{schema.get('name', '')}\". "
            f"{schema.get('description') or ''}"
        )
    else:
        structure_prompt = STRUCTURE_PROMPTS.get(format_type, STRUCTURE_PROMPTS["text"])

    if reasoning_effort in REASONING_EFFORT_PROMPTS:
        structure_prompt += f" {REASONING_EFFORT_PROMPTS[reasoning_effort]}"

    for index, message in enumerate(enhanced):
        if message.get("role") == "system":
            if isinstance(message.get("content"), str):
                enhanced[index] = {
                    "role": "system",
                    "content": f"{message['content']}\n\n{structure_prompt}",
                }
            return enhanced

    enhanced.insert(0, {"role": "system", "content": structure_prompt})
    return enhanced


def require_message_objects(messages: list[Any]) -> None:
    """
    Reject message arrays holding anything but objects

    Raises:
        ValidationError: An item is not a JSON object
    """
    for index, message in enumerate(messages):
        if not isinstance(message, dict):
            raise ValidationError(f"messages[{index}] must be an object", param="messages")


def convert_anthropic_messages(messages: list[Any], system: Any = None) -> list[dict[str, Any]]:
    """
    Convert Anthropic messages (and `system`) to internal messages

    Text and tool_result blocks become text; image blocks with a URL or
    base64 source become image_url parts.
    """
    internal: list[dict[str, Any]] = []
    if system:
        system_text = (
            system
            if isinstance(system, str)
            else "\n".join(b.get("text", "") for b in system if isinstance(b, dict))
        )
        internal.append({"role": "system", "content": system_text})

    for message in messages:
        if not isinstance(message, dict):
            continue
        content = message.get("content")
        if isinstance(content, list):
            content = _convert_anthropic_blocks(content)
        internal.append({"role": message.get("role"), "content": content or ""})
    return internal


def _convert_anthropic_blocks(blocks: list[Any]) -> str | list[dict[str, Any]]:
    texts: list[str] = []
    images: list[str] = []
    for block in blocks:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text" and isinstance(block.get("text"), str):
            texts.append(block["text"])
        elif block_type == "tool_result":
            result = block.get("content")
            if isinstance(result, str):
                texts.append(result)
            elif isinstance(result, list):
                texts.append(
                    "\n".join(b.get("text", "") for b in result if isinstance(b, dict))
                )
        elif block_type == "image":
            source = block.get("source") or {}
            if source.get("type") == "url" and source.get("url"):
                images.append(source["url"])
            elif source.get("type") == "base64" and source.get("data"):
                media_type = source.get("media_type", "image/png")
                images.append(f"data:{media_type};base64,{source['data']}")

    text = "\n".join(texts)
    if not images:
        return text
    parts: list[dict[str, Any]] = [{"type": "text", "text": text}] if text else []
    parts.extend({"type": "image_url", "image_url": {"url": url}} for url in images)
    return parts


class GatewayService:
    """
    Gateway Service

    One instance per process; holds the registry and the upstream client.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        client: OneMinClient,
        settings: Optional[Settings] = None,
    ):
        self.registry = registry
        self.client = client
        self.settings = settings or get_settings()

    async def validate_model_and_messages(
        self,
        raw_model: Any,
        messages: list[dict[str, Any]],
    ) -> ValidatedRequest:
        """
        Validate model name and process messages in one step

        Performs a single registry lookup before any side-effecting work.

        Raises:
            ValidationError: Malformed model name or message item
            ModelNotFoundError: Model unknown to the registry
            ModelNotSupportedError: Images sent to a non-vision model
        """
        require_message_objects(messages)
        parsed = parse_and_get_config(raw_model or self.settings.DEFAULT_MODEL, self.settings)
        if parsed.error:
            raise ValidationError(parsed.error, param="model", code="model_not_found")

        model = parsed.clean_model
        data = await self.registry.get_model_data()
        if model not in data.chat_model_ids and model not in data.image_model_ids:
            raise ModelNotFoundError(model)

        processed, has_images = process_messages_with_image_check(messages)
        if has_images and model not in data.vision_model_ids:
            raise ModelNotSupportedError(model, "image inputs")

        return ValidatedRequest(
            model=model,
            messages=processed,
            has_images=has_images,
            web_search_config=parsed.web_search_config,
        )

    async def _run_chat(
        self,
        validated: ValidatedRequest,
        messages: list[dict[str, Any]],
        stream: bool,
        api_key: Optional[str],
    ) -> httpx.Response:
        build = (
            self.client.build_streaming_chat_request_body
            if stream
            else self.client.build_chat_request_body
        )
        body = await build(messages, validated.model, api_key, validated.web_search_config)
        logger.info(
            "Forwarding %s request: model=%s stream=%s web_search=%s",
            body.type.value,
            validated.model,
            stream,
            validated.web_search_config is not None,
        )
        return await self.client.send_chat_request(body, stream, api_key)

    def _relay(
        self,
        response: httpx.Response,
        protocol: StreamProtocol,
        model: str,
        input_tokens: int = 0,
    ) -> GatewayResult:
        relay = StreamRelay(
            response.aiter_bytes(),
            create_formatter(protocol, model, input_tokens),
            queue_size=self.settings.STREAM_QUEUE_SIZE,
            on_close=response.aclose,
        )
        return GatewayResult(stream=relay, headers=_passthrough_headers(response))

    async def chat_completions(self, body: dict[str, Any], api_key: Optional[str]) -> GatewayResult:
        """OpenAI Chat Completions"""
        messages = body.get("messages")
        if not isinstance(messages, list):
            raise ValidationError(
                "Messages field is required and must be an array", param="messages"
            )

        validated = await self.validate_model_and_messages(body.get("model"), messages)
        response = await self._run_chat(validated, validated.messages, bool(body.get("stream")), api_key)

        if body.get("stream"):
            return self._relay(response, StreamProtocol.OPENAI_CHAT, validated.model)

        data = await self.client.read_json(response)
        return GatewayResult(
            body=to_chat_completion(data, validated.model),
            headers=_passthrough_headers(response),
        )

    async def responses(self, body: dict[str, Any], api_key: Optional[str]) -> GatewayResult:
        """OpenAI Responses"""
        input_value = body.get("input")
        instructions = body.get("instructions")
        if input_value:
            if not isinstance(input_value, (str, list)):
                raise ValidationError('"input" must be a string or an array', param="input")
            messages = convert_responses_input(input_value, instructions)
        elif isinstance(body.get("messages"), list):
            messages = list(body["messages"])
            if instructions:
                messages.insert(0, {"role": "system", "content": instructions})
        else:
            raise ValidationError(
                'Either "input" field (string or array) or "messages" field (array) is required',
                param="input",
            )

        validated = await self.validate_model_and_messages(body.get("model"), messages)
        response_format = body.get("response_format")
        enhanced = enhance_messages_for_structured_response(
            validated.messages, response_format, body.get("reasoning_effort")
        )
        response = await self._run_chat(validated, enhanced, bool(body.get("stream")), api_key)

        if body.get("stream"):
            return self._relay(
                response,
                StreamProtocol.OPENAI_RESPONSES,
                validated.model,
                estimate_input_tokens(validated.messages),
            )

        data = await self.client.read_json(response)
        return GatewayResult(
            body=to_responses_response(data, validated.model, response_format),
            headers=_passthrough_headers(response),
        )

    async def messages(self, body: dict[str, Any], api_key: Optional[str]) -> GatewayResult:
        """Anthropic Messages"""
        if not isinstance(body.get("messages"), list):
            raise ValidationError("messages: Field required", param="messages")
        max_tokens = body.get("max_tokens")
        if not isinstance(max_tokens, int) or isinstance(max_tokens, bool) or max_tokens <= 0:
            raise ValidationError("max_tokens: Field required", param="max_tokens")
        require_message_objects(body["messages"])
        system = body.get("system")
        if system is not None and not isinstance(system, (str, list)):
            raise ValidationError(
                "system: Input should be a string or an array of content blocks", param="system"
            )

        internal = convert_anthropic_messages(body["messages"], system)
        validated = await self.validate_model_and_messages(body.get("model"), internal)
        response = await self._run_chat(validated, validated.messages, bool(body.get("stream")), api_key)

        if body.get("stream"):
            return self._relay(
                response,
                StreamProtocol.ANTHROPIC,
                validated.model,
                estimate_input_tokens(validated.messages),
            )

        data = await self.client.read_json(response)
        return GatewayResult(
            body=to_anthropic_message(data, validated.model, validated.messages),
            headers=_passthrough_headers(response),
        )

    async def images_generations(self, body: dict[str, Any], api_key: Optional[str]) -> GatewayResult:
        """OpenAI Images"""
        prompt = body.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValidationError("Prompt field is required", param="prompt")

        model = body.get("model") or self.settings.DEFAULT_IMAGE_MODEL
        if not await self.registry.is_image_generation_model(model):
            raise ModelNotSupportedError(model, "image generation")

        n = body.get("n")
        if n is not None and (not isinstance(n, int) or isinstance(n, bool) or n < 1):
            raise ValidationError("n must be a positive integer", param="n")

        request_body = self.client.build_image_request_body(prompt, model, n, body.get("size"))
        data = await self.client.send_image_request(request_body, api_key)
        return GatewayResult(body=to_image_generation_response(data))

    async def list_models(self) -> dict[str, Any]:
        """OpenAI models list with capability flags"""
        return to_model_list(await self.registry.get_model_data())
