"""
Unit tests for request orchestration across the surface protocols
"""

import base64
import json

import httpx
import pytest

from conftest import PNG_BYTES, result_body
from onemin_gateway.common.errors import (
    AppError,
    ModelNotFoundError,
    ModelNotSupportedError,
    UpstreamApiError,
    ValidationError,
)
from onemin_gateway.services.gateway_service import (
    REASONING_EFFORT_PROMPTS,
    STRUCTURE_PROMPTS,
    convert_anthropic_messages,
    convert_responses_input,
    enhance_messages_for_structured_response,
)
from onemin_gateway.services.onemin_client import DEGRADED_HEADER

USER_HI = [{"role": "user", "content": "hi"}]
IMAGE_MESSAGE = {
    "role": "user",
    "content": [
        {"type": "text", "text": "What is this?"},
        {"type": "image_url", "image_url": {"url": "https://images.example.com/cat.png"}},
    ],
}


async def _frames(result) -> bytes:
    return b"".join([frame async for frame in result.stream.stream()])


class TestValidation:
    """Tests for model and message validation"""

    @pytest.mark.asyncio
    async def test_unknown_model(self, gateway, upstream):
        with pytest.raises(ModelNotFoundError) as exc_info:
            await gateway.chat_completions({"model": "nope", "messages": USER_HI}, "key")

        assert exc_info.value.status_code == 404
        assert upstream.requests_to("/api/features") == []

    @pytest.mark.asyncio
    async def test_malformed_model_name(self, gateway):
        with pytest.raises(ValidationError) as exc_info:
            await gateway.chat_completions({"model": "gpt-4o-mini:beta", "messages": USER_HI}, "key")

        assert exc_info.value.param == "model"
        assert exc_info.value.code == "model_not_found"

    @pytest.mark.asyncio
    async def test_non_object_message_rejected_before_lookup(self, gateway, upstream):
        with pytest.raises(ValidationError) as exc_info:
            await gateway.validate_model_and_messages("gpt-4o-mini", [{"role": "user", "content": "a"}, "b"])

        assert exc_info.value.param == "messages"
        assert exc_info.value.message == "messages[1] must be an object"
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_images_require_vision_model(self, gateway, upstream):
        with pytest.raises(ModelNotSupportedError) as exc_info:
            await gateway.chat_completions(
                {"model": "open-mistral-nemo", "messages": [IMAGE_MESSAGE]}, "key"
            )

        assert exc_info.value.capability == "image inputs"
        assert upstream.requests_to("/api/assets") == []
        assert upstream.requests_to("/api/features") == []

    @pytest.mark.asyncio
    async def test_image_model_accepted_for_lookup(self, gateway):
        validated = await gateway.validate_model_and_messages(
            "black-forest-labs/flux-schnell", USER_HI
        )
        assert validated.model == "black-forest-labs/flux-schnell"
        assert validated.has_images is False

    @pytest.mark.asyncio
    async def test_online_suffix_sets_web_search(self, gateway):
        validated = await gateway.validate_model_and_messages("gpt-4o-mini:online", USER_HI)
        assert validated.model == "gpt-4o-mini"
        assert validated.web_search_config.web_search is True


class TestChatCompletions:
    """Tests for the Chat Completions surface"""

    @pytest.mark.asyncio
    async def test_messages_required(self, gateway):
        with pytest.raises(ValidationError) as exc_info:
            await gateway.chat_completions({"model": "gpt-4o-mini"}, "key")
        assert exc_info.value.message == "Messages field is required and must be an array"

    @pytest.mark.asyncio
    async def test_non_streaming(self, gateway, upstream):
        result = await gateway.chat_completions(
            {
                "model": "gpt-4o-mini",
                "messages": [{"role": "system", "content": "Be brief"}, *USER_HI],
            },
            "key",
        )

        assert result.is_stream is False
        assert result.body["choices"][0]["message"]["content"] == "Hello from 1min"
        assert result.headers == {}
        (payload,) = upstream.feature_payloads()
        assert payload["type"] == "CHAT_WITH_AI"
        assert payload["model"] == "gpt-4o-mini"
        assert payload["promptObject"]["prompt"] == "System: Be brief\n\nHuman: hi\n\n"
        assert payload["promptObject"]["webSearch"] is False

    @pytest.mark.asyncio
    async def test_default_model(self, gateway, upstream):
        result = await gateway.chat_completions({"messages": USER_HI}, "key")

        assert result.body["model"] == "open-mistral-nemo"
        assert upstream.feature_payloads()[0]["model"] == "open-mistral-nemo"

    @pytest.mark.asyncio
    async def test_online_model_payload(self, gateway, upstream):
        await gateway.chat_completions({"model": "gpt-4o-mini:online", "messages": USER_HI}, "key")

        prompt_object = upstream.feature_payloads()[0]["promptObject"]
        assert prompt_object["webSearch"] is True
        assert prompt_object["numOfSite"] == 1
        assert prompt_object["maxWord"] == 500

    @pytest.mark.asyncio
    async def test_degraded_header_passthrough(self, gateway, upstream):
        upstream.feature_replies.append(lambda: httpx.Response(400))

        result = await gateway.chat_completions(
            {"model": "gpt-4o-mini:online", "messages": USER_HI}, "key"
        )

        assert result.headers == {DEGRADED_HEADER: "true"}
        assert result.body["choices"][0]["message"]["content"] == "Hello from 1min"

    @pytest.mark.asyncio
    async def test_vision_request_uses_uploaded_images(self, gateway, upstream):
        await gateway.chat_completions({"model": "gpt-4o-mini", "messages": [IMAGE_MESSAGE]}, "key")

        (payload,) = upstream.feature_payloads()
        assert payload["type"] == "CHAT_WITH_IMAGE"
        assert payload["promptObject"]["imageList"] == ["images/2024/upload.png"]
        assert payload["promptObject"]["prompt"] == "Human: What is this?\n\n"

    @pytest.mark.asyncio
    async def test_streaming(self, gateway, upstream):
        result = await gateway.chat_completions(
            {"model": "gpt-4o-mini", "messages": USER_HI, "stream": True}, "key"
        )

        assert result.is_stream is True
        body = await _frames(result)
        assert b'"content": "Hello world"' in body
        assert body.endswith(b"data: [DONE]\n\n")
        assert upstream.requests_to("/api/features")[0].url.params["isStreaming"] == "true"

    @pytest.mark.asyncio
    async def test_upstream_error(self, gateway, upstream):
        upstream.feature_replies.append(lambda: httpx.Response(500))

        with pytest.raises(UpstreamApiError):
            await gateway.chat_completions({"model": "gpt-4o-mini", "messages": USER_HI}, "key")


class TestResponses:
    """Tests for the Responses surface"""

    @pytest.mark.asyncio
    async def test_input_required(self, gateway):
        with pytest.raises(ValidationError) as exc_info:
            await gateway.responses({"model": "gpt-4o-mini"}, "key")
        assert exc_info.value.message == (
            'Either "input" field (string or array) or "messages" field (array) is required'
        )

    @pytest.mark.asyncio
    async def test_string_input_with_instructions(self, gateway, upstream):
        result = await gateway.responses(
            {"model": "gpt-4o-mini", "input": "hi", "instructions": "Be brief"}, "key"
        )

        assert result.body["output"][0]["content"][0]["text"] == "Hello from 1min"
        prompt = upstream.feature_payloads()[0]["promptObject"]["prompt"]
        assert prompt == "System: Be brief\n\nHuman: hi\n\n"

    @pytest.mark.asyncio
    async def test_messages_field(self, gateway, upstream):
        await gateway.responses({"model": "gpt-4o-mini", "messages": USER_HI}, "key")
        assert upstream.feature_payloads()[0]["promptObject"]["prompt"] == "Human: hi\n\n"

    @pytest.mark.asyncio
    async def test_json_format_adds_instructions(self, gateway, upstream):
        upstream.chat_text = '{"ok": true}'

        result = await gateway.responses(
            {
                "model": "gpt-4o-mini",
                "input": "status?",
                "response_format": {"type": "json_object"},
                "reasoning_effort": "low",
            },
            "key",
        )

        prompt = upstream.feature_payloads()[0]["promptObject"]["prompt"]
        assert prompt.startswith(f"System: {STRUCTURE_PROMPTS['json_object']} {REASONING_EFFORT_PROMPTS['low']}")
        assert json.loads(result.body["output"][0]["content"][0]["text"]) == {"ok": True}

    @pytest.mark.asyncio
    async def test_streaming(self, gateway):
        result = await gateway.responses({"model": "gpt-4o-mini", "input": "hi", "stream": True}, "key")

        body = await _frames(result)
        assert b"event: response.created" in body
        assert b"event: response.done" in body
        assert body.endswith(b"data: [DONE]\n\n")


class TestMessages:
    """Tests for the Anthropic Messages surface"""

    @pytest.mark.asyncio
    async def test_messages_required(self, gateway):
        with pytest.raises(ValidationError) as exc_info:
            await gateway.messages({"model": "claude-3-5-haiku", "max_tokens": 10}, "key")
        assert exc_info.value.message == "messages: Field required"

    @pytest.mark.asyncio
    async def test_max_tokens_required(self, gateway):
        for max_tokens in (None, 0, "10", True):
            with pytest.raises(ValidationError) as exc_info:
                await gateway.messages(
                    {"model": "claude-3-5-haiku", "messages": USER_HI, "max_tokens": max_tokens}, "key"
                )
            assert exc_info.value.message == "max_tokens: Field required"

    @pytest.mark.asyncio
    async def test_non_streaming_with_system(self, gateway, upstream):
        result = await gateway.messages(
            {
                "model": "claude-3-5-haiku",
                "max_tokens": 100,
                "system": "Be brief",
                "messages": [{"role": "user", "content": [{"type": "text", "text": "hi"}]}],
            },
            "key",
        )

        assert result.body["type"] == "message"
        assert result.body["content"] == [{"type": "text", "text": "Hello from 1min"}]
        assert upstream.feature_payloads()[0]["promptObject"]["prompt"] == "System: Be brief\n\nHuman: hi\n\n"

    @pytest.mark.asyncio
    async def test_streaming(self, gateway):
        result = await gateway.messages(
            {"model": "claude-3-5-haiku", "max_tokens": 100, "messages": USER_HI, "stream": True}, "key"
        )

        body = await _frames(result)
        assert body.startswith(b"event: message_start")
        assert body.endswith(b'event: message_stop\ndata: {"type": "message_stop"}\n\n')
        assert b"[DONE]" not in body

    @pytest.mark.asyncio
    async def test_base64_image_block(self, gateway, upstream):
        encoded = base64.b64encode(PNG_BYTES).decode()
        await gateway.messages(
            {
                "model": "gpt-4o-mini",
                "max_tokens": 100,
                "messages": [
                    {
                        "role": "user",
                        "content": [
                            {"type": "image", "source": {"type": "base64", "media_type": "image/png", "data": encoded}},
                            {"type": "text", "text": "Describe"},
                        ],
                    }
                ],
            },
            "key",
        )

        assert upstream.feature_payloads()[0]["type"] == "CHAT_WITH_IMAGE"


class TestImagesGenerations:
    """Tests for the Images surface"""

    @pytest.mark.asyncio
    async def test_success(self, gateway, upstream):
        result = await gateway.images_generations({"prompt": "a red fox", "n": 1}, "key")

        assert result.body["data"] == [{"url": "https://cdn.1min.ai/generated/1.png"}]
        payload = upstream.feature_payloads()[0]
        assert payload["model"] == "black-forest-labs/flux-schnell"
        assert payload["promptObject"] == {"prompt": "a red fox", "n": 1, "size": "1024x1024"}

    @pytest.mark.asyncio
    async def test_prompt_required(self, gateway):
        with pytest.raises(ValidationError) as exc_info:
            await gateway.images_generations({"prompt": "  "}, "key")
        assert exc_info.value.message == "Prompt field is required"

    @pytest.mark.asyncio
    async def test_chat_model_rejected(self, gateway):
        with pytest.raises(ModelNotSupportedError) as exc_info:
            await gateway.images_generations({"prompt": "fox", "model": "gpt-4o-mini"}, "key")
        assert exc_info.value.capability == "image generation"

    @pytest.mark.asyncio
    async def test_invalid_n(self, gateway):
        with pytest.raises(ValidationError):
            await gateway.images_generations({"prompt": "fox", "n": 0}, "key")

    @pytest.mark.asyncio
    async def test_no_urls_is_server_error(self, gateway, upstream):
        upstream.feature_replies.append(lambda: httpx.Response(200, json=result_body()))

        with pytest.raises(AppError) as exc_info:
            await gateway.images_generations({"prompt": "fox"}, "key")
        assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_list_models(gateway):
    listing = await gateway.list_models()
    ids = [item["id"] for item in listing["data"]]
    assert ids == ["gpt-4o-mini", "open-mistral-nemo", "claude-3-5-haiku", "black-forest-labs/flux-schnell"]


class TestConversions:
    """Tests for request-shape conversions"""

    def test_responses_input_items(self):
        messages = convert_responses_input(
            [
                {"role": "user", "content": [{"type": "input_text", "text": "a"}, {"type": "input_text", "text": "b"}]},
                {"type": "function_call", "name": "skip"},
                {"type": "message", "role": "assistant", "content": "c"},
            ],
            "sys",
        )
        assert messages == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "a\nb"},
            {"role": "assistant", "content": "c"},
        ]

    def test_enhance_without_format_is_noop(self):
        enhanced = enhance_messages_for_structured_response(USER_HI, None, "high")
        assert enhanced == USER_HI
        assert enhanced is not USER_HI

    def test_enhance_appends_to_existing_system(self):
        messages = [{"role": "system", "content": "Be brief"}, *USER_HI]
        enhanced = enhance_messages_for_structured_response(messages, {"type": "text"})
        assert enhanced[0]["content"] == f"Be brief\n\n{STRUCTURE_PROMPTS['text']}"
        assert messages[0]["content"] == "Be brief"

    def test_enhance_json_schema(self):
        enhanced = enhance_messages_for_structured_response(
            USER_HI,
            {"type": "json_schema", "json_schema": {"name": "answer", "schema": {"type": "object"}}},
        )
        assert enhanced[0]["role"] == "system"
        assert '{"type": "object"}' in enhanced[0]["content"]
        assert '"answer"' in enhanced[0]["content"]

    def test_anthropic_blocks(self):
        messages = convert_anthropic_messages(
            [
                {
                    "role": "user",
                    "content": [
                        {"type": "tool_result", "content": [{"type": "text", "text": "42"}]},
                        {"type": "image", "source": {"type": "url", "url": "https://a/1.png"}},
                    ],
                },
                {"role": "assistant", "content": "ok"},
            ],
            [{"type": "text", "text": "sys"}],
        )
        assert messages == [
            {"role": "system", "content": "sys"},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "42"},
                    {"type": "image_url", "image_url": {"url": "https://a/1.png"}},
                ],
            },
            {"role": "assistant", "content": "ok"},
        ]
