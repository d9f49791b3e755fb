"""
Unit tests for response transformers
"""

import json

import pytest

from conftest import result_body
from onemin_gateway.common.errors import AppError
from onemin_gateway.domain.model import CachedModelData, ModelEntry
from onemin_gateway.services.transformers import (
    NO_RESPONSE_TEXT,
    extract_onemin_content,
    new_anthropic_message_id,
    to_anthropic_message,
    to_chat_completion,
    to_image_generation_response,
    to_model_list,
    to_responses_response,
)


class TestExtractContent:
    def test_result_object(self):
        assert extract_onemin_content(result_body("answer")) == "answer"

    def test_content_fallback(self):
        assert extract_onemin_content({"content": "plain"}) == "plain"

    def test_placeholder(self):
        assert extract_onemin_content({}) == NO_RESPONSE_TEXT
        assert extract_onemin_content(result_body()) == NO_RESPONSE_TEXT


def test_chat_completion_shape():
    data = result_body("Hi there")
    data["usage"] = {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}

    completion = to_chat_completion(data, "gpt-4o-mini")

    assert completion["id"].startswith("chatcmpl-")
    assert completion["object"] == "chat.completion"
    assert completion["model"] == "gpt-4o-mini"
    assert completion["choices"] == [
        {"index": 0, "message": {"role": "assistant", "content": "Hi there"}, "finish_reason": "stop"}
    ]
    assert completion["usage"] == {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}


def test_chat_completion_usage_defaults_to_zero():
    completion = to_chat_completion(result_body("x"), "m")
    assert completion["usage"] == {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}


class TestResponsesResponse:
    def test_single_message_output(self):
        response = to_responses_response(result_body("Hello"), "gpt-4o-mini")

        assert response["id"].startswith("resp-")
        assert response["object"] == "response"
        assert response["status"] == "completed"
        (item,) = response["output"]
        assert item["type"] == "message"
        assert item["id"].startswith("msg-")
        assert item["content"] == [{"type": "output_text", "text": "Hello"}]

    def test_json_format_is_normalised(self):
        response = to_responses_response(
            result_body('{ "a" :  1 }'), "m", {"type": "json_object"}
        )
        text = response["output"][0]["content"][0]["text"]
        assert json.loads(text) == {"a": 1}
        assert text == '{"a": 1}'

    def test_invalid_json_kept_verbatim(self):
        response = to_responses_response(result_body("not json"), "m", {"type": "json_schema"})
        assert response["output"][0]["content"][0]["text"] == "not json"


class TestAnthropicMessage:
    def test_shape_with_estimated_usage(self):
        message = to_anthropic_message(
            result_body("Hi"), "claude-3-5-haiku", [{"role": "user", "content": "Hello"}]
        )

        assert message["id"].startswith("msg_")
        assert message["type"] == "message"
        assert message["role"] == "assistant"
        assert message["content"] == [{"type": "text", "text": "Hi"}]
        assert message["stop_reason"] == "end_turn"
        assert message["stop_sequence"] is None
        assert message["usage"]["input_tokens"] > 0
        assert message["usage"]["output_tokens"] > 0

    def test_upstream_usage_preferred(self):
        data = result_body("Hi")
        data["usage"] = {"prompt_tokens": 11, "completion_tokens": 7}
        message = to_anthropic_message(data, "m", [])
        assert message["usage"] == {"input_tokens": 11, "output_tokens": 7}

    def test_message_id_format(self):
        message_id = new_anthropic_message_id()
        assert len(message_id) == 24
        assert message_id.startswith("msg_")


class TestImageGenerationResponse:
    def test_urls_mapped(self):
        response = to_image_generation_response(result_body("http://x/1.png", "http://x/2.png"))
        assert response["data"] == [{"url": "http://x/1.png"}, {"url": "http://x/2.png"}]
        assert isinstance(response["created"], int)

    def test_empty_result_is_server_error(self):
        with pytest.raises(AppError) as exc_info:
            to_image_generation_response(result_body())
        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "No image URLs found in API response"

    def test_missing_record_is_server_error(self):
        with pytest.raises(AppError):
            to_image_generation_response({"something": "else"})


def test_model_list():
    data = CachedModelData.from_entries(
        [
            ModelEntry(model_id="gpt-4o-mini", provider="openai", features=["CHAT_WITH_IMAGE"]),
            ModelEntry(model_id="plain"),
        ],
        [ModelEntry(model_id="flux")],
    ).model_copy(update={"fetched_at": 1_700_000_000_123})

    listing = to_model_list(data)

    assert listing["object"] == "list"
    by_id = {item["id"]: item for item in listing["data"]}
    assert set(by_id) == {"gpt-4o-mini", "plain", "flux"}
    assert by_id["gpt-4o-mini"]["owned_by"] == "openai"
    assert by_id["plain"]["owned_by"] == "1min-ai"
    assert by_id["gpt-4o-mini"]["created"] == 1_700_000_000
    assert by_id["gpt-4o-mini"]["capabilities"] == {
        "vision": True,
        "code_interpreter": False,
        "retrieval": True,
    }
    assert by_id["flux"]["capabilities"]["retrieval"] is False
