"""
Upstream Request Domain Model

Defines the 1min.ai request payload variants as a closed set:
CHAT_WITH_AI, CHAT_WITH_IMAGE and IMAGE_GENERATOR.
Each variant renders `{"type", "model", "promptObject"}` via `to_payload()`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class UpstreamRequestType(str, Enum):
    """1min.ai feature types used by the gateway"""

    CHAT_WITH_AI = "CHAT_WITH_AI"
    CHAT_WITH_IMAGE = "CHAT_WITH_IMAGE"
    IMAGE_GENERATOR = "IMAGE_GENERATOR"


# Prompt-object keys that enable upstream web search
WEB_SEARCH_FIELDS = ("webSearch", "numOfSite", "maxWord")


@dataclass(frozen=True)
class WebSearchConfig:
    """
    Web Search Configuration

    Derived per request from the ":online" model suffix.
    """

    web_search: bool
    num_of_site: int
    max_word: int


@dataclass
class ChatWithAIBody:
    """Plain text chat payload"""

    model: str
    prompt: str
    web_search: Optional[WebSearchConfig] = None
    is_mixed: bool = False

    type = UpstreamRequestType.CHAT_WITH_AI

    def to_payload(self) -> dict[str, Any]:
        prompt_object: dict[str, Any] = {
            "prompt": self.prompt,
            "isMixed": self.is_mixed,
            "webSearch": self.web_search.web_search if self.web_search else False,
        }
        # Site/word limits only travel when web search is actually on
        if self.web_search and self.web_search.web_search:
            prompt_object["numOfSite"] = self.web_search.num_of_site
            prompt_object["maxWord"] = self.web_search.max_word
        return {
            "type": self.type.value,
            "model": self.model,
            "promptObject": prompt_object,
        }


@dataclass
class ChatWithImageBody:
    """Image-augmented chat payload, `image_list` holds uploaded asset paths"""

    model: str
    prompt: str
    image_list: list[str] = field(default_factory=list)
    web_search: Optional[WebSearchConfig] = None
    is_mixed: bool = False

    type = UpstreamRequestType.CHAT_WITH_IMAGE

    def to_payload(self) -> dict[str, Any]:
        prompt_object: dict[str, Any] = {
            "prompt": self.prompt,
            "isMixed": self.is_mixed,
            "imageList": list(self.image_list),
        }
        if self.web_search:
            prompt_object["webSearch"] = self.web_search.web_search
            prompt_object["numOfSite"] = self.web_search.num_of_site
            prompt_object["maxWord"] = self.web_search.max_word
        return {
            "type": self.type.value,
            "model": self.model,
            "promptObject": prompt_object,
        }


@dataclass
class ImageGeneratorBody:
    """Image generation payload"""

    model: str
    prompt: str
    n: int = 1
    size: str = "1024x1024"

    type = UpstreamRequestType.IMAGE_GENERATOR

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "model": self.model,
            "promptObject": {
                "prompt": self.prompt,
                "n": self.n,
                "size": self.size,
            },
        }


UpstreamRequestBody = Union[ChatWithAIBody, ChatWithImageBody, ImageGeneratorBody]


def has_web_search(payload: dict[str, Any]) -> bool:
    """Whether a rendered payload asks upstream for web search"""
    prompt_object = payload.get("promptObject")
    return isinstance(prompt_object, dict) and bool(prompt_object.get("webSearch"))


def strip_web_search(payload: dict[str, Any]) -> dict[str, Any]:
    """
    Return a copy of a rendered payload without web search fields.

    The input payload is left untouched.
    """
    fallback = dict(payload)
    prompt_object = payload.get("promptObject")
    if isinstance(prompt_object, dict):
        fallback["promptObject"] = {
            k: v for k, v in prompt_object.items() if k not in WEB_SEARCH_FIELDS
        }
    return fallback
