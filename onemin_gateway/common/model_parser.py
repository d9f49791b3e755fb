"""
Model Name Parser

Handles the ":online" model suffix, which turns on upstream web search.
All chat models support web search, so there is no per-model validation here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from onemin_gateway.domain.upstream import WebSearchConfig

ONLINE_SUFFIX = ":online"
DEFAULT_NUM_OF_SITE = 1
DEFAULT_MAX_WORD = 500

EMPTY_MODEL_ERROR = "Model name cannot be empty"
UNSUPPORTED_SUFFIX_ERROR = "Invalid model name format. Only ':online' suffix is supported"


@dataclass(frozen=True)
class ModelParseResult:
    original_model: str
    has_online_suffix: bool
    is_valid: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class ParsedModel:
    clean_model: str
    web_search_config: Optional[WebSearchConfig] = None
    error: Optional[str] = None


def parse_model_name(model_name: Any) -> ModelParseResult:
    """
    Parse a model name and detect the ":online" suffix.

    Args:
        model_name: Raw model name from the request body

    Returns:
        ModelParseResult: Clean name, suffix flag and validation outcome
    """
    if not model_name or not isinstance(model_name, str):
        return ModelParseResult("", False, False, EMPTY_MODEL_ERROR)

    trimmed = model_name.strip()

    # Check the suffix before rejecting colons
    if trimmed.endswith(ONLINE_SUFFIX):
        original = trimmed[: -len(ONLINE_SUFFIX)]
        if not original:
            return ModelParseResult("", True, False, EMPTY_MODEL_ERROR)
        return ModelParseResult(original, True, True)

    if ":" in trimmed:
        return ModelParseResult("", False, False, UNSUPPORTED_SUFFIX_ERROR)

    if not trimmed:
        return ModelParseResult("", False, False, EMPTY_MODEL_ERROR)

    return ModelParseResult(trimmed, False, True)


def _positive_int(raw: Optional[str], default: int) -> int:
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        return default
    return value if value > 0 else default


def get_web_search_config(
    num_of_site: Optional[str] = None,
    max_word: Optional[str] = None,
) -> WebSearchConfig:
    """
    Build the web search configuration from optional environment overrides.

    Non-numeric or non-positive overrides fall back to the defaults.
    """
    return WebSearchConfig(
        web_search=True,
        num_of_site=_positive_int(num_of_site, DEFAULT_NUM_OF_SITE),
        max_word=_positive_int(max_word, DEFAULT_MAX_WORD),
    )


def parse_and_get_config(model_name: Any, settings: Any = None) -> ParsedModel:
    """
    Parse a model name and attach a web search config when ":online" was used.

    Args:
        model_name: Raw model name
        settings: Object exposing WEB_SEARCH_NUM_OF_SITE / WEB_SEARCH_MAX_WORD (optional)
    """
    result = parse_model_name(model_name)
    if not result.is_valid:
        return ParsedModel(clean_model="", error=result.error)

    if result.has_online_suffix:
        config = get_web_search_config(
            getattr(settings, "WEB_SEARCH_NUM_OF_SITE", None),
            getattr(settings, "WEB_SEARCH_MAX_WORD", None),
        )
        return ParsedModel(clean_model=result.original_model, web_search_config=config)

    return ParsedModel(clean_model=result.original_model)
