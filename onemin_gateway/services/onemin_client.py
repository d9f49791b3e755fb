"""
1min.ai Client Module

Builds upstream payloads from normalised messages and sends them to the
1min.ai feature API, including the web search degradation retry.
"""

import logging
from typing import Any, Optional

import httpx

from onemin_gateway.common.errors import UpstreamApiError
from onemin_gateway.common.http_client import HttpClient
from onemin_gateway.common.messages import extract_image_urls, format_conversation_history
from onemin_gateway.config import Settings, get_settings
from onemin_gateway.domain.upstream import (
    ChatWithAIBody,
    ChatWithImageBody,
    ImageGeneratorBody,
    UpstreamRequestBody,
    WebSearchConfig,
    has_web_search,
    strip_web_search,
)
from onemin_gateway.services.image_ingestion import ImageIngestionService

logger = logging.getLogger(__name__)

DEGRADED_HEADER = "X-WebSearch-Degraded"


class OneMinClient:
    """
    1min.ai API Client

    Chat responses are returned open (headers received, body unread) so that
    streaming and non-streaming callers share one send path.
    """

    def __init__(
        self,
        http_client: HttpClient,
        image_ingestion: ImageIngestionService,
        settings: Optional[Settings] = None,
    ):
        self.http_client = http_client
        self.image_ingestion = image_ingestion
        self.settings = settings or get_settings()

    async def build_chat_request_body(
        self,
        messages: list[dict[str, Any]],
        model: str,
        api_key: Optional[str],
        web_search_config: Optional[WebSearchConfig] = None,
    ) -> UpstreamRequestBody:
        """
        Build the upstream chat payload

        Images are ingested first; CHAT_WITH_IMAGE is used only when every
        image was uploaded. Vision support must be checked by the caller.

        Args:
            messages: Normalised messages
            model: Clean model id (no ":online" suffix)
            api_key: Upstream API key used for asset uploads
            web_search_config: Web search settings from the model suffix

        Returns:
            UpstreamRequestBody: CHAT_WITH_IMAGE or CHAT_WITH_AI body
        """
        image_urls = extract_image_urls(messages)
        prompt = format_conversation_history(messages)

        if image_urls:
            result = await self.image_ingestion.ingest_all(image_urls, api_key)
            logger.debug(
                "Image processing summary: found=%d uploaded=%d all_uploaded=%s",
                len(image_urls),
                len(result.paths),
                result.all_uploaded,
            )
            if result.all_uploaded and result.paths:
                return ChatWithImageBody(
                    model=model,
                    prompt=prompt,
                    image_list=result.paths,
                    web_search=web_search_config,
                )

        return ChatWithAIBody(model=model, prompt=prompt, web_search=web_search_config)

    async def build_streaming_chat_request_body(
        self,
        messages: list[dict[str, Any]],
        model: str,
        api_key: Optional[str],
        web_search_config: Optional[WebSearchConfig] = None,
    ) -> UpstreamRequestBody:
        """Same contract as build_chat_request_body; streaming only changes the URL"""
        return await self.build_chat_request_body(messages, model, api_key, web_search_config)

    def build_image_request_body(
        self,
        prompt: str,
        model: str,
        n: Optional[int] = None,
        size: Optional[str] = None,
    ) -> ImageGeneratorBody:
        return ImageGeneratorBody(
            model=model,
            prompt=prompt,
            n=n if n is not None else 1,
            size=size if size is not None else "1024x1024",
        )

    @staticmethod
    def _headers(api_key: Optional[str]) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["API-KEY"] = api_key
        return headers

    async def _post(self, url: str, payload: dict[str, Any], api_key: Optional[str]) -> httpx.Response:
        try:
            return await self.http_client.open_stream(
                "POST", url, headers=self._headers(api_key), json=payload
            )
        except httpx.TimeoutException as e:
            raise UpstreamApiError(
                504, "Gateway Timeout", message=f"1min.ai API timeout: {e}", status_code=504
            ) from e
        except httpx.RequestError as e:
            raise UpstreamApiError(
                502, "Bad Gateway", message=f"1min.ai API connection error: {e}"
            ) from e

    async def send_chat_request(
        self,
        body: UpstreamRequestBody | dict[str, Any],
        is_streaming: bool,
        api_key: Optional[str],
    ) -> httpx.Response:
        """
        Send a chat payload

        A 400 answer to a web search request is retried once without the web
        search fields; a successful retry carries `X-WebSearch-Degraded: true`.

        Returns:
            httpx.Response: Open response; the caller must close it

        Raises:
            UpstreamApiError: Non-2xx answer (after the optional retry)
        """
        payload = body if isinstance(body, dict) else body.to_payload()
        url = (
            self.settings.ONE_MIN_CONVERSATION_API_STREAMING_URL
            if is_streaming
            else self.settings.ONE_MIN_API_URL
        )

        response = await self._post(url, payload, api_key)
        if response.is_success:
            return response

        status, reason = response.status_code, response.reason_phrase
        await response.aclose()
        logger.error(
            "1min.ai API error: %s %s (model=%s, web_search=%s)",
            status,
            reason,
            payload.get("model"),
            has_web_search(payload),
        )

        if status == 400 and has_web_search(payload):
            logger.warning("Attempting graceful degradation: removing webSearch parameters")
            fallback = await self._post(url, strip_web_search(payload), api_key)
            if fallback.is_success:
                logger.info("Graceful degradation successful")
                fallback.headers[DEGRADED_HEADER] = "true"
                return fallback
            status, reason = fallback.status_code, fallback.reason_phrase
            await fallback.aclose()

        raise UpstreamApiError(status, reason)

    async def send_image_request(
        self,
        body: ImageGeneratorBody | dict[str, Any],
        api_key: Optional[str],
    ) -> dict[str, Any]:
        """
        Send an image generation payload

        Returns:
            dict: Parsed upstream JSON
        """
        payload = body if isinstance(body, dict) else body.to_payload()
        try:
            response = await self.http_client.post(
                self.settings.ONE_MIN_API_URL,
                headers=self._headers(api_key),
                json=payload,
                params={"isStreaming": "false"},
            )
        except httpx.RequestError as e:
            raise UpstreamApiError(
                502, "Bad Gateway", message=f"1min.ai API connection error: {e}"
            ) from e

        if not response.is_success:
            raise UpstreamApiError(response.status_code, response.reason_phrase)
        return response.json()

    @staticmethod
    async def read_json(response: httpx.Response) -> dict[str, Any]:
        """Read a full (non-streaming) response body and close it"""
        try:
            await response.aread()
        finally:
            await response.aclose()
        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamApiError(
                502, "Bad Gateway", message="1min.ai API returned invalid JSON"
            ) from e
        return data if isinstance(data, dict) else {"content": data}
