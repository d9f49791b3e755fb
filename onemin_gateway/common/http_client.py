"""
HTTP Client Wrapper Module

Provides the shared asynchronous HTTP client used for every 1min.ai call
(models API, feature API, asset upload) and for image downloads.
"""

from typing import Any, Optional

import httpx

from onemin_gateway.config import get_settings


class HttpClient:
    """
    Asynchronous HTTP Client Wrapper

    Wraps one pooled httpx.AsyncClient for the lifetime of the application.
    Streaming calls return the open response; the caller must close it.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize HTTP Client

        Args:
            timeout: Request timeout (seconds), defaults to configuration
            headers: Default request headers
            transport: Custom transport (tests use httpx.MockTransport)
        """
        settings = get_settings()
        self.timeout = timeout or settings.HTTP_TIMEOUT
        self.default_headers = headers or {}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers=self.default_headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP Client"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Send HTTP Request

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Request URL
            headers: Request headers
            json: JSON request body
            **kwargs: Other httpx parameters

        Returns:
            httpx.Response: HTTP response (body fully read)
        """
        return await self._get_client().request(
            method=method,
            url=url,
            headers=headers,
            json=json,
            **kwargs,
        )

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(
        self,
        url: str,
        headers: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        return await self.request("POST", url, headers=headers, json=json, **kwargs)

    async def open_stream(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Send a request and return once headers arrive

        The body is left unread. Callers iterate `aiter_bytes()` and must
        `aclose()` the response.
        """
        client = self._get_client()
        request = client.build_request(method, url, headers=headers, json=json, **kwargs)
        return await client.send(request, stream=True)
