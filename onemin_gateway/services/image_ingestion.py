"""
Image Ingestion Service Module

Turns image references from chat messages (remote URLs or data: URLs) into
1min.ai asset paths by downloading the bytes and uploading them to the asset API.
"""

import base64
import binascii
import logging
import mimetypes
import uuid
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

import httpx

from onemin_gateway.common.errors import UpstreamApiError, ValidationError
from onemin_gateway.common.http_client import HttpClient
from onemin_gateway.common.url_validator import validate_image_url
from onemin_gateway.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Some CDNs refuse hotlinking without a browser-like request
BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8",
}

DEFAULT_CONTENT_TYPE = "image/png"
MAX_IMAGE_REDIRECTS = 3


class ImageIngestionError(Exception):
    """Raised when a single image cannot be fetched or uploaded"""


@dataclass
class ImageData:
    content: bytes
    content_type: str = DEFAULT_CONTENT_TYPE

    @property
    def filename(self) -> str:
        extension = mimetypes.guess_extension(self.content_type) or ".png"
        return f"image-{uuid.uuid4().hex[:12]}{extension}"


@dataclass
class ImageIngestionResult:
    """Outcome of ingesting every image in a request"""

    paths: list[str] = field(default_factory=list)
    all_uploaded: bool = True


def decode_data_url(url: str) -> ImageData:
    """
    Decode a base64 `data:` URL

    Raises:
        ValidationError: Malformed data URL
    """
    header, sep, data = url.partition(",")
    if not sep or not header.startswith("data:") or ";base64" not in header:
        raise ValidationError(message="Invalid image data URL", code="invalid_image_url")
    content_type = header[len("data:"):].split(";", 1)[0] or DEFAULT_CONTENT_TYPE
    try:
        content = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(
            message="Invalid base64 image data", code="invalid_image_url"
        ) from e
    return ImageData(content=content, content_type=content_type)


class ImageIngestionService:
    """
    Image Ingestion Service

    Failures of individual images are isolated by `ingest_all`; the request
    then falls back to a text-only upstream call.
    """

    def __init__(self, http_client: HttpClient, settings: Optional[Settings] = None):
        self.http_client = http_client
        self.settings = settings or get_settings()

    def _download_headers(self, url: str) -> dict[str, str]:
        hostname = (urlparse(url).hostname or "").lower()
        if hostname in self.settings.image_compat_hosts:
            parsed = urlparse(url)
            return {**BROWSER_HEADERS, "Referer": f"{parsed.scheme}://{parsed.netloc}/"}
        return {}

    async def _open_download(self, url: str) -> httpx.Response:
        """
        Open the image response, validating the URL of every redirect hop

        Raises:
            ValidationError: A hop was rejected
            ImageIngestionError: Too many redirects
        """
        for _ in range(MAX_IMAGE_REDIRECTS + 1):
            await validate_image_url(url, block_private=self.settings.IMAGE_URL_BLOCK_PRIVATE)
            response = await self.http_client.open_stream(
                "GET", url, headers=self._download_headers(url)
            )
            if not response.is_redirect:
                return response
            await response.aclose()
            url = str(response.url.join(response.headers["location"]))
            logger.debug("Image download redirected to %s", url[:100])
        raise ImageIngestionError("Too many redirects while fetching image")

    async def fetch_image(self, url: str) -> ImageData:
        """
        Load image bytes from a data: URL or a remote http(s) URL

        The body is read incrementally and abandoned once it passes IMAGE_MAX_BYTES.

        Raises:
            ValidationError: URL rejected
            ImageIngestionError: Download failed
        """
        if url.startswith("data:"):
            return decode_data_url(url)

        max_bytes = self.settings.IMAGE_MAX_BYTES
        response = await self._open_download(url)
        try:
            if not response.is_success:
                raise ImageIngestionError(
                    f"Failed to fetch image: {response.status_code} {response.reason_phrase}"
                )
            declared = response.headers.get("content-length", "")
            if declared.isdigit() and int(declared) > max_bytes:
                raise ImageIngestionError("Image exceeds maximum allowed size")

            chunks: list[bytes] = []
            received = 0
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if received > max_bytes:
                    raise ImageIngestionError("Image exceeds maximum allowed size")
                chunks.append(chunk)
        finally:
            await response.aclose()

        content_type = response.headers.get("content-type", "").split(";", 1)[0].strip()
        return ImageData(content=b"".join(chunks), content_type=content_type or DEFAULT_CONTENT_TYPE)

    async def upload(self, image: ImageData, api_key: Optional[str]) -> str:
        """
        Upload image bytes to the 1min.ai asset API

        Returns:
            str: Asset path to reference in `imageList`
        """
        headers = {"API-KEY": api_key} if api_key else {}
        response = await self.http_client.post(
            self.settings.ONE_MIN_ASSET_URL,
            headers=headers,
            files={"asset": (image.filename, image.content, image.content_type)},
        )
        if not response.is_success:
            raise UpstreamApiError(response.status_code, response.reason_phrase)

        data = response.json()
        path = None
        if isinstance(data, dict):
            path = (data.get("fileContent") or {}).get("path") or (data.get("asset") or {}).get(
                "location"
            )
        if not path:
            raise ImageIngestionError("Asset upload response did not include a file path")
        return path

    async def ingest(self, url: str, api_key: Optional[str]) -> str:
        """Fetch one image and upload it, returning the asset path"""
        image = await self.fetch_image(url)
        return await self.upload(image, api_key)

    async def ingest_all(self, urls: list[str], api_key: Optional[str]) -> ImageIngestionResult:
        """
        Ingest images in order

        Each failure is logged and skipped; `all_uploaded` is cleared.
        """
        result = ImageIngestionResult()
        for url in urls:
            try:
                path = await self.ingest(url, api_key)
            except Exception as e:
                logger.warning("Image ingestion failed for %s...: %s", url[:50], e)
                result.all_uploaded = False
                continue
            result.paths.append(path)
        return result
