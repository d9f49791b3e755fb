"""
Test Configuration Module
"""

import json
from typing import AsyncGenerator, Callable

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from onemin_gateway.common.http_client import HttpClient
from onemin_gateway.config import Settings, get_settings
from onemin_gateway.db.models import Base
from onemin_gateway.main import build_services, create_app
from onemin_gateway.repositories.memory import InMemoryKVStoreRepository
from onemin_gateway.services.gateway_service import GatewayService
from onemin_gateway.services.image_ingestion import ImageIngestionService
from onemin_gateway.services.model_registry import ModelRegistry
from onemin_gateway.services.onemin_client import OneMinClient


# Use in-memory database for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

UPSTREAM_HOST = "api.1min.ai"

CHAT_MODELS = [
    {
        "modelId": "gpt-4o-mini",
        "name": "GPT-4o mini",
        "provider": "openai",
        "features": ["UNIFY_CHAT_WITH_AI", "CHAT_WITH_IMAGE"],
    },
    {
        "modelId": "open-mistral-nemo",
        "name": "Mistral Nemo",
        "provider": "mistral",
        "features": ["UNIFY_CHAT_WITH_AI"],
    },
    {
        "modelId": "claude-3-5-haiku",
        "name": "Claude 3.5 Haiku",
        "provider": "anthropic",
        "features": ["UNIFY_CHAT_WITH_AI", "CODE_GENERATOR"],
    },
]

IMAGE_MODELS = [
    {
        "modelId": "black-forest-labs/flux-schnell",
        "name": "Flux Schnell",
        "provider": "black-forest-labs",
        "features": ["IMAGE_GENERATOR"],
    },
]

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image-bytes"


def result_body(*results: str) -> dict:
    """1min.ai feature API result envelope"""
    return {"aiRecord": {"aiRecordDetail": {"resultObject": list(results)}}}


class FakeOneMin:
    """
    Scripted 1min.ai upstream for httpx.MockTransport

    Records every request. Feature API calls are answered from `feature_replies`
    (FIFO) when scripted, otherwise with a default success body.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.models_status = 200
        self.chat_models = list(CHAT_MODELS)
        self.image_models = list(IMAGE_MODELS)
        self.feature_replies: list[Callable[[], httpx.Response]] = []
        self.chat_text = "Hello from 1min"
        self.stream_text = "Hello world"
        self.image_urls = ["https://cdn.1min.ai/generated/1.png"]
        self.asset_status = 200
        self.download_status = 200
        # Remote image URL -> Location header of a 302 answer
        self.download_redirects: dict[str, str] = {}

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == UPSTREAM_HOST and r.url.path == path]

    def feature_payloads(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests_to("/api/features")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.host != UPSTREAM_HOST:
            # Remote image download
            location = self.download_redirects.get(str(request.url))
            if location is not None:
                return httpx.Response(302, headers={"location": location})
            if self.download_status != 200:
                return httpx.Response(self.download_status)
            return httpx.Response(200, content=PNG_BYTES, headers={"content-type": "image/png"})

        path = request.url.path
        if path == "/models":
            if self.models_status != 200:
                return httpx.Response(self.models_status)
            feature = request.url.params.get("feature")
            models = self.image_models if feature == "IMAGE_GENERATOR" else self.chat_models
            return httpx.Response(200, json={"models": models})

        if path == "/api/assets":
            if self.asset_status != 200:
                return httpx.Response(self.asset_status)
            return httpx.Response(200, json={"fileContent": {"path": "images/2024/upload.png"}})

        if path == "/api/features":
            if self.feature_replies:
                return self.feature_replies.pop(0)()
            payload = json.loads(request.content)
            if payload["type"] == "IMAGE_GENERATOR":
                return httpx.Response(200, json=result_body(*self.image_urls))
            if request.url.params.get("isStreaming") == "true":
                return httpx.Response(200, content=self.stream_text.encode("utf-8"))
            return httpx.Response(200, json=result_body(self.chat_text))

        return httpx.Response(404)


@pytest_asyncio.fixture
async def async_engine():
    """Create async database engine for testing"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Clean up
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    """Create session factory for testing"""
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment's .env file"""
    return Settings(
        _env_file=None,
        KV_STORE_TYPE="memory",
        AUTH_TOKEN=None,
        ONE_MIN_API_KEY=None,
        IMAGE_URL_BLOCK_PRIVATE=False,
        RATE_LIMIT_ENABLED=False,
        WEB_SEARCH_NUM_OF_SITE=None,
        WEB_SEARCH_MAX_WORD=None,
    )


@pytest.fixture
def kv_repo() -> InMemoryKVStoreRepository:
    return InMemoryKVStoreRepository()


@pytest.fixture
def upstream() -> FakeOneMin:
    return FakeOneMin()


@pytest_asyncio.fixture
async def http_client(upstream) -> AsyncGenerator[HttpClient, None]:
    client = HttpClient(timeout=10, transport=httpx.MockTransport(upstream.handler))
    yield client
    await client.close()


@pytest_asyncio.fixture
async def registry(http_client, kv_repo, settings) -> AsyncGenerator[ModelRegistry, None]:
    registry = ModelRegistry(http_client, kv_repo, settings)
    yield registry
    await registry.close()


@pytest.fixture
def onemin_client(http_client, settings) -> OneMinClient:
    return OneMinClient(http_client, ImageIngestionService(http_client, settings), settings)


@pytest.fixture
def gateway(registry, onemin_client, settings) -> GatewayService:
    return GatewayService(registry, onemin_client, settings)


@pytest_asyncio.fixture
async def app(http_client, kv_repo, settings):
    """
    Application wired over the scripted upstream

    ASGITransport does not run the lifespan, so services are placed on
    app.state directly.
    """
    app = create_app()
    build_services(app, http_client, kv_repo, settings)
    app.dependency_overrides[get_settings] = lambda: settings

    yield app

    await app.state.model_registry.close()
    app.dependency_overrides = {}


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
