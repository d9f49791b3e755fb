"""
1min Gateway Application Entry Point

FastAPI application main entry, including router registration and application configuration.
"""

import asyncio
import logging
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from onemin_gateway import __version__
from onemin_gateway.api.errors import error_response, is_anthropic_path
from onemin_gateway.api.proxy import anthropic_router, openai_router
from onemin_gateway.common.errors import AppError
from onemin_gateway.common.http_client import HttpClient
from onemin_gateway.config import Settings, get_settings
from onemin_gateway.db.redis import close_redis, init_redis
from onemin_gateway.db.session import close_db, init_db
from onemin_gateway.logging_config import setup_logging
from onemin_gateway.middleware.rate_limit import RateLimiter
from onemin_gateway.repositories.kv_store_repo import KVStoreRepository
from onemin_gateway.repositories.memory import InMemoryKVStoreRepository
from onemin_gateway.repositories.redis import RedisKVStoreRepository
from onemin_gateway.repositories.sqlalchemy import SQLAlchemyKVStoreRepository
from onemin_gateway.scheduler import shutdown_scheduler, start_scheduler
from onemin_gateway.services.gateway_service import GatewayService
from onemin_gateway.services.image_ingestion import ImageIngestionService
from onemin_gateway.services.model_registry import ModelRegistry
from onemin_gateway.services.onemin_client import OneMinClient

logger = logging.getLogger(__name__)

# Initialize logging configuration
setup_logging()

VERSION = __version__


async def create_kv_repository(settings: Settings) -> KVStoreRepository:
    """Build the KV backend selected by KV_STORE_TYPE"""
    if settings.KV_STORE_TYPE == "redis":
        return RedisKVStoreRepository(await init_redis())
    if settings.KV_STORE_TYPE == "database":
        return SQLAlchemyKVStoreRepository(await init_db(settings))
    return InMemoryKVStoreRepository()


def build_services(
    app: FastAPI,
    http_client: HttpClient,
    kv_repo: Optional[KVStoreRepository],
    settings: Settings,
) -> None:
    """Wire the process-scoped services onto app.state"""
    registry = ModelRegistry(http_client, kv_repo, settings)
    client = OneMinClient(http_client, ImageIngestionService(http_client, settings), settings)
    app.state.http_client = http_client
    app.state.model_registry = registry
    app.state.gateway_service = GatewayService(registry, client, settings)
    app.state.rate_limiter = RateLimiter(kv_repo, settings)


# Application Lifecycle Management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application Lifecycle Management

    Initialize the KV backend and shared services on startup, clean up resources on shutdown.
    """
    settings = get_settings()
    kv_repo = await create_kv_repository(settings)
    http_client = HttpClient()
    build_services(app, http_client, kv_repo, settings)
    start_scheduler(kv_repo)

    # Warm the model cache without delaying startup
    warm_up = asyncio.create_task(app.state.model_registry.warm_up())

    yield

    # Shutdown
    shutdown_scheduler()
    if not warm_up.done():
        warm_up.cancel()
    await app.state.model_registry.close()
    await http_client.close()
    if settings.KV_STORE_TYPE == "redis":
        await close_redis()
    elif settings.KV_STORE_TYPE == "database":
        await close_db()


def create_app() -> FastAPI:
    """Create the FastAPI application"""
    settings = get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        description="OpenAI/Anthropic compatible gateway for the 1min.ai API",
        version=VERSION,
        lifespan=lifespan,
    )

    # Configure CORS
    # Parse ALLOWED_ORIGINS from comma-separated string to list
    allowed_origins = [
        origin.strip() for origin in settings.ALLOWED_ORIGINS.split(",") if origin.strip()
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials="*" not in allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-WebSearch-Degraded", "Retry-After"],
    )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        """
        Handle application custom exceptions

        Requests to the Anthropic endpoint get the Anthropic error envelope.
        """
        return error_response(exc, anthropic=is_anthropic_path(request.url.path))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """
        Handle uncaught exceptions

        In production mode, stack traces and error details are logged but not returned to clients.
        """
        logger.error(
            "Uncaught exception: %s\nPath: %s\nTraceback:\n%s",
            str(exc),
            request.url.path,
            traceback.format_exc(),
        )

        if is_anthropic_path(request.url.path):
            return JSONResponse(
                status_code=500,
                content={
                    "type": "error",
                    "error": {"type": "api_error", "message": "Internal server error"},
                },
            )

        error: dict = {
            "message": "Internal server error",
            "type": "internal_error",
            "param": None,
            "code": "internal_error",
        }
        if get_settings().DEBUG:
            error["message"] = str(exc)
            error["traceback"] = traceback.format_exc().split("\n")
        return JSONResponse(status_code=500, content={"error": error})

    # Health Check Endpoint
    @app.get("/health", tags=["Health"])
    async def health_check():
        """
        Health Check

        Used for service liveness probe.
        """
        return {"status": "healthy"}

    @app.get("/", tags=["Health"])
    async def root():
        """Basic service information"""
        return {
            "name": settings.APP_NAME,
            "version": VERSION,
            "description": "1min.ai gateway - OpenAI/Anthropic compatible API",
            "endpoints": [
                "/v1/chat/completions",
                "/v1/responses",
                "/v1/messages",
                "/v1/images/generations",
                "/v1/models",
            ],
        }

    # Register Proxy Routers
    app.include_router(openai_router)
    app.include_router(anthropic_router)

    return app


app = create_app()
