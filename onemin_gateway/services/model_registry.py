"""
Model Registry Service Module

Serves 1min.ai model metadata from a two-tier cache:
in-memory snapshot (short TTL) -> KV store (longer TTL) -> models API.
Concurrent cold-cache callers share a single upstream fetch.
"""

import asyncio
import json
import logging
import time
from typing import Any, Optional

from onemin_gateway.common.errors import ModelNotSupportedError, UpstreamApiError, UpstreamUnavailableError
from onemin_gateway.common.http_client import HttpClient
from onemin_gateway.config import Settings, get_settings
from onemin_gateway.domain.model import (
    FEATURE_CHAT,
    FEATURE_IMAGE_GENERATOR,
    CachedModelData,
    ModelEntry,
)
from onemin_gateway.repositories.kv_store_repo import KVStoreRepository

logger = logging.getLogger(__name__)

MODEL_DATA_KEY = "model-data"


class ModelRegistry:
    """
    Model Registry

    One instance per process, created at startup. The snapshot is replaced
    wholesale on refresh; readers share it and must not mutate it.
    """

    def __init__(
        self,
        http_client: HttpClient,
        kv_repo: Optional[KVStoreRepository] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize Registry

        Args:
            http_client: Shared HTTP client
            kv_repo: KV store for the second cache tier (None disables it)
            settings: Application settings
        """
        self.http_client = http_client
        self.kv_repo = kv_repo
        self.settings = settings or get_settings()
        self._snapshot: Optional[CachedModelData] = None
        self._expires_at: float = 0.0
        self._inflight: Optional[asyncio.Task] = None
        self._background_tasks: set[asyncio.Task] = set()

    @property
    def snapshot(self) -> Optional[CachedModelData]:
        return self._snapshot

    def _fresh_snapshot(self) -> Optional[CachedModelData]:
        if self._snapshot is not None and time.monotonic() < self._expires_at:
            return self._snapshot
        return None

    def _store_snapshot(self, data: CachedModelData) -> None:
        self._snapshot = data
        self._expires_at = time.monotonic() + self.settings.MODEL_MEMORY_TTL_SECONDS

    async def get_model_data(self) -> CachedModelData:
        """
        Get the capability index

        Returns:
            CachedModelData: Current snapshot

        Raises:
            UpstreamUnavailableError: Fetch failed and no cached copy exists
        """
        snapshot = self._fresh_snapshot()
        if snapshot is not None:
            return snapshot

        cached = await self._read_kv()
        if cached is not None:
            self._store_snapshot(cached)
            return cached

        # Another caller may have refreshed while we were reading the KV store
        snapshot = self._fresh_snapshot()
        if snapshot is not None:
            return snapshot

        if self._inflight is None:
            self._inflight = asyncio.create_task(self._refresh())
        # Shield so a cancelled waiter does not cancel the shared fetch
        return await asyncio.shield(self._inflight)

    async def _read_kv(self) -> Optional[CachedModelData]:
        if self.kv_repo is None:
            return None
        try:
            entry = await self.kv_repo.get(MODEL_DATA_KEY)
            if entry is None:
                return None
            payload = json.loads(entry.value)
            if not CachedModelData.is_valid_payload(payload):
                logger.warning("Ignoring malformed model cache entry in KV store")
                return None
            return CachedModelData.model_validate(payload)
        except Exception as e:
            logger.error("KV read error for model cache: %s", e)
            return None

    async def _write_kv(self, data: CachedModelData) -> None:
        if self.kv_repo is None:
            return
        try:
            await self.kv_repo.set(
                MODEL_DATA_KEY, data.to_json(), ttl_seconds=self.settings.MODEL_KV_TTL_SECONDS
            )
        except Exception as e:
            logger.error("KV write error for model cache: %s", e)

    def _spawn(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _refresh(self) -> CachedModelData:
        try:
            try:
                data = await self._fetch_and_process()
            except Exception as e:
                logger.error("Failed to fetch models from API: %s", e)
                if self._snapshot is not None:
                    logger.warning("Using stale in-memory model cache as fallback")
                    self._expires_at = time.monotonic() + self.settings.MODEL_MEMORY_TTL_SECONDS
                    return self._snapshot
                raise UpstreamUnavailableError() from e

            self._store_snapshot(data)
            self._spawn(self._write_kv(data))
            logger.info(
                "Model registry refreshed: %d chat, %d image models",
                len(data.chat_model_ids),
                len(data.image_model_ids),
            )
            return data
        finally:
            self._inflight = None

    async def _fetch_and_process(self) -> CachedModelData:
        chat_models, image_models = await asyncio.gather(
            self._fetch_models(FEATURE_CHAT),
            self._fetch_models(FEATURE_IMAGE_GENERATOR),
        )
        return CachedModelData.from_entries(chat_models, image_models)

    async def _fetch_models(self, feature: str) -> list[ModelEntry]:
        response = await asyncio.wait_for(
            self.http_client.get(self.settings.ONE_MIN_MODELS_API_URL, params={"feature": feature}),
            timeout=self.settings.MODEL_FETCH_TIMEOUT,
        )
        if not response.is_success:
            raise UpstreamApiError(response.status_code, response.reason_phrase)

        payload = response.json()
        models = payload.get("models") if isinstance(payload, dict) else None
        if not isinstance(models, list):
            raise ValueError(
                f"Unexpected API response shape for feature={feature}: missing models array"
            )
        return [
            ModelEntry.model_validate(item)
            for item in models
            if isinstance(item, dict) and item.get("modelId")
        ]

    async def warm_up(self) -> None:
        """Populate the cache at startup; failures are logged, not raised"""
        try:
            await self.get_model_data()
        except Exception as e:
            logger.warning("Model cache warm-up failed: %s", e)

    async def close(self) -> None:
        """Wait for pending KV writes"""
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

    # Capability queries

    async def is_valid_model(self, model: str) -> bool:
        data = await self.get_model_data()
        return model in data.chat_model_ids or model in data.image_model_ids

    async def is_vision_model(self, model: str) -> bool:
        data = await self.get_model_data()
        return model in data.vision_model_ids

    async def is_code_interpreter_model(self, model: str) -> bool:
        data = await self.get_model_data()
        return model in data.code_interpreter_model_ids

    async def is_image_generation_model(self, model: str) -> bool:
        data = await self.get_model_data()
        return model in data.image_model_ids

    async def is_chat_model(self, model: str) -> bool:
        """All chat models support web search"""
        data = await self.get_model_data()
        return model in data.chat_model_ids

    async def get_model_capabilities(self, model: str) -> dict[str, bool]:
        data = await self.get_model_data()
        return {
            "vision": model in data.vision_model_ids,
            "code_interpreter": model in data.code_interpreter_model_ids,
            "retrieval": model in data.chat_model_ids,
            "image_generation": model in data.image_model_ids,
        }

    async def validate_model_capabilities(
        self,
        model: str,
        vision: bool = False,
        code_interpreter: bool = False,
    ) -> None:
        """
        Validate model requirements

        Raises:
            ModelNotSupportedError: A required capability is missing
        """
        data = await self.get_model_data()
        if vision and model not in data.vision_model_ids:
            raise ModelNotSupportedError(model, "image inputs")
        if code_interpreter and model not in data.code_interpreter_model_ids:
            raise ModelNotSupportedError(model, "code interpreter")
