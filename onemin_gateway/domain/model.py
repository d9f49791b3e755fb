"""
Model Metadata Domain Model

Defines the 1min.ai model entries and the derived capability index cached by the registry.
"""

from __future__ import annotations

from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field

from onemin_gateway.common.time import epoch_millis

# Feature tags reported by the 1min.ai models API
FEATURE_CHAT = "UNIFY_CHAT_WITH_AI"
FEATURE_IMAGE_GENERATOR = "IMAGE_GENERATOR"
FEATURE_VISION = "CHAT_WITH_IMAGE"
FEATURE_CODE_INTERPRETER = "CODE_GENERATOR"


class ModelEntry(BaseModel):
    """Single model as returned by the models API"""

    model_id: str = Field(..., alias="modelId", description="Unique model id")
    name: str = Field("", description="Display name")
    provider: str = Field("", description="Model vendor")
    status: str = Field("", description="Availability status")
    features: list[str] = Field(default_factory=list, description="Capability tags")
    modality: dict[str, Any] = Field(default_factory=dict, description="Input/output modalities")

    model_config = ConfigDict(
        populate_by_name=True, extra="ignore", frozen=True, protected_namespaces=()
    )


class CachedModelData(BaseModel):
    """
    Capability Index

    Rebuilt wholesale on every registry refresh, never mutated afterwards.
    """

    chat_model_ids: list[str] = Field(default_factory=list, alias="chatModelIds")
    image_model_ids: list[str] = Field(default_factory=list, alias="imageModelIds")
    vision_model_ids: list[str] = Field(default_factory=list, alias="visionModelIds")
    code_interpreter_model_ids: list[str] = Field(
        default_factory=list, alias="codeInterpreterModelIds"
    )
    entries: list[ModelEntry] = Field(default_factory=list)
    fetched_at: int = Field(default_factory=epoch_millis, alias="fetchedAt")

    model_config = ConfigDict(populate_by_name=True, frozen=True, protected_namespaces=())

    @classmethod
    def from_entries(
        cls,
        chat_models: Iterable[ModelEntry],
        image_models: Iterable[ModelEntry],
    ) -> "CachedModelData":
        """
        Merge chat and image model lists into one index.

        Entries are deduplicated by model id; chat entries win on collision.
        """
        chat_models = list(chat_models)
        image_models = list(image_models)

        seen: set[str] = set()
        entries: list[ModelEntry] = []
        for model in (*chat_models, *image_models):
            if model.model_id in seen:
                continue
            seen.add(model.model_id)
            entries.append(model)

        return cls(
            chat_model_ids=[m.model_id for m in chat_models],
            image_model_ids=[m.model_id for m in image_models],
            vision_model_ids=[m.model_id for m in chat_models if FEATURE_VISION in m.features],
            code_interpreter_model_ids=[
                m.model_id for m in chat_models if FEATURE_CODE_INTERPRETER in m.features
            ],
            entries=entries,
        )

    def to_json(self) -> str:
        """Serialize with upstream-style camelCase keys for the KV store"""
        return self.model_dump_json(by_alias=True)

    @staticmethod
    def is_valid_payload(data: Any) -> bool:
        """Structural check for cached payloads read back from the KV store"""
        return (
            isinstance(data, dict)
            and isinstance(data.get("chatModelIds"), list)
            and isinstance(data.get("imageModelIds"), list)
        )
