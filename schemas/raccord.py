"""Raccord engine schemas — scene snapshot, continuity insights, DOP errors, decisions."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


InsightType = Literal["prop", "environment", "character", "flow"]
InsightSeverity = Literal["info", "warning", "critical"]
RetryAction = Literal["retry", "skip", "try_once"]
VisionProviderName = Literal["google", "openai", "anthropic"]


class _CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire (the editor exports camelCase JSON)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


# ---------------------------------------------------------------------------
# Project snapshot (read-only input)
# ---------------------------------------------------------------------------


class Scene(_CamelModel):
    id: str
    group_id: str | None = None
    character_ids: list[str] = Field(default_factory=list)
    product_ids: list[str] = Field(default_factory=list)
    context_description: str = ""
    camera_angle: str | None = None
    camera_angle_override: str | None = None

    # Generation bookkeeping written by the surrounding pipeline.
    scene_number: str = ""
    generated_image: str | None = None
    is_key_frame: bool = False
    error: str | None = None

    @field_validator("character_ids", "product_ids", mode="before")
    @classmethod
    def _none_to_empty_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("context_description", "scene_number", mode="before")
    @classmethod
    def _none_to_empty_text(cls, value: Any) -> Any:
        return "" if value is None else value


class SceneGroup(_CamelModel):
    id: str
    name: str = ""
    concept_image: str | None = None


class Character(_CamelModel):
    id: str
    name: str = ""


class Product(_CamelModel):
    id: str
    name: str = ""


class ProjectSnapshot(_CamelModel):
    """Immutable view of the editor state the engine reads from."""

    scenes: list[Scene] = Field(default_factory=list)
    scene_groups: list[SceneGroup] = Field(default_factory=list)
    characters: list[Character] = Field(default_factory=list)
    products: list[Product] = Field(default_factory=list)
    mannequin_mode: bool = False

    @field_validator("scenes", "scene_groups", "characters", "products", mode="before")
    @classmethod
    def _none_to_empty_list(cls, value: Any) -> Any:
        return [] if value is None else value

    def scene_index(self, scene_id: str) -> int:
        for idx, scene in enumerate(self.scenes):
            if scene.id == scene_id:
                return idx
        return -1

    def find_scene(self, scene_id: str) -> Scene | None:
        idx = self.scene_index(scene_id)
        return self.scenes[idx] if idx >= 0 else None

    def find_group(self, group_id: str | None) -> SceneGroup | None:
        if group_id is None:
            return None
        return next((g for g in self.scene_groups if g.id == group_id), None)

    def group_name(self, group_id: str | None) -> str | None:
        group = self.find_group(group_id)
        return group.name if group else None

    def character_name(self, character_id: str) -> str | None:
        found = next((c for c in self.characters if c.id == character_id), None)
        return found.name if found else None

    def product_name(self, product_id: str) -> str | None:
        found = next((p for p in self.products if p.id == product_id), None)
        return found.name if found else None


# ---------------------------------------------------------------------------
# Engine outputs
# ---------------------------------------------------------------------------


class ContinuityInsight(_CamelModel):
    type: InsightType
    severity: InsightSeverity
    message: str
    suggestion: str | None = None
    affected_ids: list[str] | None = None
    code: str = Field(default="", description="Stable insight kind, e.g. prop_jump")
    params: dict[str, Any] = Field(default_factory=dict)


class DopError(_CamelModel):
    """Raw defect reported by the vision model. `type` is a free-form tag."""

    type: str
    description: str = ""

    @field_validator("description", mode="before")
    @classmethod
    def _none_to_empty_text(cls, value: Any) -> Any:
        return "" if value is None else value


class ErrorClassification(_CamelModel):
    fixable: list[DopError] = Field(default_factory=list)
    unfixable: list[DopError] = Field(default_factory=list)
    decision: RetryAction


class VisionValidationResult(_CamelModel):
    is_valid: bool
    errors: list[DopError] = Field(default_factory=list)
    correction_prompt: str | None = None
    decision: RetryAction | None = None
    score: float | None = None

    @field_validator("score")
    @classmethod
    def _clamp_score(cls, value: float | None) -> float | None:
        return None if value is None else _clamp_unit(value)


class VisionVerdict(_CamelModel):
    """Raw validator response from the vision model, before triage."""

    is_valid: bool
    errors: list[DopError] = Field(default_factory=list)
    correction_prompt: str | None = None
    score: float | None = None

    @field_validator("errors", mode="before")
    @classmethod
    def _none_to_empty_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("score")
    @classmethod
    def _clamp_score(cls, value: float | None) -> float | None:
        return None if value is None else _clamp_unit(value)


class DecisionResult(_CamelModel):
    action: RetryAction = "try_once"
    reason: str = ""
    enhanced_prompt: str | None = None
    confidence: float = 0.5

    @field_validator("action", mode="before")
    @classmethod
    def _normalize_action(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower().replace("-", "_").replace(" ", "_")
        return value

    @field_validator("reason", mode="before")
    @classmethod
    def _none_to_empty_text(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        return _clamp_unit(value)


class ShotRecommendation(_CamelModel):
    label: str
    angle: str
    reason: str


class ShotSuggestion(_CamelModel):
    title: str
    action: str
    recommendation: ShotRecommendation


class SceneCheckReport(_CamelModel):
    """Everything one continuity check produced for a scene."""

    scene_id: str
    previous_scene_id: str | None = None
    insights: list[ContinuityInsight] = Field(default_factory=list)
    vision: VisionValidationResult | None = None

    @property
    def has_critical(self) -> bool:
        return any(i.severity == "critical" for i in self.insights)


class VisionCredentials(_CamelModel):
    provider: VisionProviderName = "google"
    api_key: str = ""
    model_id: str = ""

    @property
    def is_usable(self) -> bool:
        return bool(self.api_key.strip())
