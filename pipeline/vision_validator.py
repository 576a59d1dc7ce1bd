"""DOP Raccord Validator — two-frame visual continuity check with a vision model.

Fails open. Missing images, missing credentials, transport errors and
malformed responses all yield {is_valid: True, errors: []}, because a
validator outage must never block generation.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import config
from pipeline import dop_messages
from pipeline.dop_vocabulary import DEFAULT_VOCABULARY, DopVocabulary
from pipeline.error_classifier import classify_errors
from pipeline.image_data import ImageRef, load_image_data
from pipeline.llm import decode_model_json
from pipeline.vision_providers import (
    VisionModelProvider,
    build_vision_provider,
    resolve_credentials,
    resolve_model_id,
)
from prompts.raccord_validator_prompt import build_raccord_validator_prompt
from schemas.raccord import (
    ProjectSnapshot,
    Scene,
    VisionCredentials,
    VisionValidationResult,
    VisionVerdict,
)

logger = logging.getLogger(__name__)

STAGE = "raccord_validator"


def _fail_open(reason: str) -> VisionValidationResult:
    logger.info("Raccord validation skipped (pass): %s", reason)
    return VisionValidationResult(is_valid=True, errors=[])


def _coerce_scene(scene: Scene | dict[str, Any] | None) -> Scene | None:
    if scene is None or isinstance(scene, Scene):
        return scene
    return Scene.model_validate(scene)


def _character_names(scene: Scene, project: ProjectSnapshot | None) -> list[str]:
    if project is None:
        return list(scene.character_ids)
    return [project.character_name(cid) or cid for cid in scene.character_ids]


def _prop_names(scene: Scene, project: ProjectSnapshot | None) -> list[str]:
    if project is None:
        return list(scene.product_ids)
    return [project.product_name(pid) or pid for pid in scene.product_ids]


def build_validation_prompt(
    current_scene: Scene,
    prev_scene: Scene,
    *,
    project: ProjectSnapshot | None = None,
    mannequin_mode: bool = False,
) -> str:
    return build_raccord_validator_prompt(
        prev_description=prev_scene.context_description,
        current_description=current_scene.context_description,
        prev_characters=_character_names(prev_scene, project),
        current_characters=_character_names(current_scene, project),
        prev_props=_prop_names(prev_scene, project),
        current_props=_prop_names(current_scene, project),
        same_location=current_scene.group_id == prev_scene.group_id,
        mannequin_mode=mannequin_mode,
    )


async def validate_raccord_with_vision(
    current_image: ImageRef,
    prev_image: ImageRef,
    current_scene: Scene | dict[str, Any] | None,
    prev_scene: Scene | dict[str, Any] | None,
    credentials: VisionCredentials | str | None,
    *,
    project: ProjectSnapshot | None = None,
    mannequin_mode: bool = False,
    provider: VisionModelProvider | None = None,
    vocabulary: DopVocabulary = DEFAULT_VOCABULARY,
) -> VisionValidationResult:
    """Compare prev_image -> current_image for continuity breaks.

    credentials: VisionCredentials, a bare API key for the configured
    provider, or None to read keys from the environment. An empty key means
    "no credentials" and the check passes without any network call.
    provider: optional adapter override (tests, custom backends).
    """
    if not current_image or not prev_image:
        return _fail_open("missing image data")

    try:
        creds = resolve_credentials(credentials)
        if creds is None:
            return _fail_open("no vision credentials")

        current = _coerce_scene(current_scene) or Scene(id="current")
        previous = _coerce_scene(prev_scene) or Scene(id="previous")

        prev_data, current_data = await asyncio.gather(
            load_image_data(prev_image),
            load_image_data(current_image),
        )
        if prev_data is None or current_data is None:
            return _fail_open("could not load images")

        prompt = build_validation_prompt(
            current, previous, project=project, mannequin_mode=mannequin_mode,
        )
        llm_cfg = config.get_dop_llm_config(STAGE, creds.provider)
        model_id = resolve_model_id(creds, STAGE)
        adapter = provider or build_vision_provider(creds)

        raw = await adapter.generate(
            images=[prev_data, current_data],
            prompt=prompt,
            model_id=model_id,
            temperature=llm_cfg["temperature"],
            max_tokens=llm_cfg["max_tokens"],
            stage=STAGE,
        )
    except Exception as exc:
        logger.warning("Raccord validation failed, passing scene: %s", exc)
        return VisionValidationResult(is_valid=True, errors=[])

    verdict = decode_model_json(raw, VisionVerdict, stage=STAGE)
    if verdict is None:
        return _fail_open("unparseable model response")

    classification = classify_errors(verdict.errors, vocabulary=vocabulary)
    result = VisionValidationResult(
        is_valid=verdict.is_valid,
        errors=verdict.errors,
        correction_prompt=verdict.correction_prompt,
        decision=classification.decision,
        score=verdict.score,
    )
    logger.info(
        "Raccord %s -> %s: valid=%s errors=%d decision=%s score=%s",
        previous.id, current.id, result.is_valid, len(result.errors), result.decision, result.score,
    )
    return result


_ERROR_ICONS = {
    "prop": "📦",
    "identity": "👤",
    "face": "👤",
    "lighting": "💡",
    "spatial": "🏞️",
    "position": "📍",
}


def format_validation_result(result: VisionValidationResult, locale: str | None = None) -> str:
    """One-line summary for logs and the CLI."""
    pct = f" ({round(result.score * 100)}%)" if result.score is not None else ""
    if result.is_valid and not result.errors:
        return f"✅ {dop_messages.text('validation_ok', locale)}{pct}"

    issues = ", ".join(
        f"{_ERROR_ICONS.get(e.type.strip().lower(), '⚠️')} {e.description}".rstrip()
        for e in result.errors
    )
    return (
        f"⚠️ {dop_messages.text('validation_issues', locale)}{pct}: "
        f"{issues or dop_messages.text('validation_minor', locale)}"
    )
