"""DOP Retry Decision — should a failed frame be regenerated?

Two tiers:
  1. Fast path: keyword triage of the reported defects. Anything unfixable
     (or nothing to fix) is a skip with high confidence, no model call.
  2. Deep path: one vision call comparing the failed frame against a
     reference frame, returning an action plus an additive prompt fragment.

If the deep path is unavailable or fails for any reason, the fast-path
classification is returned with reduced confidence and a deterministic
prompt fragment built from the fixable defects.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable

import config
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
from prompts.retry_decision_prompt import build_retry_decision_prompt
from schemas.raccord import DecisionResult, DopError, ErrorClassification, VisionCredentials

logger = logging.getLogger(__name__)

STAGE = "retry_decision"

FAST_PATH_CONFIDENCE = 0.9
FALLBACK_CONFIDENCE = 0.7


def _describe(errors: list[DopError]) -> str:
    return "; ".join(e.description or e.type for e in errors)


def build_fallback_fragment(fixable: list[DopError]) -> str | None:
    """Additive prompt fragment targeting each fixable defect, in report order."""
    if not fixable:
        return None
    fixes = "; ".join(
        f"[{e.type}] {e.description}".strip() if e.description else f"[{e.type}]"
        for e in fixable
    )
    return f"RACCORD FIX (keep everything else unchanged): {fixes}"


def _fast_path(classification: ErrorClassification) -> DecisionResult:
    if classification.unfixable:
        reason = f"Unfixable defect(s): {_describe(classification.unfixable)}"
    else:
        reason = "No defects reported"
    return DecisionResult(action="skip", reason=reason, confidence=FAST_PATH_CONFIDENCE)


def _fallback(classification: ErrorClassification, why: str) -> DecisionResult:
    logger.info("Retry decision fallback (%s)", why)
    return DecisionResult(
        action=classification.decision,
        reason=(
            f"Fallback: {len(classification.fixable)} fixable, "
            f"{len(classification.unfixable)} unfixable defect(s)"
        ),
        enhanced_prompt=(
            build_fallback_fragment(classification.fixable)
            if classification.decision == "retry" else None
        ),
        confidence=FALLBACK_CONFIDENCE,
    )


async def make_retry_decision(
    failed_image: ImageRef,
    reference_image: ImageRef,
    original_prompt: str,
    errors: Iterable[DopError | dict[str, Any]] | None,
    credentials: VisionCredentials | str | None,
    *,
    provider: VisionModelProvider | None = None,
    vocabulary: DopVocabulary = DEFAULT_VOCABULARY,
) -> DecisionResult:
    classification = classify_errors(errors, vocabulary=vocabulary)
    if classification.decision == "skip":
        result = _fast_path(classification)
        logger.info("Retry decision (fast path): skip, %s", result.reason)
        return result

    if not failed_image or not reference_image:
        return _fallback(classification, "missing image")

    try:
        creds = resolve_credentials(credentials)
        if creds is None:
            return _fallback(classification, "no vision credentials")

        reference_data, failed_data = await asyncio.gather(
            load_image_data(reference_image),
            load_image_data(failed_image),
        )
        if reference_data is None or failed_data is None:
            return _fallback(classification, "could not load images")

        prompt = build_retry_decision_prompt(
            original_prompt=original_prompt,
            defects=[(e.type, e.description) for e in classification.fixable + classification.unfixable],
        )
        llm_cfg = config.get_dop_llm_config(STAGE, creds.provider)
        model_id = resolve_model_id(creds, STAGE)
        adapter = provider or build_vision_provider(creds)

        raw = await adapter.generate(
            images=[reference_data, failed_data],
            prompt=prompt,
            model_id=model_id,
            temperature=llm_cfg["temperature"],
            max_tokens=llm_cfg["max_tokens"],
            stage=STAGE,
        )
    except Exception as exc:
        logger.warning("Retry decision model call failed: %s", exc)
        return _fallback(classification, "model call failed")

    decision = decode_model_json(raw, DecisionResult, stage=STAGE)
    if decision is None:
        return _fallback(classification, "unparseable model response")

    logger.info(
        "Retry decision (deep path): %s confidence=%.2f reason=%s",
        decision.action, decision.confidence, decision.reason,
    )
    return decision


def apply_enhanced_prompt(original_prompt: str, result: DecisionResult) -> str:
    """Prompt for the next attempt: the original plus the additive fragment."""
    original = str(original_prompt or "").rstrip()
    fragment = str(result.enhanced_prompt or "").strip()
    if result.action == "skip" or not fragment or fragment in original:
        return original
    if not original:
        return fragment
    return f"{original}\n\n{fragment}"
