"""One object binding a project snapshot to every DOP check.

The engine holds no mutable state beyond its constructor inputs, so several
check_scene() calls over independent scene pairs can run concurrently under
asyncio.gather.
"""

from __future__ import annotations

import logging
import random
from typing import Any, Iterable

from pipeline import continuity_analyzer, error_classifier, reference_selector
from pipeline.dop_vocabulary import DEFAULT_VOCABULARY, DopVocabulary
from pipeline.image_data import ImageRef
from pipeline.retry_decision import make_retry_decision
from pipeline.shot_advisor import ShotSuggestionAdvisor
from pipeline.vision_providers import VisionModelProvider
from pipeline.vision_validator import validate_raccord_with_vision
from schemas.raccord import (
    ContinuityInsight,
    DecisionResult,
    DopError,
    ErrorClassification,
    ProjectSnapshot,
    SceneCheckReport,
    ShotSuggestion,
    VisionCredentials,
    VisionValidationResult,
)

logger = logging.getLogger(__name__)


class RaccordEngine:
    def __init__(
        self,
        project: ProjectSnapshot,
        credentials: VisionCredentials | str | None = None,
        *,
        provider: VisionModelProvider | None = None,
        vocabulary: DopVocabulary = DEFAULT_VOCABULARY,
        locale: str | None = None,
        rng: random.Random | None = None,
    ):
        self.project = project
        self.credentials = credentials
        self.provider = provider
        self.vocabulary = vocabulary
        self.locale = locale
        self.rng = rng

    # -- symbolic checks ---------------------------------------------------

    def analyze_raccord(self, scene_id: str) -> list[ContinuityInsight]:
        return continuity_analyzer.analyze_raccord(
            self.project, scene_id, vocabulary=self.vocabulary, locale=self.locale,
        )

    def extract_character_state(self, scene_id: str) -> str | None:
        """Continuity fragment for scene_id, read from the scene right before it."""
        idx = self.project.scene_index(scene_id)
        if idx <= 0:
            return None
        return continuity_analyzer.extract_character_state(
            self.project.scenes[idx - 1].context_description, vocabulary=self.vocabulary,
        )

    def classify_errors(self, errors: Iterable[DopError | dict[str, Any]] | None) -> ErrorClassification:
        return error_classifier.classify_errors(errors, vocabulary=self.vocabulary)

    def suggest_next_shot(self, last_scene_id: str) -> ShotSuggestion | None:
        return ShotSuggestionAdvisor(self.project, rng=self.rng, locale=self.locale).suggest_next_shot(last_scene_id)

    def find_reference(self, scene_id: str) -> str | None:
        return reference_selector.find_cascade_reference(self.project, scene_id)

    # -- vision checks -----------------------------------------------------

    async def validate_raccord_with_vision(
        self,
        current_image: ImageRef,
        prev_image: ImageRef,
        current_scene_id: str,
        prev_scene_id: str,
    ) -> VisionValidationResult:
        return await validate_raccord_with_vision(
            current_image,
            prev_image,
            self.project.find_scene(current_scene_id),
            self.project.find_scene(prev_scene_id),
            self.credentials,
            project=self.project,
            mannequin_mode=self.project.mannequin_mode,
            provider=self.provider,
            vocabulary=self.vocabulary,
        )

    async def make_retry_decision(
        self,
        failed_image: ImageRef,
        reference_image: ImageRef,
        original_prompt: str,
        errors: Iterable[DopError | dict[str, Any]] | None,
    ) -> DecisionResult:
        return await make_retry_decision(
            failed_image,
            reference_image,
            original_prompt,
            errors,
            self.credentials,
            provider=self.provider,
            vocabulary=self.vocabulary,
        )

    async def check_scene(
        self,
        scene_id: str,
        current_image: ImageRef = None,
        prev_image: ImageRef = None,
    ) -> SceneCheckReport:
        """Symbolic insights always; the vision check only when both images are given."""
        idx = self.project.scene_index(scene_id)
        previous = self.project.scenes[idx - 1] if idx > 0 else None

        report = SceneCheckReport(
            scene_id=scene_id,
            previous_scene_id=previous.id if previous else None,
            insights=self.analyze_raccord(scene_id),
        )
        if previous is not None and current_image and prev_image:
            report.vision = await self.validate_raccord_with_vision(
                current_image, prev_image, scene_id, previous.id,
            )
        logger.info(
            "Checked scene %s: %d insight(s), vision=%s",
            scene_id, len(report.insights), "yes" if report.vision else "no",
        )
        return report
