"""DOP shot advice — which framing should follow the last scene."""

from __future__ import annotations

import logging
import random

from pipeline import dop_messages
from schemas.raccord import ProjectSnapshot, ShotRecommendation, ShotSuggestion

logger = logging.getLogger(__name__)

# (catalog code, angle) in recommendation order; indices are part of the rules below.
_SHOTS = (
    ("shot_close_up", "close-up"),
    ("shot_wide", "wide-shot"),
    ("shot_pov", "pov"),
    ("shot_ots", "over-the-shoulder"),
    ("shot_reaction", "medium-shot"),
)
CLOSE_UP, WIDE, POV, OTS, REACTION = range(len(_SHOTS))


class ShotSuggestionAdvisor:
    """Suggests the next shot. Pass a seeded random.Random for reproducible advice."""

    def __init__(
        self,
        project: ProjectSnapshot,
        rng: random.Random | None = None,
        locale: str | None = None,
    ):
        self.project = project
        self.rng = rng or random.Random()
        self.locale = dop_messages.resolve_locale(locale)

    def recommendations(self) -> list[ShotRecommendation]:
        recs = []
        for code, angle in _SHOTS:
            label, reason = dop_messages.render(code, self.locale)
            recs.append(ShotRecommendation(label=label, angle=angle, reason=reason or ""))
        return recs

    def suggest_next_shot(self, last_scene_id: str) -> ShotSuggestion | None:
        scene = self.project.find_scene(last_scene_id)
        if scene is None:
            return None

        angle = (scene.camera_angle or "").lower() or (scene.camera_angle_override or "").lower()
        suggestions = self.recommendations()

        if "wide" in angle:
            action = "shot_action_closer"
            pick = suggestions[CLOSE_UP] if self.rng.random() > 0.5 else suggestions[POV]
        elif scene.product_ids:
            action = "shot_action_prop"
            pick = suggestions[POV]
        else:
            action = "shot_action_rhythm"
            pick = suggestions[self.rng.randrange(2) + 1]

        logger.debug("Shot advice after %s (angle=%r): %s", scene.id, angle, pick.angle)
        return ShotSuggestion(
            title=dop_messages.text("shot_title", self.locale),
            action=dop_messages.text(action, self.locale),
            recommendation=pick,
        )


def suggest_next_shot(
    project: ProjectSnapshot,
    last_scene_id: str,
    *,
    rng: random.Random | None = None,
    locale: str | None = None,
) -> ShotSuggestion | None:
    return ShotSuggestionAdvisor(project, rng=rng, locale=locale).suggest_next_shot(last_scene_id)
