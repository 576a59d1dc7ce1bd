"""Symbolic continuity (raccord) checks between a scene and its predecessor.

Runs on scene metadata only (no images, no network), so it is always
available and runs before any paid vision call.

Checks, in output order:
  1. location   : same group vs. transition between groups
  2. props      : props that vanished, props that appeared without a pickup
  3. characters : characters that left the frame
  4. posture    : a different sit/stand/lie/run/walk word in each description

extract_character_state() turns the previous description into a prompt
fragment that keeps poses and visible props consistent in the next frame.
"""

from __future__ import annotations

import logging

from pipeline import dop_messages
from pipeline.dop_vocabulary import DEFAULT_VOCABULARY, DopVocabulary
from schemas.raccord import ContinuityInsight, ProjectSnapshot, Scene

logger = logging.getLogger(__name__)


def _missing(source: list[str], other: list[str]) -> list[str]:
    """Ids in source that are not in other, in source order."""
    other_set = set(other)
    return [item for item in source if item not in other_set]


def _insight(
    code: str,
    *,
    kind: str,
    severity: str,
    locale: str | None,
    affected_ids: list[str] | None = None,
    **params,
) -> ContinuityInsight:
    message, suggestion = dop_messages.render(code, locale, **params)
    return ContinuityInsight(
        type=kind,
        severity=severity,
        message=message,
        suggestion=suggestion,
        affected_ids=affected_ids,
        code=code,
        params=params,
    )


class ContinuityAnalyzer:
    """Compares adjacent scenes of a project snapshot."""

    def __init__(
        self,
        project: ProjectSnapshot,
        *,
        vocabulary: DopVocabulary = DEFAULT_VOCABULARY,
        locale: str | None = None,
    ):
        self.project = project
        self.vocabulary = vocabulary
        self.locale = dop_messages.resolve_locale(locale)

    def analyze_raccord(self, scene_id: str) -> list[ContinuityInsight]:
        idx = self.project.scene_index(scene_id)
        if idx <= 0:
            return []

        current = self.project.scenes[idx]
        previous = self.project.scenes[idx - 1]

        insights: list[ContinuityInsight] = []
        insights.append(self._check_location(previous, current))
        insights.extend(self._check_props(previous, current))
        insights.extend(self._check_characters(previous, current))
        insights.extend(self._check_posture(previous, current))

        logger.debug(
            "Raccord %s -> %s: %d insight(s)", previous.id, current.id, len(insights),
        )
        return insights

    # -- checks ------------------------------------------------------------

    def _check_location(self, previous: Scene, current: Scene) -> ContinuityInsight:
        if current.group_id == previous.group_id:
            return _insight(
                "same_location", kind="environment", severity="info", locale=self.locale,
            )
        return _insight(
            "location_transition",
            kind="flow",
            severity="info",
            locale=self.locale,
            from_name=self._location_name(previous.group_id),
            to_name=self._location_name(current.group_id),
        )

    def _check_props(self, previous: Scene, current: Scene) -> list[ContinuityInsight]:
        found: list[ContinuityInsight] = []

        disappeared = _missing(previous.product_ids, current.product_ids)
        if disappeared:
            found.append(_insight(
                "prop_disappeared",
                kind="prop",
                severity="warning",
                locale=self.locale,
                affected_ids=disappeared,
                names=self._prop_names(disappeared),
            ))

        appeared = _missing(current.product_ids, previous.product_ids)
        if appeared:
            pickup = self.vocabulary.find_pickup_verb(previous.context_description)
            if pickup is None:
                found.append(_insight(
                    "prop_jump",
                    kind="prop",
                    severity="critical",
                    locale=self.locale,
                    affected_ids=appeared,
                    names=self._prop_names(appeared),
                ))
            else:
                logger.debug("Props %s explained by pickup verb %r", appeared, pickup)

        return found

    def _check_characters(self, previous: Scene, current: Scene) -> list[ContinuityInsight]:
        # Arriving characters are intentionally not flagged.
        left = _missing(previous.character_ids, current.character_ids)
        if not left:
            return []
        return [_insight(
            "characters_left",
            kind="character",
            severity="info",
            locale=self.locale,
            names=self._character_names(left),
        )]

    def _check_posture(self, previous: Scene, current: Scene) -> list[ContinuityInsight]:
        prev_state = self.vocabulary.find_posture(previous.context_description)
        curr_state = self.vocabulary.find_posture(current.context_description)
        if prev_state is None or curr_state is None:
            return []
        if prev_state[0] == curr_state[0]:
            return []
        return [_insight(
            "posture_change",
            kind="flow",
            severity="info",
            locale=self.locale,
            from_state=prev_state[0],
            to_state=curr_state[0],
        )]

    # -- name lookup -------------------------------------------------------

    def _location_name(self, group_id: str | None) -> str:
        return self.project.group_name(group_id) or dop_messages.text("unknown_location", self.locale)

    def _prop_names(self, ids: list[str]) -> str:
        fallback = dop_messages.text("unknown_prop", self.locale)
        return ", ".join(self.project.product_name(pid) or fallback for pid in ids)

    def _character_names(self, ids: list[str]) -> str:
        fallback = dop_messages.text("unknown_character", self.locale)
        return ", ".join(self.project.character_name(cid) or fallback for cid in ids)


def analyze_raccord(
    project: ProjectSnapshot,
    scene_id: str,
    *,
    vocabulary: DopVocabulary = DEFAULT_VOCABULARY,
    locale: str | None = None,
) -> list[ContinuityInsight]:
    """Continuity insights for scene_id against the scene right before it."""
    return ContinuityAnalyzer(project, vocabulary=vocabulary, locale=locale).analyze_raccord(scene_id)


def extract_character_state(
    previous_description: str | None,
    *,
    vocabulary: DopVocabulary = DEFAULT_VOCABULARY,
) -> str | None:
    """Prompt fragment that carries poses and visible props into the next frame.

    Returns None when the description names no known state.
    """
    states = vocabulary.find_continuity_states(previous_description)
    if not states:
        return None
    logger.debug("Carrying %d continuity state(s) forward: %s", len(states), states)
    return (
        f"[CONTINUITY FROM PREVIOUS SCENE: {', '.join(states)}. "
        "MAINTAIN these positions/elements in current frame.]"
    )
