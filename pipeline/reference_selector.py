"""Cascade reference selection — which earlier frame a scene should match.

Priority inside the scene's location group:
  nearest key frame > nearest earlier scene > nearest later scene > group concept image.

Scenes whose error marker says the frame was skipped as unfixable are never
used as a reference, so one wrong face does not propagate down the group.
"""

from __future__ import annotations

import logging
import re

from schemas.raccord import ProjectSnapshot, Scene

logger = logging.getLogger(__name__)

REJECTED_ERROR_MARKERS = ("UNFIXABLE", "DOP Skip")

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


def parse_scene_number(value: str | None) -> int | None:
    """Leading integer of a scene number ("12", "12b" -> 12); None if there is none."""
    match = _LEADING_INT_RE.match(str(value or ""))
    return int(match.group(1)) if match else None


def _is_rejected(scene: Scene) -> bool:
    return bool(scene.error) and any(marker in scene.error for marker in REJECTED_ERROR_MARKERS)


def reference_candidates(project: ProjectSnapshot, current: Scene) -> list[Scene]:
    """Same-group scenes with a usable generated image, in project order."""
    return [
        s for s in project.scenes
        if s.group_id == current.group_id
        and s.generated_image
        and s.id != current.id
        and not _is_rejected(s)
    ]


def _nearest_key_frame(candidates: list[Scene], current_num: int | None) -> Scene | None:
    key_frames = [s for s in candidates if s.is_key_frame]
    if not key_frames:
        return None
    if current_num is None:
        return key_frames[0]

    def distance(scene: Scene) -> float:
        num = parse_scene_number(scene.scene_number)
        return abs(num - current_num) if num is not None else float("inf")

    # min() keeps the first of equal distances, i.e. project order.
    return min(key_frames, key=distance)


def find_cascade_reference(project: ProjectSnapshot, scene_id: str) -> str | None:
    """Image the scene should stay consistent with, or None for the first shot of a group."""
    current = project.find_scene(scene_id)
    if current is None or not current.group_id:
        return None

    candidates = reference_candidates(project, current)
    current_num = parse_scene_number(current.scene_number)

    key_frame = _nearest_key_frame(candidates, current_num)
    if key_frame is not None:
        logger.info("[Cascade] Scene %s referencing KEY FRAME scene %s", current.scene_number, key_frame.scene_number)
        return key_frame.generated_image

    if current_num is not None:
        numbered = [
            (num, s) for s in candidates
            if (num := parse_scene_number(s.scene_number)) is not None
        ]
        before = [(num, s) for num, s in numbered if num < current_num]
        if before:
            scene = max(before, key=lambda pair: pair[0])[1]
            logger.info("[Cascade] Scene %s referencing scene %s", current.scene_number, scene.scene_number)
            return scene.generated_image
        after = [(num, s) for num, s in numbered if num > current_num]
        if after:
            scene = min(after, key=lambda pair: pair[0])[1]
            logger.info("[Cascade] Scene %s referencing scene %s (forward ref)", current.scene_number, scene.scene_number)
            return scene.generated_image

    group = project.find_group(current.group_id)
    if group is not None and group.concept_image:
        logger.info("[Cascade] Using group concept image as reference for scene %s", current.scene_number)
        return group.concept_image
    return None
