"""Keyword tables behind continuity checks and defect triage.

Everything the engine matches against free text lives here as data, so the
vocabulary can be extended or localized without touching control flow.
Keyword tables use case-insensitive substring matching on NFC-normalized text;
the continuity-state tables hold regular expressions searched the same way.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping


def normalize_text(text: str | None) -> str:
    """Lowercase + NFC so precomposed and decomposed Vietnamese compare equal."""
    return unicodedata.normalize("NFC", str(text or "")).lower()


def first_match(text: str | None, keywords: tuple[str, ...] | list[str]) -> str | None:
    """Return the first keyword (in table order) contained in text."""
    haystack = normalize_text(text)
    if not haystack:
        return None
    for keyword in keywords:
        if normalize_text(keyword) in haystack:
            return keyword
    return None


_PICKUP_VERBS = ("nhặt", "lấy", "cầm", "pick up", "take", "grab", "receive")

# keyword -> posture category; order is the search order.
_POSTURE_STATES = {
    "ngồi": "sit",
    "đứng": "stand",
    "nằm": "lie",
    "chạy": "run",
    "đi bộ": "walk",
    "sitting": "sit",
    "standing": "stand",
    "lying": "lie",
    "running": "run",
    "walking": "walk",
}

# (regex, state) read from a previous scene's description and carried into the
# next generation prompt. All matching states are reported, in table order.
_CONTINUITY_STATES = (
    (r"\b(lies?|lying|nằm)\s*(face\s*down|sấp|xuống)", "lying face down on ground"),
    (r"\b(lies?|lying|nằm)\s*(on|trên)", "lying on ground"),
    (r"\b(kneels?|kneeling|quỳ)", "kneeling"),
    (r"\b(stands?|standing|đứng)", "standing"),
    (r"\b(sits?|sitting|ngồi)", "sitting"),
    (r"\b(crouches?|crouching|cúi)", "crouching"),
    (r"\b(hands?\s*cuffed|còng\s*tay)", "hands cuffed behind back"),
)

_CONTINUITY_PROPS = (
    (r"plague\s*doctor\s*mask|mặt\s*nạ", "plague doctor mask present"),
    (r"white\s*ceramic|sứ\s*trắng", "white ceramic object"),
    (r"gun|súng|pistol", "gun visible"),
)

_FIXABLE_ERROR_TYPES = ("prop", "lighting", "spatial", "position")

_UNFIXABLE_TYPE_MARKERS = ("identity", "face")

_UNFIXABLE_KEYWORDS = (
    "face",
    "facial",
    "different person",
    "different character",
    "wrong person",
    "wrong character",
    "unrecognizable",
    "not the same person",
    "identity",
    "khuôn mặt",
    "gương mặt",
    "người khác",
    "nhân vật khác",
    "không nhận ra",
    "sai nhân vật",
)


def _find_patterns(text: str | None, table: tuple[tuple[str, str], ...]) -> list[str]:
    haystack = normalize_text(text)
    if not haystack:
        return []
    return [label for pattern, label in table if re.search(pattern, haystack, re.IGNORECASE)]


@dataclass(frozen=True)
class DopVocabulary:
    pickup_verbs: tuple[str, ...] = _PICKUP_VERBS
    posture_states: Mapping[str, str] = field(default_factory=lambda: MappingProxyType(_POSTURE_STATES))
    continuity_states: tuple[tuple[str, str], ...] = _CONTINUITY_STATES
    continuity_props: tuple[tuple[str, str], ...] = _CONTINUITY_PROPS
    fixable_error_types: tuple[str, ...] = _FIXABLE_ERROR_TYPES
    unfixable_type_markers: tuple[str, ...] = _UNFIXABLE_TYPE_MARKERS
    unfixable_keywords: tuple[str, ...] = _UNFIXABLE_KEYWORDS

    def __post_init__(self):
        # Callers may pass a plain dict; keep a private read-only copy.
        object.__setattr__(self, "posture_states", MappingProxyType(dict(self.posture_states)))

    def find_pickup_verb(self, text: str | None) -> str | None:
        return first_match(text, self.pickup_verbs)

    def find_posture(self, text: str | None) -> tuple[str, str] | None:
        """Return (keyword, category) of the first posture word found, if any."""
        keyword = first_match(text, tuple(self.posture_states))
        if keyword is None:
            return None
        return keyword, self.posture_states[keyword]

    def find_continuity_states(self, text: str | None) -> list[str]:
        """Posture/restraint states followed by visible props, in table order."""
        return _find_patterns(text, self.continuity_states) + _find_patterns(text, self.continuity_props)

    def is_fixable_type(self, error_type: str | None) -> bool:
        wanted = normalize_text(error_type).strip()
        return any(wanted == normalize_text(t) for t in self.fixable_error_types)

    def has_unfixable_type_marker(self, error_type: str | None) -> bool:
        return first_match(error_type, self.unfixable_type_markers) is not None

    def find_unfixable_keyword(self, description: str | None) -> str | None:
        return first_match(description, self.unfixable_keywords)

    def extended(
        self,
        *,
        pickup_verbs: tuple[str, ...] = (),
        posture_states: Mapping[str, str] | None = None,
        continuity_states: tuple[tuple[str, str], ...] = (),
        continuity_props: tuple[tuple[str, str], ...] = (),
        fixable_error_types: tuple[str, ...] = (),
        unfixable_type_markers: tuple[str, ...] = (),
        unfixable_keywords: tuple[str, ...] = (),
    ) -> DopVocabulary:
        """Return a copy with extra keywords appended to each table."""
        return replace(
            self,
            pickup_verbs=self.pickup_verbs + tuple(pickup_verbs),
            posture_states={**self.posture_states, **(posture_states or {})},
            continuity_states=self.continuity_states + tuple(continuity_states),
            continuity_props=self.continuity_props + tuple(continuity_props),
            fixable_error_types=self.fixable_error_types + tuple(fixable_error_types),
            unfixable_type_markers=self.unfixable_type_markers + tuple(unfixable_type_markers),
            unfixable_keywords=self.unfixable_keywords + tuple(unfixable_keywords),
        )


DEFAULT_VOCABULARY = DopVocabulary()
