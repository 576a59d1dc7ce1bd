"""Split vision defects into fixable and unfixable ones.

Identity and face defects cannot be repaired by re-prompting a diffusion
model, so a single one of them turns the whole attempt into a skip.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from pipeline.dop_vocabulary import DEFAULT_VOCABULARY, DopVocabulary
from schemas.raccord import DopError, ErrorClassification

logger = logging.getLogger(__name__)


def coerce_errors(errors: Iterable[DopError | dict[str, Any]] | None) -> list[DopError]:
    """Validate raw error dicts at the engine boundary (order preserved)."""
    if not errors:
        return []
    return [e if isinstance(e, DopError) else DopError.model_validate(e) for e in errors]


def is_fixable(error: DopError, vocabulary: DopVocabulary = DEFAULT_VOCABULARY) -> bool:
    if vocabulary.is_fixable_type(error.type):
        return True
    if vocabulary.has_unfixable_type_marker(error.type):
        return False
    return vocabulary.find_unfixable_keyword(error.description) is None


def classify_errors(
    errors: Iterable[DopError | dict[str, Any]] | None,
    *,
    vocabulary: DopVocabulary = DEFAULT_VOCABULARY,
) -> ErrorClassification:
    fixable: list[DopError] = []
    unfixable: list[DopError] = []
    for error in coerce_errors(errors):
        (fixable if is_fixable(error, vocabulary) else unfixable).append(error)

    if unfixable:
        decision = "skip"
    elif fixable:
        decision = "retry"
    else:
        decision = "skip"

    logger.debug(
        "Classified DOP errors: fixable=%d unfixable=%d decision=%s",
        len(fixable), len(unfixable), decision,
    )
    return ErrorClassification(fixable=fixable, unfixable=unfixable, decision=decision)
