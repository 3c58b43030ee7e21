"""Concept label normalisation."""

import re
import unicodedata

from studygarden.core.app_exceptions import InvalidObservationError

_WHITESPACE = re.compile(r"\s+")


def normalize_concept(label: str) -> str:
    """
    Canonical key for a free-text concept label.

    Labels come from the question generator unnormalised, so "Cell Biology",
    " cell  biology " and "CELL BIOLOGY" must map to one mastery row. Only
    casing, Unicode compatibility forms and whitespace are folded; synonyms
    stay distinct.

    Raises:
        InvalidObservationError: If label is not a string or is blank
    """
    if not isinstance(label, str):
        raise InvalidObservationError(
            f"Concept label must be a string, got {type(label).__name__}",
            details={"value": repr(label)},
        )
    key = _WHITESPACE.sub(" ", unicodedata.normalize("NFKC", label)).strip().casefold()
    if not key:
        raise InvalidObservationError("Concept label is blank", details={"value": repr(label)})
    return key
