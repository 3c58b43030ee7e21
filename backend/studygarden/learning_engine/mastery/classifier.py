"""Mastery verdict for a single concept."""

from studygarden.learning_engine.bkt.core import check_probability
from studygarden.learning_engine.config import MASTERY_THRESHOLD


def is_mastered(p_known: float, threshold: float = MASTERY_THRESHOLD.value) -> bool:
    """True when P(known) has reached the threshold (inclusive)."""
    p_known = check_probability("p_known", p_known)
    threshold = check_probability("threshold", threshold)
    return p_known >= threshold
