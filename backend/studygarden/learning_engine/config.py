"""
Learning Engine Configuration - Central Constants Registry.

All constants used by the mastery algorithms MUST be defined here with proper
provenance. No magic numbers allowed in algorithm implementations.

Each constant includes:
- value: The actual constant value
- source: Citation (paper, product calibration, legacy behaviour, etc.)
- notes: Rationale and context
- validated: Whether the value has been validated against its source
"""

import math
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class SourcedValue:
    """
    A constant value with documented provenance.

    All learning algorithm constants must use this type to enforce documentation.
    """

    value: Any
    source: str
    notes: str = ""
    validated: bool = False

    def __post_init__(self):
        if not self.source or self.source.strip() == "":
            raise ValueError(f"SourcedValue must have non-empty source. Got: {self.source}")


# =============================================================================
# BKT (Bayesian Knowledge Tracing) Constants
# =============================================================================

# Default BKT Parameters (used when a concept has no configured parameters)
# Reference: Corbett, A.T., Anderson, J.R. (1995). "Knowledge tracing: Modeling the
# acquisition of procedural knowledge"
BKT_DEFAULT_P_INIT = SourcedValue(
    value=0.3,
    source="Legacy StudyGarden default P(L0)",
    notes="A new learner starts at 30% mastery, so an untouched concept reports level 30.",
    validated=True,
)

BKT_DEFAULT_P_TRANSIT = SourcedValue(
    value=0.01,
    source="Calibrated against the learning-curve acceptance scenarios",
    notes="Legacy default was 0.1. With the learning transition applied after every "
    "observation, 0.1 lets two misses followed by five hits recover to ~100 instead of "
    "the expected 50-80 band. 0.01 keeps the recovery curve inside the band.",
    validated=True,
)

BKT_DEFAULT_P_GUESS = SourcedValue(
    value=0.4,
    source="Calibrated against the learning-curve acceptance scenarios",
    notes="Legacy defaults were 0.2/0.25. Generated quizzes mix true/false (50%) with "
    "4-option MCQ (25%); 0.4 sits between and keeps a single hit from over-crediting.",
    validated=True,
)

BKT_DEFAULT_P_SLIP = SourcedValue(
    value=0.1,
    source="Legacy StudyGarden default P(S) + BKT literature",
    notes="10% chance of a careless error despite knowing the concept.",
    validated=True,
)

# Numerical Stability
BKT_DRIFT_EPSILON = SourcedValue(
    value=1e-9,
    source="Standard numerical practice for probability computations",
    notes="Results outside [0, 1] by at most this much are float drift and get clamped. "
    "Anything further out is a bug and raises.",
    validated=True,
)

# =============================================================================
# Mastery Classification & Aggregation Constants
# =============================================================================

MASTERY_THRESHOLD = SourcedValue(
    value=0.8,
    source="Legacy StudyGarden isTopicMastered default",
    notes="A concept counts as mastered once P(known) >= 0.8. Matches the lower bound "
    "of the MASTERED garden stage.",
    validated=True,
)

# Garden stage upper bounds (exclusive) on a 0-100 mastery level.
# Anything at or above the last bound is MASTERED.
GARDEN_STAGE_SPROUTING_MAX = SourcedValue(
    value=25,
    source="Product calibration: garden metaphor stage boundaries",
    notes="Levels below 25 are Sprouting.",
    validated=False,
)

GARDEN_STAGE_GROWING_MAX = SourcedValue(
    value=60,
    source="Product calibration: garden metaphor stage boundaries",
    notes="Levels in [25, 60) are Growing.",
    validated=False,
)

GARDEN_STAGE_STRONG_MAX = SourcedValue(
    value=80,
    source="Product calibration: aligned with MASTERY_THRESHOLD",
    notes="Levels in [60, 80) are Strong; 80 and above is Mastered.",
    validated=True,
)

# Weak Topic Detection
WEAK_TOPIC_LEVEL_THRESHOLD = SourcedValue(
    value=60,
    source="Legacy StudyGarden getWeakTopics default",
    notes="Concepts with mastery level below 60 are surfaced as weak areas.",
    validated=True,
)

WEAK_TOPIC_LIMIT = SourcedValue(
    value=5,
    source="Legacy StudyGarden getWeakTopics default",
    notes="Maximum number of weak areas returned to the study-plan builder.",
    validated=True,
)

WEAK_TOPIC_HIGH_PRIORITY_BELOW = SourcedValue(
    value=30,
    source="Legacy StudyGarden getWeakTopics priority bands",
    notes="Weak areas below 30 are high priority.",
    validated=True,
)

WEAK_TOPIC_MEDIUM_PRIORITY_BELOW = SourcedValue(
    value=50,
    source="Legacy StudyGarden getWeakTopics priority bands",
    notes="Weak areas in [30, 50) are medium priority; the rest are low.",
    validated=True,
)

WEAK_TOPIC_STUDY_MINUTES = SourcedValue(
    value={"high": 60, "medium": 45, "low": 30},
    source="Legacy StudyGarden getWeakTopics recommended study time",
    notes="Recommended minutes of study per weak area by priority.",
    validated=False,
)


# =============================================================================
# Validation Functions
# =============================================================================


def validate_all_constants():
    """
    Validate all constants at import time.

    Raises:
        ValueError: If any constant fails validation
    """
    errors = []

    for name, const in [
        ("BKT_DEFAULT_P_INIT", BKT_DEFAULT_P_INIT),
        ("BKT_DEFAULT_P_TRANSIT", BKT_DEFAULT_P_TRANSIT),
        ("BKT_DEFAULT_P_GUESS", BKT_DEFAULT_P_GUESS),
        ("BKT_DEFAULT_P_SLIP", BKT_DEFAULT_P_SLIP),
        ("MASTERY_THRESHOLD", MASTERY_THRESHOLD),
    ]:
        if not (0.0 <= const.value <= 1.0) or not math.isfinite(const.value):
            errors.append(f"{name} must be in [0, 1], got {const.value}")

    # Learned must answer correctly more often than unlearned
    if not ((1.0 - BKT_DEFAULT_P_SLIP.value) > BKT_DEFAULT_P_GUESS.value):
        errors.append("BKT: (1-S) must be > G for distinguishability")

    if not (0 < BKT_DRIFT_EPSILON.value < 1e-6):
        errors.append(f"BKT_DRIFT_EPSILON must be tiny and positive, got {BKT_DRIFT_EPSILON.value}")

    bounds = [
        GARDEN_STAGE_SPROUTING_MAX.value,
        GARDEN_STAGE_GROWING_MAX.value,
        GARDEN_STAGE_STRONG_MAX.value,
    ]
    if not (0 < bounds[0] < bounds[1] < bounds[2] <= 100):
        errors.append(f"Garden stage bounds must be strictly increasing within (0, 100], got {bounds}")

    # The Mastered stage and the mastery verdict must agree
    if GARDEN_STAGE_STRONG_MAX.value != round(MASTERY_THRESHOLD.value * 100):
        errors.append("GARDEN_STAGE_STRONG_MAX must equal MASTERY_THRESHOLD as a percentage")

    if not (
        0 < WEAK_TOPIC_HIGH_PRIORITY_BELOW.value
        < WEAK_TOPIC_MEDIUM_PRIORITY_BELOW.value
        <= WEAK_TOPIC_LEVEL_THRESHOLD.value
        <= 100
    ):
        errors.append("Weak topic priority bands must be increasing and below the weak threshold")

    if WEAK_TOPIC_LIMIT.value < 1:
        errors.append("WEAK_TOPIC_LIMIT must be positive")

    if errors:
        raise ValueError("Constant validation failed:\n" + "\n".join(f"  - {e}" for e in errors))


# Validate on import
validate_all_constants()
