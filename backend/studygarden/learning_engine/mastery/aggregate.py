"""
Subject-level mastery aggregation.

Pure reductions from many concept beliefs to one subject score, the garden
stage shown on dashboards, and the weak-area list handed to the study-plan
builder. No I/O and no ambient state.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from fractions import Fraction
from typing import Protocol

from studygarden.core.app_exceptions import raise_invalid_parameter
from studygarden.learning_engine.bkt.core import check_probability, exact_value, percent_half_up
from studygarden.learning_engine.config import (
    GARDEN_STAGE_GROWING_MAX,
    GARDEN_STAGE_SPROUTING_MAX,
    GARDEN_STAGE_STRONG_MAX,
    WEAK_TOPIC_HIGH_PRIORITY_BELOW,
    WEAK_TOPIC_LEVEL_THRESHOLD,
    WEAK_TOPIC_LIMIT,
    WEAK_TOPIC_MEDIUM_PRIORITY_BELOW,
    WEAK_TOPIC_STUDY_MINUTES,
)


class GardenStage(str, Enum):
    """Coarse progress label, lowest first."""

    SPROUTING = "sprouting"
    GROWING = "growing"
    STRONG = "strong"
    MASTERED = "mastered"

    @property
    def rank(self) -> int:
        return list(GardenStage).index(self)


class StudyPriority(str, Enum):
    """Study-plan priority for a concept or weak area."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class SubjectMasteryAggregate:
    """Derived subject metrics; a pure function of the subject's concept beliefs."""

    average_mastery: int
    garden_stage: GardenStage
    topic_count: int

    @property
    def pass_chance(self) -> int:
        return self.average_mastery

    @property
    def garden_health(self) -> int:
        return self.average_mastery

    def to_dict(self) -> dict:
        return {
            "average_mastery": self.average_mastery,
            "pass_chance": self.pass_chance,
            "garden_health": self.garden_health,
            "garden_stage": self.garden_stage.value,
            "topic_count": self.topic_count,
        }


class MasteryRow(Protocol):
    """Read-only view of a stored concept state, as needed for weak-area detection."""

    topic_name: str
    mastery_level: int
    correct_count: int
    incorrect_count: int
    total_attempts: int
    last_practiced_at: datetime | None


@dataclass(frozen=True)
class WeakArea:
    """A concept that needs focus, ready for the study-plan prompt builder."""

    topic_name: str
    mastery_level: int
    correct_count: int
    incorrect_count: int
    total_attempts: int
    last_practiced_at: datetime | None
    priority: StudyPriority
    recommended_study_minutes: int


def average_mastery(p_known_values: Iterable[float]) -> int:
    """
    Mean of concept P(known) values as an integer 0-100 (round half up).

    The mean is taken exactly over the values as written, so any permutation
    of the input gives the same result and halves always round up. An empty
    subject scores 0.
    """
    values = [exact_value(check_probability("p_known", p)) for p in p_known_values]
    if not values:
        return 0
    return percent_half_up(sum(values, Fraction(0)) / len(values))


def garden_stage(mastery_level: int) -> GardenStage:
    """Bucket a 0-100 mastery level into a garden stage."""
    if isinstance(mastery_level, bool) or not isinstance(mastery_level, (int, float)):
        raise_invalid_parameter("mastery_level", mastery_level, "[0, 100]")
    if not (0 <= mastery_level <= 100):
        raise_invalid_parameter("mastery_level", mastery_level, "[0, 100]")

    if mastery_level < GARDEN_STAGE_SPROUTING_MAX.value:
        return GardenStage.SPROUTING
    if mastery_level < GARDEN_STAGE_GROWING_MAX.value:
        return GardenStage.GROWING
    if mastery_level < GARDEN_STAGE_STRONG_MAX.value:
        return GardenStage.STRONG
    return GardenStage.MASTERED


def stage_priority(stage: GardenStage) -> StudyPriority:
    """Lower stage means higher study priority."""
    if stage is GardenStage.SPROUTING:
        return StudyPriority.HIGH
    if stage is GardenStage.GROWING:
        return StudyPriority.MEDIUM
    return StudyPriority.LOW


def build_subject_aggregate(p_known_values: Iterable[float]) -> SubjectMasteryAggregate:
    """Recompute a subject's aggregate from all of its concept beliefs."""
    values = list(p_known_values)
    level = average_mastery(values)
    return SubjectMasteryAggregate(
        average_mastery=level,
        garden_stage=garden_stage(level),
        topic_count=len(values),
    )


def weak_area_priority(mastery_level: int) -> StudyPriority:
    if mastery_level < WEAK_TOPIC_HIGH_PRIORITY_BELOW.value:
        return StudyPriority.HIGH
    if mastery_level < WEAK_TOPIC_MEDIUM_PRIORITY_BELOW.value:
        return StudyPriority.MEDIUM
    return StudyPriority.LOW


def find_weak_topics(
    rows: Iterable[MasteryRow],
    threshold: int = WEAK_TOPIC_LEVEL_THRESHOLD.value,
    limit: int = WEAK_TOPIC_LIMIT.value,
) -> list[WeakArea]:
    """
    Concepts below the mastery threshold, weakest first.

    Args:
        rows: Stored concept states for one subject
        threshold: Mastery level below which a concept is weak
        limit: Maximum number of weak areas to return

    Returns:
        List of WeakArea, at most `limit` long
    """
    if limit < 0:
        raise_invalid_parameter("limit", limit, ">= 0")

    weak = sorted(
        (row for row in rows if row.mastery_level < threshold),
        key=lambda row: (row.mastery_level, row.topic_name),
    )

    areas = []
    for row in weak[:limit]:
        priority = weak_area_priority(row.mastery_level)
        areas.append(
            WeakArea(
                topic_name=row.topic_name,
                mastery_level=row.mastery_level,
                correct_count=row.correct_count,
                incorrect_count=row.incorrect_count,
                total_attempts=row.total_attempts,
                last_practiced_at=row.last_practiced_at,
                priority=priority,
                recommended_study_minutes=WEAK_TOPIC_STUDY_MINUTES.value[priority.value],
            )
        )
    return areas
