"""Pydantic schemas for the mastery pipeline."""

from datetime import datetime
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictBool, field_validator

from studygarden.learning_engine.mastery.aggregate import GardenStage, StudyPriority
from studygarden.learning_engine.mastery.concepts import normalize_concept


class QuizObservation(BaseModel):
    """One graded answer from a completed quiz attempt."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    concept: str = Field(..., min_length=1, max_length=255, description="Concept label (normalised)")
    is_correct: StrictBool = Field(
        ...,
        validation_alias=AliasChoices("is_correct", "isCorrect"),
        description="Whether the answer was graded correct",
    )

    @field_validator("concept")
    @classmethod
    def normalise_concept(cls, v: str) -> str:
        return normalize_concept(v)


class SubjectMasteryAggregateResponse(BaseModel):
    """Subject metrics for dashboard cards and the study-plan prompt builder."""

    model_config = ConfigDict(from_attributes=True)

    average_mastery: int = Field(..., ge=0, le=100)
    pass_chance: int = Field(..., ge=0, le=100)
    garden_health: int = Field(..., ge=0, le=100)
    garden_stage: GardenStage
    topic_count: int = Field(..., ge=0)


class ConceptMasteryResponse(BaseModel):
    """Stored concept state, without raw BKT parameters."""

    model_config = ConfigDict(from_attributes=True)

    topic_name: str
    mastery_level: int = Field(..., ge=0, le=100)
    correct_count: int = Field(..., ge=0)
    incorrect_count: int = Field(..., ge=0)
    total_attempts: int = Field(..., ge=0)
    last_practiced_at: datetime | None = None


class WeakAreaResponse(ConceptMasteryResponse):
    """A concept flagged for focus."""

    priority: StudyPriority
    recommended_study_minutes: int = Field(..., gt=0)


class ConceptOutcomeResponse(BaseModel):
    """Result of updating one concept from a quiz attempt."""

    model_config = ConfigDict(from_attributes=True)

    concept: str
    succeeded: bool
    observations: int = Field(..., ge=1)
    previous_mastery: int | None = Field(None, ge=0, le=100)
    mastery_level: int | None = Field(None, ge=0, le=100)
    previous_stage: GardenStage | None = None
    garden_stage: GardenStage | None = None
    improved: bool = False
    error_code: str | None = None
    error: str | None = None


class AttemptUpdateResponse(BaseModel):
    """Acknowledgement of a processed quiz attempt."""

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    subject_id: UUID
    succeeded: list[ConceptOutcomeResponse]
    failed: list[ConceptOutcomeResponse]
    aggregate: SubjectMasteryAggregateResponse | None = None
    aggregate_error: str | None = None
