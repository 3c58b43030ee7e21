"""
Mastery Update Service - turns a graded quiz attempt into persisted mastery.

Handles:
- Validating and grouping the attempt's observations per concept
- Loading or lazily initialising each concept's BKT state
- Driving the state through the engine, in answer order
- Persisting with optimistic versioning, retrying conflicts and transient
  failures with bounded exponential backoff
- Recomputing and persisting the subject aggregate

Each concept is independent: one failing concept is reported in the result
and never aborts its siblings or the aggregate recompute.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from pydantic import ValidationError

from studygarden.core.app_exceptions import (
    ConcurrentUpdateError,
    InvalidObservationError,
    InvalidParameterError,
    MasteryError,
    PersistenceError,
    ProbabilityDriftError,
)
from studygarden.core.config import Settings, settings as default_settings
from studygarden.core.keyed_lock import KeyedLock
from studygarden.learning_engine.bkt.core import BKTParams, batch_update
from studygarden.learning_engine.mastery.aggregate import (
    GardenStage,
    SubjectMasteryAggregate,
    WeakArea,
    build_subject_aggregate,
    find_weak_topics,
    garden_stage as stage_for_level,
)
from studygarden.learning_engine.mastery.store import ConceptMasteryRecord, MasteryStore
from studygarden.schemas.mastery import AttemptUpdateResponse, QuizObservation

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR_CODE = "UNEXPECTED_ERROR"


@dataclass(frozen=True)
class ConceptOutcome:
    """What happened to one concept of a quiz attempt."""

    concept: str
    observations: int
    succeeded: bool
    previous_mastery: int | None = None
    mastery_level: int | None = None
    error_code: str | None = None
    error: str | None = None

    @property
    def previous_stage(self) -> GardenStage | None:
        return stage_for_level(self.previous_mastery) if self.previous_mastery is not None else None

    @property
    def garden_stage(self) -> GardenStage | None:
        return stage_for_level(self.mastery_level) if self.mastery_level is not None else None

    @property
    def improved(self) -> bool:
        """True when the concept moved up at least one garden stage."""
        if not self.succeeded or self.previous_stage is None or self.garden_stage is None:
            return False
        return self.garden_stage.rank > self.previous_stage.rank


@dataclass
class AttemptUpdateResult:
    """Per-concept outcomes plus the recomputed subject aggregate."""

    user_id: UUID
    subject_id: UUID
    outcomes: list[ConceptOutcome] = field(default_factory=list)
    aggregate: SubjectMasteryAggregate | None = None
    aggregate_error: str | None = None

    @property
    def succeeded(self) -> list[ConceptOutcome]:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> list[ConceptOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def improved_concepts(self) -> list[ConceptOutcome]:
        return [o for o in self.outcomes if o.improved]

    def to_response(self) -> AttemptUpdateResponse:
        return AttemptUpdateResponse.model_validate(self)


@dataclass(frozen=True)
class SubjectMastery:
    """Stored concept states for one subject and their aggregate."""

    concepts: list[ConceptMasteryRecord]
    aggregate: SubjectMasteryAggregate


def group_observations(
    observations: Sequence[QuizObservation | Mapping[str, Any]],
) -> dict[str, list[bool]]:
    """
    Validate observations and group answers per normalised concept.

    Concepts keep the order of their first appearance; answers keep the order
    they were given in.

    Raises:
        InvalidObservationError: If any observation is malformed
    """
    grouped: dict[str, list[bool]] = {}
    for index, raw in enumerate(observations):
        try:
            obs = raw if isinstance(raw, QuizObservation) else QuizObservation.model_validate(raw)
        except ValidationError as e:
            raise InvalidObservationError(
                f"Observation {index} is invalid",
                details={"index": index, "errors": e.errors(include_url=False, include_context=False)},
            ) from e
        grouped.setdefault(obs.concept, []).append(obs.is_correct)
    return grouped


def apply_observations(
    record: ConceptMasteryRecord, answers: Sequence[bool], now: datetime
) -> ConceptMasteryRecord:
    """Drive a concept record through the engine and bump its counters."""
    state = batch_update(record.state, answers)
    correct = sum(1 for a in answers if a)
    incorrect = len(answers) - correct
    return replace(
        record,
        p_known=state.p_known,
        p_learned=state.p_learned,
        mastery_level=state.mastery_level,
        correct_count=record.correct_count + correct,
        incorrect_count=record.incorrect_count + incorrect,
        total_attempts=record.total_attempts + len(answers),
        last_practiced_at=now,
    )


class MasteryUpdateService:
    """
    Orchestrates mastery updates for completed quiz attempts.

    The store is injected; the service holds no database client of its own.
    Updates to the same (user, subject, concept) are serialised in-process by
    a per-key lock, and across processes by the store's version check.
    """

    def __init__(
        self,
        store: MasteryStore,
        *,
        config: Settings | None = None,
        default_params: BKTParams | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        config = config or default_settings
        self._store = store
        self._default_params = default_params or BKTParams()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._sleep = sleep
        self._max_retries = config.MASTERY_UPDATE_MAX_RETRIES
        self._backoff_base = config.MASTERY_UPDATE_BACKOFF_BASE_SECONDS
        self._backoff_max = config.MASTERY_UPDATE_BACKOFF_MAX_SECONDS
        self._locks = KeyedLock()

    def backoff_delay(self, attempt: int) -> float:
        """Exponential backoff: base * 2^attempt seconds, capped."""
        return min(self._backoff_base * (2**attempt), self._backoff_max)

    async def process_attempt(
        self,
        user_id: UUID,
        subject_id: UUID,
        observations: Sequence[QuizObservation | Mapping[str, Any]],
    ) -> AttemptUpdateResult:
        """
        Apply a completed quiz attempt to the learner's mastery.

        Args:
            user_id: Learner
            subject_id: Subject the quiz belongs to
            observations: Graded answers in the order they were answered

        Returns:
            AttemptUpdateResult listing succeeded and failed concepts

        Raises:
            InvalidObservationError: If any observation is malformed (nothing is written)
        """
        grouped = group_observations(observations)
        result = AttemptUpdateResult(user_id=user_id, subject_id=subject_id)

        for concept, answers in grouped.items():
            outcome = await self._update_concept(user_id, subject_id, concept, answers)
            result.outcomes.append(outcome)

        if result.succeeded:
            await self._refresh_aggregate(result)

        if result.failed:
            logger.warning(
                f"Quiz attempt for user {user_id}, subject {subject_id}: "
                f"{len(result.failed)}/{len(result.outcomes)} concept updates failed: "
                f"{[o.concept for o in result.failed]}"
            )
        else:
            logger.info(
                f"Quiz attempt for user {user_id}, subject {subject_id}: "
                f"updated {len(result.outcomes)} concepts"
            )
        return result

    async def _update_concept(
        self, user_id: UUID, subject_id: UUID, concept: str, answers: list[bool]
    ) -> ConceptOutcome:
        last_error: MasteryError | None = None

        async with self._locks.hold((user_id, subject_id, concept)):
            for attempt in range(self._max_retries):
                try:
                    record = await self._store.load_concept(user_id, subject_id, concept)
                    if record is None:
                        record = ConceptMasteryRecord.new(
                            user_id, subject_id, concept, self._default_params
                        )
                    updated = apply_observations(record, answers, self._clock())
                    await self._store.save_concept(updated)
                except ConcurrentUpdateError as e:
                    # Someone else wrote first: re-read and re-apply
                    last_error = e
                    logger.info(
                        f"Version conflict on concept {concept!r} for user {user_id} "
                        f"(attempt {attempt + 1}/{self._max_retries}), retrying"
                    )
                except PersistenceError as e:
                    last_error = e
                    if attempt + 1 < self._max_retries:
                        delay = self.backoff_delay(attempt)
                        logger.warning(
                            f"Persistence failure on concept {concept!r} for user {user_id} "
                            f"(attempt {attempt + 1}/{self._max_retries}), retrying in {delay:.3f}s: {e}"
                        )
                        await self._sleep(delay)
                except (InvalidParameterError, ProbabilityDriftError) as e:
                    # Stored row is unusable; retrying would read the same values
                    last_error = e
                    break
                except Exception as e:
                    logger.exception(
                        f"Unexpected error updating concept {concept!r} for user {user_id}, "
                        f"subject {subject_id}"
                    )
                    last_error = MasteryError(f"Unexpected error: {e}", code=UNEXPECTED_ERROR_CODE)
                    break
                else:
                    logger.debug(
                        f"Concept {concept!r} for user {user_id}: "
                        f"{record.p_known:.3f} -> {updated.p_known:.3f} over {len(answers)} answers"
                    )
                    return ConceptOutcome(
                        concept=concept,
                        observations=len(answers),
                        succeeded=True,
                        previous_mastery=record.mastery_level,
                        mastery_level=updated.mastery_level,
                    )

        logger.error(
            f"Giving up on concept {concept!r} for user {user_id}, subject {subject_id} "
            f"after {self._max_retries} attempts: {last_error}"
        )
        return ConceptOutcome(
            concept=concept,
            observations=len(answers),
            succeeded=False,
            error_code=last_error.code if last_error else None,
            error=last_error.message if last_error else None,
        )

    async def _refresh_aggregate(self, result: AttemptUpdateResult) -> None:
        for attempt in range(self._max_retries):
            try:
                concepts = await self._store.list_subject_concepts(result.user_id, result.subject_id)
                result.aggregate = build_subject_aggregate(c.p_known for c in concepts)
                await self._store.save_pass_chance(
                    result.user_id, result.subject_id, result.aggregate.pass_chance
                )
                result.aggregate_error = None
                return
            except PersistenceError as e:
                result.aggregate_error = e.message
                if attempt + 1 < self._max_retries:
                    await self._sleep(self.backoff_delay(attempt))
            except MasteryError as e:
                result.aggregate_error = e.message
                break
            except Exception as e:
                logger.exception(
                    f"Unexpected error refreshing aggregate for user {result.user_id}, "
                    f"subject {result.subject_id}"
                )
                result.aggregate_error = f"Unexpected error: {e}"
                return

        logger.error(
            f"Failed to persist pass_chance for user {result.user_id}, subject {result.subject_id}: "
            f"{result.aggregate_error}"
        )

    async def get_subject_mastery(self, user_id: UUID, subject_id: UUID) -> SubjectMastery:
        """Concept states (weakest first) and the aggregate, for dashboards."""
        concepts = await self._store.list_subject_concepts(user_id, subject_id)
        concepts.sort(key=lambda c: (c.mastery_level, c.topic_name))
        return SubjectMastery(
            concepts=concepts,
            aggregate=build_subject_aggregate(c.p_known for c in concepts),
        )

    async def get_weak_topics(
        self, user_id: UUID, subject_id: UUID, threshold: int | None = None, limit: int | None = None
    ) -> list[WeakArea]:
        """Weak areas for the study-plan builder."""
        concepts = await self._store.list_subject_concepts(user_id, subject_id)
        kwargs = {}
        if threshold is not None:
            kwargs["threshold"] = threshold
        if limit is not None:
            kwargs["limit"] = limit
        return find_weak_topics(concepts, **kwargs)
