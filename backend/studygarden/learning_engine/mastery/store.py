"""
Mastery persistence.

`MasteryStore` is the interface the update service depends on; it is passed
in explicitly rather than reached through a module-level client.
`SqlAlchemyMasteryStore` implements it over an async session factory with
optimistic versioning on the `topic_mastery.version` column.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID, uuid4

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studygarden.core.app_exceptions import ConcurrentUpdateError, PersistenceError
from studygarden.learning_engine.bkt.core import BKTParams, BKTState, to_percent
from studygarden.models.mastery import Subject, TopicMastery

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConceptMasteryRecord:
    """
    One concept's stored state, detached from any session.

    version == 0 means the row has not been written yet.
    """

    user_id: UUID
    subject_id: UUID
    topic_name: str
    p_init: float
    p_transit: float
    p_guess: float
    p_slip: float
    p_known: float
    p_learned: float
    mastery_level: int
    correct_count: int = 0
    incorrect_count: int = 0
    total_attempts: int = 0
    last_practiced_at: datetime | None = None
    version: int = 0
    id: UUID | None = None

    @classmethod
    def new(
        cls, user_id: UUID, subject_id: UUID, topic_name: str, params: BKTParams | None = None
    ) -> "ConceptMasteryRecord":
        """First-time state for a concept: p_known starts at p_init."""
        params = params or BKTParams()
        return cls(
            user_id=user_id,
            subject_id=subject_id,
            topic_name=topic_name,
            p_init=params.p_init,
            p_transit=params.p_transit,
            p_guess=params.p_guess,
            p_slip=params.p_slip,
            p_known=params.p_init,
            p_learned=params.p_init,
            mastery_level=to_percent(params.p_init),
        )

    @property
    def params(self) -> BKTParams:
        return BKTParams(
            p_init=self.p_init,
            p_transit=self.p_transit,
            p_guess=self.p_guess,
            p_slip=self.p_slip,
        )

    @property
    def state(self) -> BKTState:
        return BKTState(params=self.params, p_known=self.p_known)

    @property
    def is_new(self) -> bool:
        return self.version == 0


class MasteryStore(Protocol):
    """Read/write access to concept states and the subject pass chance."""

    async def load_concept(
        self, user_id: UUID, subject_id: UUID, topic_name: str
    ) -> ConceptMasteryRecord | None: ...

    async def save_concept(self, record: ConceptMasteryRecord) -> ConceptMasteryRecord:
        """
        Insert (version 0) or compare-and-swap update (version n) a record.

        Returns the record as stored, with its new version.

        Raises:
            ConcurrentUpdateError: The stored version moved on, or a concurrent
                insert created the row first
            PersistenceError: Transient storage failure
        """
        ...

    async def list_subject_concepts(
        self, user_id: UUID, subject_id: UUID
    ) -> list[ConceptMasteryRecord]: ...

    async def save_pass_chance(self, user_id: UUID, subject_id: UUID, pass_chance: int) -> bool: ...


def _to_record(row: TopicMastery) -> ConceptMasteryRecord:
    return ConceptMasteryRecord(
        id=row.id,
        user_id=row.user_id,
        subject_id=row.subject_id,
        topic_name=row.topic_name,
        p_init=row.p_init,
        p_transit=row.p_transit,
        p_guess=row.p_guess,
        p_slip=row.p_slip,
        p_known=row.p_known,
        p_learned=row.p_learned,
        mastery_level=row.mastery_level,
        correct_count=row.correct_count,
        incorrect_count=row.incorrect_count,
        total_attempts=row.total_attempts,
        last_practiced_at=row.last_practiced_at,
        version=row.version,
    )


def _belief_columns(record: ConceptMasteryRecord) -> dict:
    return {
        "p_init": record.p_init,
        "p_transit": record.p_transit,
        "p_guess": record.p_guess,
        "p_slip": record.p_slip,
        "p_known": record.p_known,
        "p_learned": record.p_learned,
        "mastery_level": record.mastery_level,
        "correct_count": record.correct_count,
        "incorrect_count": record.incorrect_count,
        "total_attempts": record.total_attempts,
        "last_practiced_at": record.last_practiced_at,
    }


class SqlAlchemyMasteryStore:
    """MasteryStore backed by SQLAlchemy; one short transaction per call.

    Driver-level connection failures (refused, reset, timed out) surface as
    OSError rather than SQLAlchemyError and are reported as PersistenceError
    too.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def load_concept(
        self, user_id: UUID, subject_id: UUID, topic_name: str
    ) -> ConceptMasteryRecord | None:
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(TopicMastery).where(
                        and_(
                            TopicMastery.user_id == user_id,
                            TopicMastery.subject_id == subject_id,
                            TopicMastery.topic_name == topic_name,
                        )
                    )
                )
                row = result.scalar_one_or_none()
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            raise PersistenceError(
                f"Failed to load mastery for concept {topic_name!r}: {e}",
                details={"topic_name": topic_name},
            ) from e

        return _to_record(row) if row else None

    async def save_concept(self, record: ConceptMasteryRecord) -> ConceptMasteryRecord:
        now = datetime.now(UTC)
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    if record.is_new:
                        row_id = uuid4()
                        db.add(
                            TopicMastery(
                                id=row_id,
                                user_id=record.user_id,
                                subject_id=record.subject_id,
                                topic_name=record.topic_name,
                                version=1,
                                created_at=now,
                                updated_at=now,
                                **_belief_columns(record),
                            )
                        )
                        await db.flush()
                        return replace(record, id=row_id, version=1)

                    result = await db.execute(
                        update(TopicMastery)
                        .where(
                            and_(
                                TopicMastery.id == record.id,
                                TopicMastery.version == record.version,
                            )
                        )
                        .values(
                            version=record.version + 1,
                            updated_at=now,
                            **_belief_columns(record),
                        )
                    )
                    if result.rowcount != 1:
                        raise ConcurrentUpdateError(
                            f"Concept {record.topic_name!r} changed since version {record.version}",
                            details={"topic_name": record.topic_name, "version": record.version},
                        )
                    return replace(record, version=record.version + 1)
        except IntegrityError as e:
            # Unique key taken: another writer inserted this concept first
            raise ConcurrentUpdateError(
                f"Concept {record.topic_name!r} was created concurrently",
                details={"topic_name": record.topic_name},
            ) from e
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            raise PersistenceError(
                f"Failed to save mastery for concept {record.topic_name!r}: {e}",
                details={"topic_name": record.topic_name},
            ) from e

    async def list_subject_concepts(
        self, user_id: UUID, subject_id: UUID
    ) -> list[ConceptMasteryRecord]:
        """All concept states for a subject, weakest first."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(TopicMastery)
                    .where(
                        and_(
                            TopicMastery.user_id == user_id,
                            TopicMastery.subject_id == subject_id,
                        )
                    )
                    .order_by(TopicMastery.mastery_level.asc(), TopicMastery.topic_name.asc())
                )
                rows = result.scalars().all()
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            raise PersistenceError(
                f"Failed to list mastery for subject {subject_id}: {e}",
                details={"subject_id": str(subject_id)},
            ) from e

        return [_to_record(row) for row in rows]

    async def save_pass_chance(self, user_id: UUID, subject_id: UUID, pass_chance: int) -> bool:
        """
        Write the subject's pass chance.

        Returns:
            False if no subject row matched (owned elsewhere, maybe deleted)
        """
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    result = await db.execute(
                        update(Subject)
                        .where(and_(Subject.id == subject_id, Subject.user_id == user_id))
                        .values(pass_chance=pass_chance, updated_at=datetime.now(UTC))
                    )
                    updated = result.rowcount == 1
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            raise PersistenceError(
                f"Failed to save pass chance for subject {subject_id}: {e}",
                details={"subject_id": str(subject_id)},
            ) from e

        if not updated:
            logger.warning(f"No subject row for user {user_id}, subject {subject_id}; pass_chance not saved")
        return updated
