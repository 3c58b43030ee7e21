"""Topic mastery (BKT state) and subject models."""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from studygarden.db.base import Base


class Subject(Base):
    """
    A learner's subject (course / exam).

    Only the fields the mastery pipeline touches are modelled here; the row is
    owned by the surrounding application.
    """

    __tablename__ = "subjects"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    pass_chance: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="Average concept mastery, 0-100"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        CheckConstraint(
            "pass_chance IS NULL OR (pass_chance >= 0 AND pass_chance <= 100)",
            name="ck_subjects_pass_chance_range",
        ),
        Index("idx_subjects_user", "user_id"),
    )


class TopicMastery(Base):
    """
    Per-user, per-subject, per-concept BKT state.

    Stores the 4-parameter BKT model and the current belief:
    - p_init: Prior probability of mastery
    - p_transit: Probability of learning (transition)
    - p_guess: Probability of guess (unlearned but answers correct)
    - p_slip: Probability of slip (learned but answers wrong)
    - p_known: Current mastery probability

    `version` is bumped on every write and checked on update, so two writers
    racing on the same concept cannot silently overwrite each other.
    """

    __tablename__ = "topic_mastery"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    subject_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False
    )
    topic_name: Mapped[str] = mapped_column(
        String(255), nullable=False, comment="Normalised concept label"
    )

    # BKT 4-parameter model
    p_init: Mapped[float] = mapped_column(Float, nullable=False)
    p_transit: Mapped[float] = mapped_column(Float, nullable=False)
    p_guess: Mapped[float] = mapped_column(Float, nullable=False)
    p_slip: Mapped[float] = mapped_column(Float, nullable=False)

    # Belief
    p_known: Mapped[float] = mapped_column(Float, nullable=False, comment="Current mastery probability")
    p_learned: Mapped[float] = mapped_column(Float, nullable=False, comment="Reporting copy of p_known")
    mastery_level: Mapped[int] = mapped_column(Integer, nullable=False, comment="round(p_known * 100)")

    correct_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    incorrect_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_practiced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        UniqueConstraint("user_id", "subject_id", "topic_name", name="uq_topic_mastery_key"),
        CheckConstraint(
            "total_attempts = correct_count + incorrect_count",
            name="ck_topic_mastery_attempts_sum",
        ),
        CheckConstraint(
            "mastery_level >= 0 AND mastery_level <= 100",
            name="ck_topic_mastery_level_range",
        ),
        CheckConstraint("p_known >= 0 AND p_known <= 1", name="ck_topic_mastery_p_known_range"),
        Index("idx_topic_mastery_user_subject", "user_id", "subject_id"),
        Index("idx_topic_mastery_level", "mastery_level"),
    )
