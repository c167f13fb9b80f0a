# backend/cohortdb/apps/cohorts/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from cohortdb.database import Base
from cohortdb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class CohortStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class InstructorRole(str, enum.Enum):
    LEAD = "LEAD"
    ASSISTANT = "ASSISTANT"


class LearnerStatus(str, enum.Enum):
    ENROLLED = "ENROLLED"
    ACTIVE = "ACTIVE"
    DEFERRED = "DEFERRED"
    WITHDRAWN = "WITHDRAWN"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# Learners expected in the room for a session register.
ATTENDING_LEARNER_STATUSES = (LearnerStatus.ENROLLED, LearnerStatus.ACTIVE)


class SessionStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# ---------------------------------------------------------------------------
# COHORTS
# ---------------------------------------------------------------------------


class Cohort(Base):
    """
    One scheduled delivery of a course to a group of learners.

    A cohort cannot be deleted while learners remain attached; the service
    layer enforces this before issuing the DELETE.
    """

    __tablename__ = "cohorts"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    course_id = Column(
        String(36),
        ForeignKey("curriculum_courses.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    name = Column(String(100), nullable=False)
    code = Column(String(64), unique=True, nullable=False, index=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=True)
    max_learners = Column(Integer, nullable=False, default=12)
    location = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(
        Enum(CohortStatus, name="cohort_status_enum"),
        nullable=False,
        default=CohortStatus.DRAFT,
        index=True,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    instructors = relationship(
        "CohortInstructor",
        back_populates="cohort",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    learners = relationship("Learner", back_populates="cohort", lazy="noload")
    sessions = relationship("SessionDelivery", back_populates="cohort", lazy="noload")

    def __repr__(self) -> str:
        return f"<Cohort {self.code} {self.status}>"


class CohortInstructor(Base):
    """Assignment of a staff user to a cohort. Drives instructor access."""

    __tablename__ = "cohort_instructors"
    __table_args__ = (
        UniqueConstraint("cohort_id", "user_id", name="uq_cohort_instructors_cohort_user"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    cohort_id = Column(String(36), ForeignKey("cohorts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(
        Enum(InstructorRole, name="cohort_instructor_role_enum"),
        nullable=False,
        default=InstructorRole.ASSISTANT,
    )
    assigned_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    cohort = relationship("Cohort", back_populates="instructors")
    user = relationship("User", back_populates="cohort_assignments", lazy="joined")


# ---------------------------------------------------------------------------
# LEARNERS
# ---------------------------------------------------------------------------


class Learner(Base):
    __tablename__ = "learners"
    __table_args__ = (
        UniqueConstraint("cohort_id", "email", name="uq_learners_cohort_email"),
        Index("ix_learners_cohort_name", "cohort_id", "last_name", "first_name"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    cohort_id = Column(String(36), ForeignKey("cohorts.id", ondelete="RESTRICT"), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(64), nullable=True)
    # Identifier issued by the awarding body
    external_learner_id = Column(String(64), nullable=True, index=True)
    notes = Column(Text, nullable=True)
    status = Column(
        Enum(LearnerStatus, name="learner_status_enum"),
        nullable=False,
        default=LearnerStatus.ENROLLED,
        index=True,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    cohort = relationship("Cohort", back_populates="learners")

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Learner {self.email} cohort={self.cohort_id}>"


# ---------------------------------------------------------------------------
# SESSIONS
# ---------------------------------------------------------------------------


class SessionDelivery(Base):
    """
    One delivery of a lesson to a cohort on a given day.

    At most one per (cohort, lesson, calendar day). `scheduled_day` is the
    UTC day of `scheduled_date` and carries the unique key.
    """

    __tablename__ = "session_deliveries"
    __table_args__ = (
        UniqueConstraint("cohort_id", "lesson_id", "scheduled_day", name="uq_session_deliveries_cohort_lesson_day"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    cohort_id = Column(String(36), ForeignKey("cohorts.id", ondelete="CASCADE"), nullable=False, index=True)
    lesson_id = Column(
        String(36),
        ForeignKey("curriculum_lessons.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    scheduled_date = Column(DateTime(timezone=True), nullable=False, index=True)
    scheduled_day = Column(Date, nullable=False)
    scheduled_time = Column(String(32), nullable=True)
    status = Column(
        Enum(SessionStatus, name="session_status_enum"),
        nullable=False,
        default=SessionStatus.SCHEDULED,
        index=True,
    )
    actual_start = Column(DateTime(timezone=True), nullable=True)
    actual_end = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    cohort = relationship("Cohort", back_populates="sessions")
    lesson = relationship("CurriculumLesson", lazy="joined")

    def __repr__(self) -> str:
        return f"<SessionDelivery {self.id} lesson={self.lesson_id} {self.status}>"
