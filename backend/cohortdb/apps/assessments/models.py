from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from cohortdb.database import Base
from cohortdb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SignoffStatus(str, enum.Enum):
    """
    Usual path: NOT_STARTED -> IN_PROGRESS -> SUBMITTED
    -> SIGNED_OFF | REQUIRES_REVISION -> VERIFIED.

    The engine does not enforce the path; any status may be set directly.
    """

    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    SIGNED_OFF = "SIGNED_OFF"
    REQUIRES_REVISION = "REQUIRES_REVISION"
    VERIFIED = "VERIFIED"


# Statuses that carry a sign-off stamp (timestamp + signer).
STAMPED_STATUSES = frozenset({SignoffStatus.SIGNED_OFF, SignoffStatus.VERIFIED})

# Single updates landing in these statuses are written to the audit log.
AUDITED_STATUSES = frozenset(
    {SignoffStatus.SIGNED_OFF, SignoffStatus.VERIFIED, SignoffStatus.REQUIRES_REVISION}
)


class AssessmentSignoff(Base):
    """
    Competency evidence for one learner against one criterion of one lesson.

    criterion_text is copied from the curriculum when the row is created and
    not refreshed afterwards, so the record keeps the wording that was
    actually assessed.
    """

    __tablename__ = "assessment_signoffs"
    __table_args__ = (
        UniqueConstraint(
            "learner_id",
            "lesson_id",
            "criterion_code",
            name="uq_assessment_signoffs_learner_lesson_criterion",
        ),
        Index("ix_assessment_signoffs_criterion_status", "criterion_code", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    learner_id = Column(String(36), ForeignKey("learners.id", ondelete="CASCADE"), nullable=False, index=True)
    lesson_id = Column(
        String(36),
        ForeignKey("curriculum_lessons.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    criterion_code = Column(String(64), nullable=False, index=True)
    criterion_text = Column(Text, nullable=False)
    status = Column(
        Enum(SignoffStatus, name="signoff_status_enum"),
        nullable=False,
        default=SignoffStatus.NOT_STARTED,
        index=True,
    )
    evidence_notes = Column(Text, nullable=True)
    # References to files held by the upload service; never the files themselves.
    evidence_files = Column(JSON, nullable=False, default=list)
    signed_off_at = Column(DateTime(timezone=True), nullable=True)
    signed_off_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    learner = relationship("Learner", lazy="joined")
    lesson = relationship("CurriculumLesson", lazy="joined")
    signed_off_by = relationship("User", lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<AssessmentSignoff learner={self.learner_id} lesson={self.lesson_id} "
            f"criterion={self.criterion_code} {self.status}>"
        )
