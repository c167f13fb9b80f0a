from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, JSON, String, Text
from sqlalchemy.orm import relationship

from cohortdb.database import Base
from cohortdb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IqaStatus(str, enum.Enum):
    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ACTION_REQUIRED = "ACTION_REQUIRED"


class IqaSample(Base):
    """
    Internal Quality Assurance review of a subset of learners x criteria.

    learners_selected / criteria_selected are plain id / code lists; a
    learner removed later simply no longer resolves.
    """

    __tablename__ = "iqa_samples"
    __table_args__ = (
        Index("ix_iqa_samples_cohort_sampled_at", "cohort_id", "sampled_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    cohort_id = Column(String(36), ForeignKey("cohorts.id", ondelete="CASCADE"), nullable=False, index=True)
    sample_period = Column(String(100), nullable=False)
    learners_selected = Column(JSON, nullable=False, default=list)
    criteria_selected = Column(JSON, nullable=False, default=list)
    status = Column(
        Enum(IqaStatus, name="iqa_status_enum"),
        nullable=False,
        default=IqaStatus.PLANNED,
        index=True,
    )
    findings = Column(Text, nullable=True)
    action_points = Column(Text, nullable=True)
    sampled_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    sampled_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    # Set on the first transition into COMPLETED only.
    completed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    sampled_by = relationship("User", lazy="joined")

    def __repr__(self) -> str:
        return f"<IqaSample {self.id} {self.sample_period} {self.status}>"
