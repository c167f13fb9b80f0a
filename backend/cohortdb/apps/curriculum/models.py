# backend/cohortdb/apps/curriculum/models.py

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import relationship

from cohortdb.database import Base
from cohortdb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CurriculumCourse(Base):
    """
    Course as mirrored from the content source.

    Rows are written by the curriculum sync job; this backend only reads
    them to validate cohort and session targets.
    """

    __tablename__ = "curriculum_courses"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    slug = Column(String(128), unique=True, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    synced_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    lessons = relationship("CurriculumLesson", back_populates="course", lazy="noload")

    def __repr__(self) -> str:
        return f"<CurriculumCourse {self.slug}>"


class CurriculumLesson(Base):
    __tablename__ = "curriculum_lessons"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    course_id = Column(
        String(36),
        ForeignKey("curriculum_courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = Column(String(255), nullable=False)
    duration_mins = Column(Integer, nullable=True)
    # [{"code": "1.1", "text": "Identify hazards ..."}, ...]
    criteria = Column(JSON, nullable=False, default=list)
    synced_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    course = relationship("CurriculumCourse", back_populates="lessons")

    def __repr__(self) -> str:
        return f"<CurriculumLesson {self.id} {self.title!r}>"
