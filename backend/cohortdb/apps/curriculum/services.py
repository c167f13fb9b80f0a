from __future__ import annotations

from typing import Iterable, Optional, Set

from sqlalchemy.orm import Session

from . import models


def get_course(db: Session, course_id: str) -> Optional[models.CurriculumCourse]:
    return db.query(models.CurriculumCourse).filter(models.CurriculumCourse.id == course_id).first()


def get_lesson(db: Session, lesson_id: str) -> Optional[models.CurriculumLesson]:
    return db.query(models.CurriculumLesson).filter(models.CurriculumLesson.id == lesson_id).first()


def missing_lesson_ids(db: Session, lesson_ids: Iterable[str]) -> Set[str]:
    """Return the subset of `lesson_ids` that the directory does not know."""
    wanted = set(lesson_ids)
    if not wanted:
        return set()
    found = {
        row.id
        for row in db.query(models.CurriculumLesson.id)
        .filter(models.CurriculumLesson.id.in_(wanted))
        .all()
    }
    return wanted - found
