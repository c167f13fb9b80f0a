"""Row builders shared by the test modules. Each helper commits."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Optional

from cohortdb.apps.accounts import models as account_models
from cohortdb.apps.accounts.models import AccountRole
from cohortdb.apps.cohorts import models as cohort_models
from cohortdb.apps.cohorts.models import InstructorRole, LearnerStatus, SessionStatus
from cohortdb.apps.cohorts.services import calendar_day
from cohortdb.apps.curriculum import models as curriculum_models


def _save(db, obj):
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


def create_user(db, *, email: str, role: AccountRole, full_name: Optional[str] = None, is_active: bool = True):
    return _save(
        db,
        account_models.User(
            email=email,
            full_name=full_name or email.split("@")[0].title(),
            role=role,
            is_active=is_active,
        ),
    )


def create_course(db, *, slug: str = "first-aid-at-work", title: str = "First Aid at Work"):
    return _save(db, curriculum_models.CurriculumCourse(slug=slug, title=title))


def create_lesson(db, *, course_id: str, title: str = "Primary survey", criteria: Optional[list] = None):
    return _save(
        db,
        curriculum_models.CurriculumLesson(
            course_id=course_id,
            title=title,
            duration_mins=90,
            criteria=criteria
            or [
                {"code": "1.1", "text": "Assess the scene for danger"},
                {"code": "1.2", "text": "Perform a primary survey"},
            ],
        ),
    )


def create_cohort(
    db,
    *,
    course_id: str,
    code: str = "FAW-2026-01",
    max_learners: int = 12,
    instructor_ids: Iterable[str] = (),
):
    cohort = cohort_models.Cohort(
        course_id=course_id,
        name=f"Cohort {code}",
        code=code,
        start_date=datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc),
        max_learners=max_learners,
    )
    cohort.instructors = [
        cohort_models.CohortInstructor(
            user_id=user_id,
            role=InstructorRole.LEAD if index == 0 else InstructorRole.ASSISTANT,
        )
        for index, user_id in enumerate(instructor_ids)
    ]
    return _save(db, cohort)


def create_learner(
    db,
    *,
    cohort_id: str,
    first_name: str,
    last_name: str,
    email: Optional[str] = None,
    status: LearnerStatus = LearnerStatus.ENROLLED,
):
    return _save(
        db,
        cohort_models.Learner(
            cohort_id=cohort_id,
            first_name=first_name,
            last_name=last_name,
            email=email or f"{first_name}.{last_name}@acme-training.co.uk".lower(),
            status=status,
        ),
    )


def create_session(
    db,
    *,
    cohort_id: str,
    lesson_id: str,
    scheduled_date: Optional[datetime] = None,
    status: SessionStatus = SessionStatus.SCHEDULED,
):
    scheduled_date = scheduled_date or datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)
    return _save(
        db,
        cohort_models.SessionDelivery(
            cohort_id=cohort_id,
            lesson_id=lesson_id,
            scheduled_date=scheduled_date,
            scheduled_day=calendar_day(scheduled_date),
            status=status,
        ),
    )
