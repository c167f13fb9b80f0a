from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cohortdb.apps.accounts import models as account_models
from cohortdb.apps.assessments import services as assessment_services
from cohortdb.apps.assessments.models import AssessmentSignoff, STAMPED_STATUSES
from cohortdb.apps.attendance import services as attendance_services
from cohortdb.apps.attendance.models import Attendance
from cohortdb.apps.audit import services as audit_services
from cohortdb.apps.curriculum import services as curriculum_services
from cohortdb.apps.iqa.models import IqaSample
from cohortdb.errors import Conflict, Forbidden, NotFound

from . import access, lookups, models, schemas
from .models import (
    ATTENDING_LEARNER_STATUSES,
    CohortStatus,
    InstructorRole,
    LearnerStatus,
    SessionStatus,
)

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    """Aware UTC datetime. Naive values (as SQLite returns them) are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def calendar_day(value: datetime) -> date:
    """Calendar day of a session, in UTC."""
    return as_utc(value).date()


# Columns that cannot be cleared through a PATCH; an explicit null is ignored.
REQUIRED_COHORT_FIELDS = frozenset({"name", "start_date", "max_learners", "status"})
REQUIRED_LEARNER_FIELDS = frozenset({"first_name", "last_name", "email", "status"})
REQUIRED_SESSION_FIELDS = frozenset({"status", "scheduled_date"})


def _settable(payload, required: frozenset) -> dict:
    return {
        field: value
        for field, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or field not in required
    }


def _commit(db: Session, conflict_message: str) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(conflict_message)
    except Exception:
        db.rollback()
        raise


# ---------------------------------------------------------------------------
# COHORTS
# ---------------------------------------------------------------------------


def _count_by_cohort(db: Session, column, cohort_ids: List[str]) -> Dict[str, int]:
    if not cohort_ids:
        return {}
    rows = db.query(column, func.count()).filter(column.in_(cohort_ids)).group_by(column).all()
    return {cohort_id: count for cohort_id, count in rows}


def list_cohorts(
    db: Session,
    *,
    caller: account_models.User,
    status: Optional[CohortStatus] = None,
    course_id: Optional[str] = None,
) -> List[dict]:
    """
    Admins see every cohort, instructors only the cohorts they are assigned
    to. Any other role is refused.
    """
    query = db.query(models.Cohort)
    if not access.is_platform_admin(caller):
        if caller.role != account_models.AccountRole.INSTRUCTOR:
            raise Forbidden()
        query = query.join(
            models.CohortInstructor,
            models.CohortInstructor.cohort_id == models.Cohort.id,
        ).filter(models.CohortInstructor.user_id == caller.id)
    if status:
        query = query.filter(models.Cohort.status == status)
    if course_id:
        query = query.filter(models.Cohort.course_id == course_id)

    cohorts = query.order_by(models.Cohort.start_date.desc()).all()
    ids = [c.id for c in cohorts]
    learner_counts = _count_by_cohort(db, models.Learner.cohort_id, ids)
    session_counts = _count_by_cohort(db, models.SessionDelivery.cohort_id, ids)

    items = []
    for cohort in cohorts:
        item = schemas.CohortRead.model_validate(cohort).model_dump()
        item["learner_count"] = learner_counts.get(cohort.id, 0)
        item["session_count"] = session_counts.get(cohort.id, 0)
        items.append(item)
    return items


def create_cohort(
    db: Session,
    *,
    payload: schemas.CohortCreate,
    actor_user_id: str,
) -> models.Cohort:
    if curriculum_services.get_course(db, payload.course_id) is None:
        raise NotFound("Course not found")

    if db.query(models.Cohort.id).filter(models.Cohort.code == payload.code).first() is not None:
        raise Conflict("Cohort code already exists")

    instructor_ids = list(dict.fromkeys(payload.instructor_ids))
    found = {
        row.id
        for row in db.query(account_models.User.id)
        .filter(account_models.User.id.in_(instructor_ids))
        .all()
    }
    missing = [user_id for user_id in instructor_ids if user_id not in found]
    if missing:
        raise NotFound("Instructor not found", context={"user_ids": missing})

    cohort = models.Cohort(
        course_id=payload.course_id,
        name=payload.name,
        code=payload.code,
        start_date=payload.start_date,
        end_date=payload.end_date,
        max_learners=payload.max_learners,
        location=payload.location,
        notes=payload.notes,
        status=CohortStatus.DRAFT,
    )
    cohort.instructors = [
        models.CohortInstructor(
            user_id=user_id,
            role=InstructorRole.LEAD if index == 0 else InstructorRole.ASSISTANT,
        )
        for index, user_id in enumerate(instructor_ids)
    ]
    db.add(cohort)
    _commit(db, "Cohort code already exists")
    db.refresh(cohort)

    logger.info("Cohort %s created (%s)", cohort.id, cohort.code)
    audit_services.record(
        db,
        actor_user_id=actor_user_id,
        action=audit_services.COHORT_CREATED,
        entity_type="COHORT",
        entity_id=cohort.id,
        details={"code": cohort.code, "name": cohort.name, "course_id": cohort.course_id},
    )
    return cohort


def update_cohort(
    db: Session,
    *,
    cohort_id: str,
    payload: schemas.CohortUpdate,
    actor_user_id: str,
) -> models.Cohort:
    cohort = lookups.get_cohort(db, cohort_id)
    changes = _settable(payload, REQUIRED_COHORT_FIELDS)
    for field, value in changes.items():
        setattr(cohort, field, value)
    _commit(db, "Cohort could not be updated")
    db.refresh(cohort)

    audit_services.record(
        db,
        actor_user_id=actor_user_id,
        action=audit_services.COHORT_UPDATED,
        entity_type="COHORT",
        entity_id=cohort.id,
        details={"changes": sorted(changes.keys())},
    )
    return cohort


def delete_cohort(db: Session, *, cohort_id: str, actor_user_id: str) -> None:
    """Delete an empty cohort together with its sessions and IQA samples."""
    cohort = lookups.get_cohort(db, cohort_id)
    learner_count = db.query(models.Learner.id).filter(models.Learner.cohort_id == cohort_id).count()
    if learner_count:
        raise Conflict(
            "Cannot delete cohort with learners",
            context={"learner_count": learner_count},
        )
    code = cohort.code

    try:
        session_ids = [
            row.id
            for row in db.query(models.SessionDelivery.id)
            .filter(models.SessionDelivery.cohort_id == cohort_id)
            .all()
        ]
        if session_ids:
            db.query(Attendance).filter(Attendance.session_id.in_(session_ids)).delete(
                synchronize_session=False
            )
        db.query(models.SessionDelivery).filter(models.SessionDelivery.cohort_id == cohort_id).delete(
            synchronize_session=False
        )
        db.query(IqaSample).filter(IqaSample.cohort_id == cohort_id).delete(synchronize_session=False)
        db.delete(cohort)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Cohort %s deleted (%s)", cohort_id, code)
    audit_services.record(
        db,
        actor_user_id=actor_user_id,
        action=audit_services.COHORT_DELETED,
        entity_type="COHORT",
        entity_id=cohort_id,
        details={"code": code},
    )


# ---------------------------------------------------------------------------
# LEARNERS
# ---------------------------------------------------------------------------


def _email_taken(db: Session, cohort_id: str, email: str, *, exclude_id: Optional[str] = None) -> bool:
    query = db.query(models.Learner.id).filter(
        models.Learner.cohort_id == cohort_id,
        func.lower(models.Learner.email) == email.lower(),
    )
    if exclude_id:
        query = query.filter(models.Learner.id != exclude_id)
    return query.first() is not None


def list_learners(db: Session, *, cohort_id: str) -> List[dict]:
    """Learners with attendance rate, assessment progress and raw counts."""
    lookups.get_cohort(db, cohort_id)
    learners = (
        db.query(models.Learner)
        .filter(models.Learner.cohort_id == cohort_id)
        .order_by(models.Learner.last_name.asc(), models.Learner.first_name.asc())
        .all()
    )

    rates = attendance_services.attendance_rates(db, cohort_id)
    signoff_counts = assessment_services.status_counts_by_learner(db, cohort_id)
    attendance_counts = dict(
        db.query(Attendance.learner_id, func.count())
        .join(models.Learner, models.Learner.id == Attendance.learner_id)
        .filter(models.Learner.cohort_id == cohort_id)
        .group_by(Attendance.learner_id)
        .all()
    )

    items = []
    for learner in learners:
        counts = signoff_counts.get(learner.id)
        rate = rates.get(learner.id)
        item = schemas.LearnerRead.model_validate(learner).model_dump()
        item.update(
            attendance_rate=rate.rate if rate else None,
            assessment_progress=assessment_services.assessment_progress(counts) if counts else None,
            attendance_count=attendance_counts.get(learner.id, 0),
            assessment_count=sum(counts.values()) if counts else 0,
            signed_off_count=sum(counts.get(s, 0) for s in STAMPED_STATUSES) if counts else 0,
        )
        items.append(item)
    return items


def add_learner(
    db: Session,
    *,
    cohort_id: str,
    payload: schemas.LearnerCreate,
    actor_user_id: str,
) -> models.Learner:
    cohort = lookups.get_cohort(db, cohort_id)

    learner_count = db.query(models.Learner.id).filter(models.Learner.cohort_id == cohort_id).count()
    if learner_count >= cohort.max_learners:
        raise Conflict(
            "Cohort is at maximum capacity",
            context={"max_learners": cohort.max_learners},
        )

    email = str(payload.email).lower()
    if _email_taken(db, cohort_id, email):
        raise Conflict("Learner with this email already exists in this cohort")

    learner = models.Learner(
        cohort_id=cohort_id,
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=email,
        phone=payload.phone,
        external_learner_id=payload.external_learner_id,
        notes=payload.notes,
        status=LearnerStatus.ENROLLED,
    )
    db.add(learner)
    _commit(db, "Learner with this email already exists in this cohort")
    db.refresh(learner)

    audit_services.record(
        db,
        actor_user_id=actor_user_id,
        action=audit_services.LEARNER_ADDED,
        entity_type="LEARNER",
        entity_id=learner.id,
        details={"cohort_id": cohort_id, "name": learner.display_name},
    )
    return learner


def update_learner(
    db: Session,
    *,
    cohort_id: str,
    learner_id: str,
    payload: schemas.LearnerUpdate,
    actor_user_id: str,
) -> models.Learner:
    learner = lookups.get_learner_in_cohort(db, cohort_id, learner_id)
    changes = _settable(payload, REQUIRED_LEARNER_FIELDS)

    if "email" in changes:
        changes["email"] = str(changes["email"]).lower()
        if changes["email"] != learner.email and _email_taken(
            db, cohort_id, changes["email"], exclude_id=learner.id
        ):
            raise Conflict("Learner with this email already exists in this cohort")

    for field, value in changes.items():
        setattr(learner, field, value)
    _commit(db, "Learner with this email already exists in this cohort")
    db.refresh(learner)

    audit_services.record(
        db,
        actor_user_id=actor_user_id,
        action=audit_services.LEARNER_UPDATED,
        entity_type="LEARNER",
        entity_id=learner.id,
        details={"cohort_id": cohort_id, "changes": sorted(changes.keys())},
    )
    return learner


def withdraw_learner(
    db: Session,
    *,
    cohort_id: str,
    learner_id: str,
    actor_user_id: str,
) -> models.Learner:
    learner = lookups.get_learner_in_cohort(db, cohort_id, learner_id)
    learner.status = LearnerStatus.WITHDRAWN
    _commit(db, "Learner could not be withdrawn")
    db.refresh(learner)

    audit_services.record(
        db,
        actor_user_id=actor_user_id,
        action=audit_services.LEARNER_WITHDRAWN,
        entity_type="LEARNER",
        entity_id=learner.id,
        details={"cohort_id": cohort_id, "name": learner.display_name},
    )
    return learner


def delete_learner(
    db: Session,
    *,
    cohort_id: str,
    learner_id: str,
    actor_user_id: str,
) -> None:
    """Hard delete, including the learner's attendance and signoffs. Admin gate is the caller's job."""
    learner = lookups.get_learner_in_cohort(db, cohort_id, learner_id)
    name = learner.display_name

    try:
        db.query(Attendance).filter(Attendance.learner_id == learner_id).delete(synchronize_session=False)
        db.query(AssessmentSignoff).filter(AssessmentSignoff.learner_id == learner_id).delete(
            synchronize_session=False
        )
        db.delete(learner)
        db.commit()
    except Exception:
        db.rollback()
        raise

    audit_services.record(
        db,
        actor_user_id=actor_user_id,
        action=audit_services.LEARNER_DELETED,
        entity_type="LEARNER",
        entity_id=learner_id,
        details={"cohort_id": cohort_id, "name": name},
    )


# ---------------------------------------------------------------------------
# SESSIONS
# ---------------------------------------------------------------------------


def _session_on_day(
    db: Session,
    *,
    cohort_id: str,
    lesson_id: str,
    day: date,
    exclude_id: Optional[str] = None,
) -> Optional[models.SessionDelivery]:
    query = db.query(models.SessionDelivery).filter(
        models.SessionDelivery.cohort_id == cohort_id,
        models.SessionDelivery.lesson_id == lesson_id,
        models.SessionDelivery.scheduled_day == day,
    )
    if exclude_id:
        query = query.filter(models.SessionDelivery.id != exclude_id)
    return query.first()


def list_sessions(db: Session, *, cohort_id: str) -> List[dict]:
    lookups.get_cohort(db, cohort_id)
    sessions = (
        db.query(models.SessionDelivery)
        .filter(models.SessionDelivery.cohort_id == cohort_id)
        .order_by(models.SessionDelivery.scheduled_date.asc())
        .all()
    )
    counts = dict(
        db.query(Attendance.session_id, func.count())
        .join(models.SessionDelivery, models.SessionDelivery.id == Attendance.session_id)
        .filter(models.SessionDelivery.cohort_id == cohort_id)
        .group_by(Attendance.session_id)
        .all()
    )
    items = []
    for session in sessions:
        item = schemas.SessionRead.model_validate(session).model_dump()
        item["attendance_count"] = counts.get(session.id, 0)
        items.append(item)
    return items


def create_session(
    db: Session,
    *,
    cohort_id: str,
    payload: schemas.SessionCreate,
    actor_user_id: str,
) -> models.SessionDelivery:
    lookups.get_cohort(db, cohort_id)
    lesson = curriculum_services.get_lesson(db, payload.lesson_id)
    if lesson is None:
        raise NotFound("Lesson not found")

    scheduled_date = as_utc(payload.scheduled_date)
    if _session_on_day(db, cohort_id=cohort_id, lesson_id=lesson.id, day=calendar_day(scheduled_date)):
        raise Conflict("A session for this lesson already exists on this date")

    session = models.SessionDelivery(
        cohort_id=cohort_id,
        lesson_id=lesson.id,
        scheduled_date=scheduled_date,
        scheduled_day=calendar_day(scheduled_date),
        scheduled_time=payload.scheduled_time,
        notes=payload.notes,
        status=SessionStatus.SCHEDULED,
    )
    db.add(session)
    _commit(db, "A session for this lesson already exists on this date")
    db.refresh(session)

    audit_services.record(
        db,
        actor_user_id=actor_user_id,
        action=audit_services.SESSION_CREATED,
        entity_type="SESSION",
        entity_id=session.id,
        details={
            "cohort_id": cohort_id,
            "lesson_id": lesson.id,
            "lesson_title": lesson.title,
            "scheduled_date": scheduled_date,
        },
    )
    return session


def session_detail(db: Session, *, cohort_id: str, session_id: str) -> dict:
    """Session plus its register: every enrolled or active learner, marked or not."""
    session = lookups.get_session_in_cohort(db, cohort_id, session_id)
    learners = (
        db.query(models.Learner)
        .filter(
            models.Learner.cohort_id == cohort_id,
            models.Learner.status.in_(ATTENDING_LEARNER_STATUSES),
        )
        .order_by(models.Learner.last_name.asc(), models.Learner.first_name.asc())
        .all()
    )
    marks = {
        row.learner_id: row
        for row in db.query(Attendance).filter(Attendance.session_id == session.id).all()
    }
    return {
        "session": session,
        "register": [{"learner": learner, "attendance": marks.get(learner.id)} for learner in learners],
    }


def update_session(
    db: Session,
    *,
    cohort_id: str,
    session_id: str,
    payload: schemas.SessionUpdate,
    actor_user_id: str,
) -> models.SessionDelivery:
    """
    Apply a partial update.

    Moving into IN_PROGRESS / COMPLETED stamps actual_start / actual_end
    when the column is empty and the payload does not carry a value.
    """
    session = lookups.get_session_in_cohort(db, cohort_id, session_id)
    changes = _settable(payload, REQUIRED_SESSION_FIELDS)
    previous_status = SessionStatus(session.status)

    if "scheduled_date" in changes:
        changes["scheduled_date"] = as_utc(changes["scheduled_date"])
        changes["scheduled_day"] = calendar_day(changes["scheduled_date"])
        clash = _session_on_day(
            db,
            cohort_id=cohort_id,
            lesson_id=session.lesson_id,
            day=changes["scheduled_day"],
            exclude_id=session.id,
        )
        if clash is not None:
            raise Conflict("A session for this lesson already exists on this date")

    new_status = changes.get("status")
    now = datetime.now(timezone.utc)
    if new_status == SessionStatus.IN_PROGRESS and session.actual_start is None and "actual_start" not in changes:
        changes["actual_start"] = now
    if new_status == SessionStatus.COMPLETED and session.actual_end is None and "actual_end" not in changes:
        changes["actual_end"] = now

    for field, value in changes.items():
        setattr(session, field, value)
    _commit(db, "A session for this lesson already exists on this date")
    db.refresh(session)

    if new_status is not None and new_status != previous_status:
        audit_services.record(
            db,
            actor_user_id=actor_user_id,
            action=f"SESSION_{new_status.value}",
            entity_type="SESSION",
            entity_id=session.id,
            details={
                "cohort_id": cohort_id,
                "from": previous_status,
                "to": new_status,
            },
        )
    return session
