from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from cohortdb.apps.accounts.models import AccountRole
from cohortdb.apps.attendance import models as attendance_models
from cohortdb.apps.attendance.models import AttendanceStatus
from cohortdb.apps.audit import models as audit_models
from cohortdb.apps.cohorts import models as cohort_models
from cohortdb.apps.cohorts import router_sessions, schemas, services
from cohortdb.apps.cohorts.models import LearnerStatus, SessionStatus
from cohortdb.errors import Conflict, Forbidden, NotFound
from cohortdb.tests import factories

MARCH_10 = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


@pytest.fixture()
def setup(db_session):
    lead = factories.create_user(db_session, email="lead@acme-training.co.uk", role=AccountRole.INSTRUCTOR)
    course = factories.create_course(db_session)
    lesson = factories.create_lesson(db_session, course_id=course.id)
    cohort = factories.create_cohort(db_session, course_id=course.id, instructor_ids=[lead.id])
    return {"lead": lead, "course": course, "lesson": lesson, "cohort": cohort}


def _create(db, setup, scheduled_date, lesson_id=None):
    return services.create_session(
        db,
        cohort_id=setup["cohort"].id,
        payload=schemas.SessionCreate(lesson_id=lesson_id or setup["lesson"].id, scheduled_date=scheduled_date),
        actor_user_id=setup["lead"].id,
    )


def _update(db, setup, session_id, **fields):
    return services.update_session(
        db,
        cohort_id=setup["cohort"].id,
        session_id=session_id,
        payload=schemas.SessionUpdate(**fields),
        actor_user_id=setup["lead"].id,
    )


def test_same_lesson_twice_on_one_day_conflicts(db_session, setup):
    _create(db_session, setup, MARCH_10)

    with pytest.raises(Conflict) as exc:
        _create(db_session, setup, MARCH_10.replace(hour=14))

    assert exc.value.status_code == 409
    sessions = services.list_sessions(db_session, cohort_id=setup["cohort"].id)
    assert len(sessions) == 1


def test_same_day_create_that_passes_the_lookup_is_still_a_conflict(db_session, setup, monkeypatch):
    _create(db_session, setup, MARCH_10)
    # A second writer that checked before the first one committed.
    monkeypatch.setattr(services, "_session_on_day", lambda *args, **kwargs: None)

    with pytest.raises(Conflict):
        _create(db_session, setup, MARCH_10.replace(hour=14))

    assert db_session.query(cohort_models.SessionDelivery).count() == 1


def test_database_rejects_second_row_for_same_lesson_and_day(db_session, setup):
    kwargs = dict(cohort_id=setup["cohort"].id, lesson_id=setup["lesson"].id)
    factories.create_session(db_session, scheduled_date=MARCH_10, **kwargs)

    with pytest.raises(IntegrityError):
        factories.create_session(db_session, scheduled_date=MARCH_10.replace(hour=14), **kwargs)
    db_session.rollback()

    assert db_session.query(cohort_models.SessionDelivery).count() == 1


def test_moving_date_updates_the_stored_day(db_session, setup):
    session = _create(db_session, setup, MARCH_10)
    assert session.scheduled_day == MARCH_10.date()

    moved = _update(db_session, setup, session.id, scheduled_date=MARCH_10 + timedelta(days=2))
    assert moved.scheduled_day == (MARCH_10 + timedelta(days=2)).date()

    # The old day is free again.
    _create(db_session, setup, MARCH_10.replace(hour=15))


def test_calendar_day_is_taken_in_utc(db_session, setup):
    _create(db_session, setup, MARCH_10)
    # 23:30 at UTC-2 on the 10th is 01:30 UTC on the 11th.
    late_evening = datetime(2026, 3, 10, 23, 30, tzinfo=timezone(timedelta(hours=-2)))
    session = _create(db_session, setup, late_evening)
    assert services.calendar_day(session.scheduled_date) == datetime(2026, 3, 11).date()


def test_different_lessons_may_share_a_day(db_session, setup):
    other_lesson = factories.create_lesson(db_session, course_id=setup["course"].id, title="Recovery position")
    _create(db_session, setup, MARCH_10)
    _create(db_session, setup, MARCH_10, lesson_id=other_lesson.id)
    assert len(services.list_sessions(db_session, cohort_id=setup["cohort"].id)) == 2


def test_create_session_for_unknown_lesson_is_not_found(db_session, setup):
    with pytest.raises(NotFound):
        _create(db_session, setup, MARCH_10, lesson_id="no-such-lesson")


def test_create_session_is_audited(db_session, setup):
    session = _create(db_session, setup, MARCH_10)
    entry = db_session.query(audit_models.AuditLog).one()
    assert entry.action == "SESSION_CREATED"
    assert entry.entity_id == session.id


def test_status_moves_stamp_actual_times_once(db_session, setup):
    session = _create(db_session, setup, MARCH_10)

    started = _update(db_session, setup, session.id, status=SessionStatus.IN_PROGRESS)
    first_start = started.actual_start
    assert first_start is not None
    assert started.actual_end is None

    finished = _update(db_session, setup, session.id, status=SessionStatus.COMPLETED)
    assert finished.actual_end is not None
    assert finished.actual_start == first_start

    actions = [row.action for row in db_session.query(audit_models.AuditLog).all()]
    assert actions == ["SESSION_CREATED", "SESSION_IN_PROGRESS", "SESSION_COMPLETED"]


def test_supplied_actual_start_is_kept(db_session, setup):
    session = _create(db_session, setup, MARCH_10)
    given = MARCH_10.replace(hour=9, minute=5)
    updated = _update(db_session, setup, session.id, status=SessionStatus.IN_PROGRESS, actual_start=given)
    assert services.as_utc(updated.actual_start) == given


def test_moving_date_onto_taken_day_conflicts(db_session, setup):
    _create(db_session, setup, MARCH_10)
    later = _create(db_session, setup, MARCH_10 + timedelta(days=7))

    with pytest.raises(Conflict):
        _update(db_session, setup, later.id, scheduled_date=MARCH_10.replace(hour=16))

    # Moving within its own day is fine.
    moved = _update(db_session, setup, later.id, scheduled_date=(MARCH_10 + timedelta(days=7)).replace(hour=13))
    assert services.calendar_day(moved.scheduled_date) == (MARCH_10 + timedelta(days=7)).date()


def test_detail_merges_register_for_attending_learners(db_session, setup):
    cohort_id = setup["cohort"].id
    ada = factories.create_learner(db_session, cohort_id=cohort_id, first_name="Ada", last_name="Lovelace")
    alan = factories.create_learner(
        db_session, cohort_id=cohort_id, first_name="Alan", last_name="Turing", status=LearnerStatus.ACTIVE
    )
    factories.create_learner(
        db_session, cohort_id=cohort_id, first_name="Gone", last_name="Away", status=LearnerStatus.WITHDRAWN
    )
    session = _create(db_session, setup, MARCH_10)
    db_session.add(
        attendance_models.Attendance(session_id=session.id, learner_id=ada.id, status=AttendanceStatus.PRESENT)
    )
    db_session.commit()

    detail = router_sessions.get_session(
        cohort_id=cohort_id,
        session_id=session.id,
        db=db_session,
        current_user=setup["lead"],
    )

    register = {entry["learner"].id: entry["attendance"] for entry in detail["register"]}
    assert set(register) == {ada.id, alan.id}
    assert register[ada.id].status == AttendanceStatus.PRESENT
    assert register[alan.id] is None


def test_session_of_another_cohort_is_not_found(db_session, setup):
    other = factories.create_cohort(db_session, course_id=setup["course"].id, code="FAW-2026-02")
    foreign = factories.create_session(db_session, cohort_id=other.id, lesson_id=setup["lesson"].id)

    with pytest.raises(NotFound):
        services.session_detail(db_session, cohort_id=setup["cohort"].id, session_id=foreign.id)


def test_unassigned_instructor_cannot_create_sessions(db_session, setup):
    stranger = factories.create_user(db_session, email="stranger@acme-training.co.uk", role=AccountRole.INSTRUCTOR)
    with pytest.raises(Forbidden):
        router_sessions.create_session(
            cohort_id=setup["cohort"].id,
            payload=schemas.SessionCreate(lesson_id=setup["lesson"].id, scheduled_date=MARCH_10),
            db=db_session,
            current_user=stranger,
        )
