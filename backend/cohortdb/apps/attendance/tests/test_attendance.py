from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from cohortdb.apps.accounts.models import AccountRole
from cohortdb.apps.attendance import models as attendance_models
from cohortdb.apps.attendance import router as attendance_router
from cohortdb.apps.attendance import schemas, services
from cohortdb.apps.attendance.models import AttendanceStatus
from cohortdb.apps.audit import models as audit_models
from cohortdb.apps.audit import services as audit_services
from cohortdb.apps.cohorts.models import SessionStatus
from cohortdb.errors import Forbidden, NotFound, PartialBatchRejected
from cohortdb.tests import factories


@pytest.fixture()
def setup(db_session):
    instructor = factories.create_user(db_session, email="lead@acme-training.co.uk", role=AccountRole.INSTRUCTOR)
    course = factories.create_course(db_session)
    lesson = factories.create_lesson(db_session, course_id=course.id)
    cohort = factories.create_cohort(db_session, course_id=course.id, instructor_ids=[instructor.id])
    ada = factories.create_learner(db_session, cohort_id=cohort.id, first_name="Ada", last_name="Lovelace")
    alan = factories.create_learner(db_session, cohort_id=cohort.id, first_name="Alan", last_name="Turing")
    session = factories.create_session(db_session, cohort_id=cohort.id, lesson_id=lesson.id)
    return {
        "instructor": instructor,
        "course": course,
        "lesson": lesson,
        "cohort": cohort,
        "learners": [ada, alan],
        "session": session,
    }


def _bulk(session_id, *entries):
    return schemas.AttendanceMarkBulk(
        session_id=session_id,
        records=[{"learner_id": learner_id, "status": status} for learner_id, status in entries],
    )


def _attendance_count(db):
    return db.query(attendance_models.Attendance).count()


# ---------------------------------------------------------------------------
# ATTENDANCE RATE
# ---------------------------------------------------------------------------


def test_rate_is_none_without_completed_sessions():
    rate = services.compute_attendance_rate(
        [
            (AttendanceStatus.PRESENT, SessionStatus.SCHEDULED),
            (AttendanceStatus.LATE, SessionStatus.IN_PROGRESS),
        ]
    )
    assert rate.completed_sessions == 0
    assert rate.rate is None


def test_rate_counts_present_and_late_over_completed_sessions_only():
    rate = services.compute_attendance_rate(
        [
            (AttendanceStatus.PRESENT, SessionStatus.COMPLETED),
            (AttendanceStatus.LATE, SessionStatus.COMPLETED),
            (AttendanceStatus.ABSENT, SessionStatus.COMPLETED),
            (AttendanceStatus.EXCUSED, SessionStatus.COMPLETED),
            (AttendanceStatus.PRESENT, SessionStatus.SCHEDULED),
        ]
    )
    assert (rate.attended, rate.completed_sessions) == (2, 4)
    assert rate.rate == 50


@pytest.mark.parametrize(
    "attended, completed, expected",
    [(0, 3, 0), (1, 3, 33), (2, 3, 67), (1, 8, 13), (3, 3, 100)],
)
def test_rate_rounds_half_up(attended, completed, expected):
    assert services.AttendanceRate(attended=attended, completed_sessions=completed).rate == expected


def test_learner_with_half_of_completed_sessions_has_rate_50(db_session, setup):
    cohort, lesson = setup["cohort"], setup["lesson"]
    learner = setup["learners"][0]
    start = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
    marks = [AttendanceStatus.PRESENT, AttendanceStatus.ABSENT, AttendanceStatus.LATE, AttendanceStatus.ABSENT]
    for offset, status in enumerate(marks):
        session = factories.create_session(
            db_session,
            cohort_id=cohort.id,
            lesson_id=lesson.id,
            scheduled_date=start + timedelta(days=offset),
            status=SessionStatus.COMPLETED,
        )
        db_session.add(attendance_models.Attendance(session_id=session.id, learner_id=learner.id, status=status))
    db_session.commit()

    rates = services.attendance_rates(db_session, cohort.id)
    assert rates[learner.id].completed_sessions == 4
    assert rates[learner.id].rate == 50
    # No marks at all: undefined, not zero.
    assert rates[setup["learners"][1].id].rate is None


# ---------------------------------------------------------------------------
# BULK MARK
# ---------------------------------------------------------------------------


def test_bulk_mark_writes_every_record_and_audits(db_session, setup):
    ada, alan = setup["learners"]
    records = services.mark_bulk(
        db_session,
        cohort_id=setup["cohort"].id,
        payload=_bulk(setup["session"].id, (ada.id, "PRESENT"), (alan.id, "ABSENT")),
        actor_user_id=setup["instructor"].id,
    )

    assert len(records) == 2
    assert {r.marked_by_user_id for r in records} == {setup["instructor"].id}

    entry = (
        db_session.query(audit_models.AuditLog)
        .filter(audit_models.AuditLog.action == audit_services.ATTENDANCE_MARKED)
        .one()
    )
    assert entry.entity_type == "SESSION"
    assert entry.entity_id == setup["session"].id
    assert entry.details["summary"] == {"present": 1, "absent": 1}


def test_bulk_mark_rejects_whole_batch_when_one_learner_is_outside_cohort(db_session, setup):
    other_cohort = factories.create_cohort(db_session, course_id=setup["course"].id, code="FAW-2026-02")
    outsider = factories.create_learner(db_session, cohort_id=other_cohort.id, first_name="Grace", last_name="Hopper")
    ada = setup["learners"][0]

    with pytest.raises(PartialBatchRejected) as exc:
        services.mark_bulk(
            db_session,
            cohort_id=setup["cohort"].id,
            payload=_bulk(setup["session"].id, (ada.id, "PRESENT"), (outsider.id, "PRESENT")),
            actor_user_id=setup["instructor"].id,
        )

    assert exc.value.status_code == 400
    assert exc.value.context["learner_ids"] == [outsider.id]
    assert _attendance_count(db_session) == 0
    assert db_session.query(audit_models.AuditLog).count() == 0


def test_bulk_mark_rejects_session_of_another_cohort(db_session, setup):
    other_cohort = factories.create_cohort(db_session, course_id=setup["course"].id, code="FAW-2026-02")
    foreign_session = factories.create_session(db_session, cohort_id=other_cohort.id, lesson_id=setup["lesson"].id)

    with pytest.raises(NotFound):
        services.mark_bulk(
            db_session,
            cohort_id=setup["cohort"].id,
            payload=_bulk(foreign_session.id, (setup["learners"][0].id, "PRESENT")),
            actor_user_id=setup["instructor"].id,
        )
    assert _attendance_count(db_session) == 0


def test_remarking_overwrites_instead_of_adding_rows(db_session, setup):
    ada, alan = setup["learners"]
    kwargs = dict(cohort_id=setup["cohort"].id, actor_user_id=setup["instructor"].id)

    services.mark_bulk(db_session, payload=_bulk(setup["session"].id, (ada.id, "PRESENT"), (alan.id, "PRESENT")), **kwargs)
    services.mark_bulk(db_session, payload=_bulk(setup["session"].id, (ada.id, "LATE"), (alan.id, "ABSENT")), **kwargs)

    assert _attendance_count(db_session) == 2
    records, stats = services.list_attendance(db_session, cohort_id=setup["cohort"].id)
    assert {r.learner_id: r.status for r in records} == {
        ada.id: AttendanceStatus.LATE,
        alan.id: AttendanceStatus.ABSENT,
    }
    assert stats.total == 2
    assert stats.by_status[AttendanceStatus.PRESENT] == 0


def test_duplicate_learner_in_one_batch_keeps_last_entry(db_session, setup):
    ada = setup["learners"][0]
    records = services.mark_bulk(
        db_session,
        cohort_id=setup["cohort"].id,
        payload=_bulk(setup["session"].id, (ada.id, "ABSENT"), (ada.id, "PRESENT")),
        actor_user_id=setup["instructor"].id,
    )
    assert len(records) == 1
    assert records[0].status == AttendanceStatus.PRESENT


def test_bulk_mark_survives_audit_failure(db_session, setup, monkeypatch):
    def _boom(*args, **kwargs):
        raise RuntimeError("audit store unavailable")

    monkeypatch.setattr(audit_services, "create_audit_log", _boom)
    ada = setup["learners"][0]

    records = services.mark_bulk(
        db_session,
        cohort_id=setup["cohort"].id,
        payload=_bulk(setup["session"].id, (ada.id, "PRESENT")),
        actor_user_id=setup["instructor"].id,
    )

    assert len(records) == 1
    assert _attendance_count(db_session) == 1


# ---------------------------------------------------------------------------
# SINGLE MARK / ROUTER
# ---------------------------------------------------------------------------


def test_single_mark_is_not_audited(db_session, setup):
    ada = setup["learners"][0]
    record = services.mark_single(
        db_session,
        cohort_id=setup["cohort"].id,
        payload=schemas.AttendanceMarkSingle(session_id=setup["session"].id, learner_id=ada.id, status="EXCUSED"),
        actor_user_id=setup["instructor"].id,
    )
    assert record.status == AttendanceStatus.EXCUSED
    assert db_session.query(audit_models.AuditLog).count() == 0


def test_single_mark_for_learner_of_another_cohort_is_not_found(db_session, setup):
    other_cohort = factories.create_cohort(db_session, course_id=setup["course"].id, code="FAW-2026-02")
    outsider = factories.create_learner(db_session, cohort_id=other_cohort.id, first_name="Grace", last_name="Hopper")

    with pytest.raises(NotFound):
        services.mark_single(
            db_session,
            cohort_id=setup["cohort"].id,
            payload=schemas.AttendanceMarkSingle(
                session_id=setup["session"].id,
                learner_id=outsider.id,
                status="PRESENT",
            ),
            actor_user_id=setup["instructor"].id,
        )


def test_unassigned_instructor_cannot_mark_attendance(db_session, setup):
    stranger = factories.create_user(db_session, email="stranger@acme-training.co.uk", role=AccountRole.INSTRUCTOR)
    ada = setup["learners"][0]

    with pytest.raises(Forbidden) as exc:
        attendance_router.mark_attendance(
            cohort_id=setup["cohort"].id,
            payload=_bulk(setup["session"].id, (ada.id, "PRESENT")),
            db=db_session,
            current_user=stranger,
        )

    assert exc.value.status_code == 403
    assert _attendance_count(db_session) == 0


def test_rates_route_lists_every_learner(db_session, setup):
    rows = attendance_router.list_attendance_rates(
        cohort_id=setup["cohort"].id,
        db=db_session,
        current_user=setup["instructor"],
    )
    assert {row.learner_id for row in rows} == {learner.id for learner in setup["learners"]}
    assert all(row.rate is None for row in rows)


# ---------------------------------------------------------------------------
# CONCURRENT WRITES / MISSING COHORT
# ---------------------------------------------------------------------------


def test_bulk_mark_after_stale_lookup_overwrites_instead_of_conflicting(db_session, setup, monkeypatch):
    ada, alan = setup["learners"]
    kwargs = dict(cohort_id=setup["cohort"].id, actor_user_id=setup["instructor"].id)
    services.mark_bulk(db_session, payload=_bulk(setup["session"].id, (ada.id, "ABSENT")), **kwargs)
    # The lookup ran before another writer committed Ada's mark.
    monkeypatch.setattr(services, "_existing_marks", lambda db, session_id, learner_ids: {})

    records = services.mark_bulk(
        db_session,
        payload=_bulk(setup["session"].id, (ada.id, "LATE"), (alan.id, "PRESENT")),
        **kwargs,
    )

    assert len(records) == 2
    assert _attendance_count(db_session) == 2
    marks, _ = services.list_attendance(db_session, cohort_id=setup["cohort"].id)
    assert {r.learner_id: r.status for r in marks} == {
        ada.id: AttendanceStatus.LATE,
        alan.id: AttendanceStatus.PRESENT,
    }


def test_single_mark_after_stale_lookup_overwrites(db_session, setup, monkeypatch):
    ada = setup["learners"][0]
    payload = dict(session_id=setup["session"].id, learner_id=ada.id)
    kwargs = dict(cohort_id=setup["cohort"].id, actor_user_id=setup["instructor"].id)
    services.mark_single(db_session, payload=schemas.AttendanceMarkSingle(status="ABSENT", **payload), **kwargs)
    monkeypatch.setattr(services, "_existing_marks", lambda db, session_id, learner_ids: {})

    record = services.mark_single(db_session, payload=schemas.AttendanceMarkSingle(status="PRESENT", **payload), **kwargs)

    assert record.status == AttendanceStatus.PRESENT
    assert _attendance_count(db_session) == 1


def test_list_for_missing_cohort_is_not_found(db_session, setup):
    admin = factories.create_user(db_session, email="admin@acme-training.co.uk", role=AccountRole.ADMIN)
    with pytest.raises(NotFound):
        attendance_router.list_attendance(
            cohort_id="no-such-cohort",
            session_id=None,
            learner_id=None,
            db=db_session,
            current_user=admin,
        )
