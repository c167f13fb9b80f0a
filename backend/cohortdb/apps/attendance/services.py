from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cohortdb.apps.audit import services as audit_services
from cohortdb.apps.cohorts import lookups
from cohortdb.apps.cohorts.models import Learner, SessionDelivery, SessionStatus
from cohortdb.errors import PartialBatchRejected

from . import models, schemas
from .models import ATTENDED_STATUSES, AttendanceStatus

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# ATTENDANCE RATE
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AttendanceRate:
    attended: int
    completed_sessions: int

    @property
    def rate(self) -> Optional[int]:
        """
        Whole-number percentage, rounded half up.

        None means "no rate yet" and is not the same as 0 %.
        """
        if self.completed_sessions == 0:
            return None
        return (self.attended * 200 + self.completed_sessions) // (2 * self.completed_sessions)


def compute_attendance_rate(
    marks: Iterable[Tuple[AttendanceStatus, SessionStatus]],
) -> AttendanceRate:
    """
    Rate over (attendance status, session status) pairs for one learner.

    Only sessions that are COMPLETED count, in both numerator and
    denominator; marks against scheduled or running sessions are ignored.
    """
    attended = 0
    completed = 0
    for attendance_status, session_status in marks:
        if SessionStatus(session_status) != SessionStatus.COMPLETED:
            continue
        completed += 1
        if AttendanceStatus(attendance_status) in ATTENDED_STATUSES:
            attended += 1
    return AttendanceRate(attended=attended, completed_sessions=completed)


def attendance_rates(db: Session, cohort_id: str) -> Dict[str, AttendanceRate]:
    """Attendance rate for every learner of the cohort, keyed by learner id."""
    marks: Dict[str, List[Tuple[AttendanceStatus, SessionStatus]]] = {
        learner_id: [] for learner_id in lookups.cohort_learner_ids(db, cohort_id)
    }
    rows = (
        db.query(models.Attendance.learner_id, models.Attendance.status, SessionDelivery.status)
        .join(SessionDelivery, SessionDelivery.id == models.Attendance.session_id)
        .filter(SessionDelivery.cohort_id == cohort_id)
        .all()
    )
    for learner_id, attendance_status, session_status in rows:
        marks.setdefault(learner_id, []).append((attendance_status, session_status))
    return {learner_id: compute_attendance_rate(pairs) for learner_id, pairs in marks.items()}


# ---------------------------------------------------------------------------
# READS
# ---------------------------------------------------------------------------


def status_counts(records: Iterable[models.Attendance]) -> schemas.AttendanceStats:
    counts = Counter(AttendanceStatus(r.status) for r in records)
    return schemas.AttendanceStats(
        total=sum(counts.values()),
        by_status={s: counts.get(s, 0) for s in AttendanceStatus},
    )


def list_attendance(
    db: Session,
    *,
    cohort_id: str,
    session_id: Optional[str] = None,
    learner_id: Optional[str] = None,
) -> Tuple[List[models.Attendance], schemas.AttendanceStats]:
    query = (
        db.query(models.Attendance)
        .join(SessionDelivery, SessionDelivery.id == models.Attendance.session_id)
        .join(Learner, Learner.id == models.Attendance.learner_id)
        .filter(SessionDelivery.cohort_id == cohort_id)
    )
    if session_id:
        query = query.filter(models.Attendance.session_id == session_id)
    if learner_id:
        query = query.filter(models.Attendance.learner_id == learner_id)

    records = query.order_by(SessionDelivery.scheduled_date.desc(), Learner.last_name.asc()).all()
    return records, status_counts(records)


# ---------------------------------------------------------------------------
# WRITES
# ---------------------------------------------------------------------------


def _apply_mark(
    db: Session,
    existing: Optional[models.Attendance],
    *,
    session_id: str,
    entry: schemas.AttendanceEntry,
    marked_by: str,
    now: datetime,
) -> models.Attendance:
    if existing is None:
        existing = models.Attendance(session_id=session_id, learner_id=entry.learner_id)
        db.add(existing)
    existing.status = entry.status
    existing.arrived_at = entry.arrived_at
    existing.marked_by_user_id = marked_by
    existing.marked_at = now
    return existing


def _existing_marks(db: Session, session_id: str, learner_ids: Iterable[str]) -> Dict[str, models.Attendance]:
    rows = (
        db.query(models.Attendance)
        .filter(
            models.Attendance.session_id == session_id,
            models.Attendance.learner_id.in_(list(learner_ids)),
        )
        .all()
    )
    return {row.learner_id: row for row in rows}


def _find_mark(db: Session, session_id: str, learner_id: str) -> Optional[models.Attendance]:
    return (
        db.query(models.Attendance)
        .filter(
            models.Attendance.session_id == session_id,
            models.Attendance.learner_id == learner_id,
        )
        .first()
    )


def _write_marks(
    db: Session,
    session_id: str,
    entries: Dict[str, schemas.AttendanceEntry],
    *,
    marked_by: str,
) -> List[models.Attendance]:
    """
    Upsert the marks for one session and commit once.

    If a concurrent writer inserts one of the (session, learner) rows after
    our lookup, the unique constraint rejects our insert; the marks are then
    reapplied over the rows now present and the later write wins.
    """
    now = datetime.now(timezone.utc)
    try:
        try:
            existing = _existing_marks(db, session_id, entries.keys())
            records = [
                _apply_mark(db, existing.get(learner_id), session_id=session_id, entry=entry, marked_by=marked_by, now=now)
                for learner_id, entry in entries.items()
            ]
            db.flush()
        except IntegrityError:
            db.rollback()
            logger.info("Attendance row taken by a concurrent write; reapplying %d marks", len(entries))
            existing = {learner_id: _find_mark(db, session_id, learner_id) for learner_id in entries}
            records = [
                _apply_mark(db, existing[learner_id], session_id=session_id, entry=entry, marked_by=marked_by, now=now)
                for learner_id, entry in entries.items()
            ]
            db.flush()
        db.commit()
    except Exception:
        db.rollback()
        raise
    return records


def mark_bulk(
    db: Session,
    *,
    cohort_id: str,
    payload: schemas.AttendanceMarkBulk,
    actor_user_id: str,
) -> List[models.Attendance]:
    """
    Upsert a session register as one unit.

    The session and every learner are checked before anything is written;
    the writes then share a single transaction.
    """
    session = lookups.get_session_in_cohort(db, cohort_id, payload.session_id)

    # Last entry wins when the same learner appears twice in one batch.
    entries = {entry.learner_id: entry for entry in payload.records}

    missing = lookups.missing_learner_ids(db, cohort_id, entries.keys())
    if missing:
        raise PartialBatchRejected(
            "Some learners not found in cohort",
            context={"learner_ids": sorted(missing)},
        )

    records = _write_marks(db, session.id, entries, marked_by=actor_user_id)

    summary = Counter(entry.status.value.lower() for entry in entries.values())
    logger.info(
        "Attendance marked for session %s (%d records)",
        session.id,
        len(records),
    )
    audit_services.record(
        db,
        actor_user_id=actor_user_id,
        action=audit_services.ATTENDANCE_MARKED,
        entity_type="SESSION",
        entity_id=session.id,
        details={
            "cohort_id": cohort_id,
            "record_count": len(records),
            "summary": dict(summary),
        },
    )
    return records


def mark_single(
    db: Session,
    *,
    cohort_id: str,
    payload: schemas.AttendanceMarkSingle,
    actor_user_id: str,
) -> models.Attendance:
    """Upsert one mark. Routine edits are not audited."""
    session = lookups.get_session_in_cohort(db, cohort_id, payload.session_id)
    lookups.get_learner_in_cohort(db, cohort_id, payload.learner_id)

    [record] = _write_marks(db, session.id, {payload.learner_id: payload}, marked_by=actor_user_id)
    db.refresh(record)
    return record
