from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cohortdb.apps.audit import services as audit_services
from cohortdb.apps.cohorts import lookups
from cohortdb.apps.cohorts.models import Learner
from cohortdb.apps.curriculum import services as curriculum_services
from cohortdb.errors import NotFound, PartialBatchRejected

from . import models, schemas
from .models import AUDITED_STATUSES, STAMPED_STATUSES, SignoffStatus

logger = logging.getLogger(__name__)

SignoffKey = Tuple[str, str, str]


def _key(item) -> SignoffKey:
    return (item.learner_id, item.lesson_id, item.criterion_code)


# ---------------------------------------------------------------------------
# READS
# ---------------------------------------------------------------------------


def status_counts(records: Iterable[models.AssessmentSignoff]) -> schemas.SignoffStats:
    counts = Counter(SignoffStatus(r.status) for r in records)
    return schemas.SignoffStats(
        total=sum(counts.values()),
        by_status={s: counts.get(s, 0) for s in SignoffStatus},
    )


def group_by_learner(records: Iterable[models.AssessmentSignoff]) -> List[dict]:
    """Learner x criterion matrix rows, in the order the records arrive."""
    grouped: Dict[str, dict] = {}
    for record in records:
        row = grouped.get(record.learner_id)
        if row is None:
            row = grouped[record.learner_id] = {"learner": record.learner, "criteria": []}
        row["criteria"].append(record)
    return list(grouped.values())


def list_signoffs(
    db: Session,
    *,
    cohort_id: str,
    learner_id: Optional[str] = None,
    lesson_id: Optional[str] = None,
    status: Optional[SignoffStatus] = None,
    criterion_code: Optional[str] = None,
) -> List[models.AssessmentSignoff]:
    query = (
        db.query(models.AssessmentSignoff)
        .join(Learner, Learner.id == models.AssessmentSignoff.learner_id)
        .filter(Learner.cohort_id == cohort_id)
    )
    if learner_id:
        query = query.filter(models.AssessmentSignoff.learner_id == learner_id)
    if lesson_id:
        query = query.filter(models.AssessmentSignoff.lesson_id == lesson_id)
    if status:
        query = query.filter(models.AssessmentSignoff.status == status)
    if criterion_code:
        query = query.filter(models.AssessmentSignoff.criterion_code == criterion_code)

    return query.order_by(
        Learner.last_name.asc(),
        Learner.first_name.asc(),
        models.AssessmentSignoff.learner_id.asc(),
        models.AssessmentSignoff.lesson_id.asc(),
        models.AssessmentSignoff.criterion_code.asc(),
    ).all()


def signoffs_for(
    db: Session,
    *,
    learner_ids: Iterable[str],
    criterion_codes: Iterable[str],
) -> List[models.AssessmentSignoff]:
    """Signoffs in the intersection of the given learners and criteria."""
    learner_ids = list(learner_ids)
    criterion_codes = list(criterion_codes)
    if not learner_ids or not criterion_codes:
        return []
    return (
        db.query(models.AssessmentSignoff)
        .filter(
            models.AssessmentSignoff.learner_id.in_(learner_ids),
            models.AssessmentSignoff.criterion_code.in_(criterion_codes),
        )
        .order_by(
            models.AssessmentSignoff.learner_id.asc(),
            models.AssessmentSignoff.criterion_code.asc(),
        )
        .all()
    )


def status_counts_by_learner(db: Session, cohort_id: str) -> Dict[str, Counter]:
    """Per-learner signoff counts by status for every learner of the cohort."""
    counts: Dict[str, Counter] = {learner_id: Counter() for learner_id in lookups.cohort_learner_ids(db, cohort_id)}
    rows = (
        db.query(models.AssessmentSignoff.learner_id, models.AssessmentSignoff.status)
        .join(Learner, Learner.id == models.AssessmentSignoff.learner_id)
        .filter(Learner.cohort_id == cohort_id)
        .all()
    )
    for learner_id, status in rows:
        counts.setdefault(learner_id, Counter())[SignoffStatus(status)] += 1
    return counts


def assessment_progress(counts: Counter) -> Optional[int]:
    """% of a learner's signoffs that are SIGNED_OFF or VERIFIED; None when they have none."""
    total = sum(counts.values())
    if total == 0:
        return None
    done = sum(counts.get(s, 0) for s in STAMPED_STATUSES)
    return (done * 200 + total) // (2 * total)


# ---------------------------------------------------------------------------
# WRITES
# ---------------------------------------------------------------------------


def apply_status(
    signoff: models.AssessmentSignoff,
    status: SignoffStatus,
    *,
    actor_user_id: Optional[str],
    now: datetime,
) -> None:
    """Set the status and keep the sign-off stamp consistent with it."""
    signoff.status = status
    if status in STAMPED_STATUSES:
        signoff.signed_off_at = now
        signoff.signed_off_by_user_id = actor_user_id
    else:
        signoff.signed_off_at = None
        signoff.signed_off_by_user_id = None


def _apply_upsert(
    db: Session,
    existing: Optional[models.AssessmentSignoff],
    payload: schemas.SignoffUpsert,
    *,
    actor_user_id: str,
    now: datetime,
) -> models.AssessmentSignoff:
    given = payload.model_fields_set
    if existing is None:
        existing = models.AssessmentSignoff(
            learner_id=payload.learner_id,
            lesson_id=payload.lesson_id,
            criterion_code=payload.criterion_code,
            criterion_text=payload.criterion_text,
            evidence_notes=payload.evidence_notes,
            evidence_files=list(payload.evidence_files or []),
        )
        db.add(existing)
    else:
        if "evidence_notes" in given:
            existing.evidence_notes = payload.evidence_notes
        if "evidence_files" in given:
            existing.evidence_files = list(payload.evidence_files or [])

    apply_status(existing, payload.status, actor_user_id=actor_user_id, now=now)
    return existing


def _existing_signoffs(db: Session, keys: Iterable[SignoffKey]) -> Dict[SignoffKey, models.AssessmentSignoff]:
    keys = list(keys)
    if not keys:
        return {}
    learner_ids = {k[0] for k in keys}
    lesson_ids = {k[1] for k in keys}
    rows = (
        db.query(models.AssessmentSignoff)
        .filter(
            models.AssessmentSignoff.learner_id.in_(learner_ids),
            models.AssessmentSignoff.lesson_id.in_(lesson_ids),
        )
        .all()
    )
    wanted = set(keys)
    return {_key(row): row for row in rows if _key(row) in wanted}


def _find_signoff(db: Session, key: SignoffKey) -> Optional[models.AssessmentSignoff]:
    learner_id, lesson_id, criterion_code = key
    return (
        db.query(models.AssessmentSignoff)
        .filter(
            models.AssessmentSignoff.learner_id == learner_id,
            models.AssessmentSignoff.lesson_id == lesson_id,
            models.AssessmentSignoff.criterion_code == criterion_code,
        )
        .first()
    )


def _write_signoffs(
    db: Session,
    entries: Dict[SignoffKey, schemas.SignoffUpsert],
    *,
    actor_user_id: str,
) -> List[models.AssessmentSignoff]:
    """
    Upsert every entry and commit once.

    A concurrent writer can insert one of these keys between our lookup and
    our flush. The unique constraint then rejects the insert; the batch is
    rolled back and applied once more on top of the rows now present, so the
    later write wins instead of failing.
    """
    now = datetime.now(timezone.utc)
    try:
        try:
            existing = _existing_signoffs(db, entries.keys())
            records = [
                _apply_upsert(db, existing.get(key), entry, actor_user_id=actor_user_id, now=now)
                for key, entry in entries.items()
            ]
            db.flush()
        except IntegrityError:
            db.rollback()
            logger.info("Signoff key taken by a concurrent write; reapplying %d entries", len(entries))
            existing = {key: _find_signoff(db, key) for key in entries}
            records = [
                _apply_upsert(db, existing[key], entry, actor_user_id=actor_user_id, now=now)
                for key, entry in entries.items()
            ]
            db.flush()
        db.commit()
    except Exception:
        db.rollback()
        raise
    return records


def upsert_signoff(
    db: Session,
    *,
    cohort_id: str,
    payload: schemas.SignoffUpsert,
    actor_user_id: str,
) -> models.AssessmentSignoff:
    learner = lookups.get_learner_in_cohort(db, cohort_id, payload.learner_id)
    if curriculum_services.get_lesson(db, payload.lesson_id) is None:
        raise NotFound("Lesson not found")

    [signoff] = _write_signoffs(db, {_key(payload): payload}, actor_user_id=actor_user_id)
    db.refresh(signoff)

    if payload.status in AUDITED_STATUSES:
        audit_services.record(
            db,
            actor_user_id=actor_user_id,
            action=f"ASSESSMENT_{payload.status.value}",
            entity_type="ASSESSMENT",
            entity_id=signoff.id,
            details={
                "cohort_id": cohort_id,
                "learner_id": learner.id,
                "learner_name": learner.display_name,
                "lesson_id": payload.lesson_id,
                "criterion_code": payload.criterion_code,
            },
        )
    return signoff


def upsert_bulk(
    db: Session,
    *,
    cohort_id: str,
    payload: schemas.SignoffBulkUpsert,
    actor_user_id: str,
) -> List[models.AssessmentSignoff]:
    """
    Upsert a batch of signoffs as one unit.

    Every learner must belong to the cohort and every lesson must exist;
    otherwise nothing is written.
    """
    lookups.get_cohort(db, cohort_id)

    # Last entry wins when the same key appears twice in one batch.
    entries: Dict[SignoffKey, schemas.SignoffUpsert] = {_key(s): s for s in payload.signoffs}

    missing_learners = lookups.missing_learner_ids(db, cohort_id, {k[0] for k in entries})
    if missing_learners:
        raise PartialBatchRejected(
            "Some learners not found in cohort",
            context={"learner_ids": sorted(missing_learners)},
        )

    missing_lessons = curriculum_services.missing_lesson_ids(db, {k[1] for k in entries})
    if missing_lessons:
        raise NotFound(
            "Lesson not found",
            context={"lesson_ids": sorted(missing_lessons)},
        )

    records = _write_signoffs(db, entries, actor_user_id=actor_user_id)

    summary = Counter(entry.status.value.lower() for entry in entries.values())
    learner_ids = sorted({k[0] for k in entries})
    logger.info(
        "Assessment signoffs updated for cohort %s (%d records)",
        cohort_id,
        len(records),
    )
    audit_services.record(
        db,
        actor_user_id=actor_user_id,
        action=audit_services.ASSESSMENTS_UPDATED,
        entity_type="COHORT",
        entity_id=cohort_id,
        details={
            "count": len(records),
            "learner_ids": learner_ids,
            "summary": dict(summary),
        },
    )
    return records
