from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List

from sqlalchemy.orm import Session

from cohortdb.apps.assessments import services as assessment_services
from cohortdb.apps.audit import services as audit_services
from cohortdb.apps.cohorts import lookups
from cohortdb.apps.cohorts.models import Learner
from cohortdb.errors import NotFound, PartialBatchRejected, ValidationFailed

from . import models, schemas
from .models import IqaStatus

logger = logging.getLogger(__name__)

UNKNOWN_LEARNER = "Unknown"


def get_sample_in_cohort(db: Session, cohort_id: str, sample_id: str) -> models.IqaSample:
    sample = db.query(models.IqaSample).filter(models.IqaSample.id == sample_id).first()
    if sample is None or sample.cohort_id != cohort_id:
        raise NotFound("IQA sample not found")
    return sample


def _learners_by_id(db: Session, learner_ids) -> Dict[str, Learner]:
    learner_ids = list(learner_ids)
    if not learner_ids:
        return {}
    rows = db.query(Learner).filter(Learner.id.in_(learner_ids)).all()
    return {row.id: row for row in rows}


# ---------------------------------------------------------------------------
# READS
# ---------------------------------------------------------------------------


def list_samples(db: Session, *, cohort_id: str) -> List[dict]:
    """Samples of the cohort, newest first, each with resolved learner names."""
    samples = (
        db.query(models.IqaSample)
        .filter(models.IqaSample.cohort_id == cohort_id)
        .order_by(models.IqaSample.sampled_at.desc(), models.IqaSample.id.desc())
        .all()
    )
    learners = _learners_by_id(
        db,
        {learner_id for sample in samples for learner_id in (sample.learners_selected or [])},
    )

    items = []
    for sample in samples:
        item = schemas.IqaSampleRead.model_validate(sample).model_dump()
        item["learner_names"] = [
            learners[learner_id].display_name if learner_id in learners else UNKNOWN_LEARNER
            for learner_id in (sample.learners_selected or [])
        ]
        items.append(item)
    return items


def sample_detail(db: Session, *, cohort_id: str, sample_id: str) -> dict:
    sample = get_sample_in_cohort(db, cohort_id, sample_id)
    selected = list(sample.learners_selected or [])
    learners = _learners_by_id(db, selected)
    signoffs = assessment_services.signoffs_for(
        db,
        learner_ids=selected,
        criterion_codes=sample.criteria_selected or [],
    )
    return {
        "sample": sample,
        "learners": [learners[learner_id] for learner_id in selected if learner_id in learners],
        "signoffs": signoffs,
    }


# ---------------------------------------------------------------------------
# WRITES
# ---------------------------------------------------------------------------


def create_sample(
    db: Session,
    *,
    cohort_id: str,
    payload: schemas.IqaSampleCreate,
    actor_user_id: str,
) -> models.IqaSample:
    sample_period = (payload.sample_period or "").strip()
    if not sample_period:
        raise ValidationFailed("sample_period is required")
    if not payload.learners_selected:
        raise ValidationFailed("At least one learner must be selected")
    if not payload.criteria_selected:
        raise ValidationFailed("At least one criterion must be selected")

    lookups.get_cohort(db, cohort_id)

    missing = lookups.missing_learner_ids(db, cohort_id, payload.learners_selected)
    if missing:
        raise PartialBatchRejected(
            "Some learners not found in cohort",
            context={"learner_ids": sorted(missing)},
        )

    # Keep selection order, drop repeats.
    learners_selected = list(dict.fromkeys(payload.learners_selected))
    criteria_selected = list(dict.fromkeys(payload.criteria_selected))

    sample = models.IqaSample(
        cohort_id=cohort_id,
        sample_period=sample_period,
        learners_selected=learners_selected,
        criteria_selected=criteria_selected,
        status=IqaStatus.PLANNED,
        sampled_by_user_id=actor_user_id,
        sampled_at=datetime.now(timezone.utc),
    )
    try:
        db.add(sample)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(sample)

    audit_services.record(
        db,
        actor_user_id=actor_user_id,
        action=audit_services.IQA_SAMPLE_CREATED,
        entity_type="IQA_SAMPLE",
        entity_id=sample.id,
        details={
            "cohort_id": cohort_id,
            "sample_period": sample.sample_period,
            "learner_count": len(learners_selected),
            "criteria_count": len(criteria_selected),
        },
    )
    return sample


def update_sample(
    db: Session,
    *,
    cohort_id: str,
    sample_id: str,
    payload: schemas.IqaSampleUpdate,
    actor_user_id: str,
) -> models.IqaSample:
    """
    Apply status / findings / action_points.

    Any status may follow any other. completed_at is stamped on the first
    move into COMPLETED and kept from then on.
    """
    sample = get_sample_in_cohort(db, cohort_id, sample_id)
    changes = payload.model_dump(exclude_unset=True)

    try:
        if changes.get("status") is not None:
            sample.status = changes["status"]
            if changes["status"] == IqaStatus.COMPLETED and sample.completed_at is None:
                sample.completed_at = datetime.now(timezone.utc)
        if "findings" in changes:
            sample.findings = changes["findings"]
        if "action_points" in changes:
            sample.action_points = changes["action_points"]
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(sample)

    audit_services.record(
        db,
        actor_user_id=actor_user_id,
        action=audit_services.IQA_SAMPLE_UPDATED,
        entity_type="IQA_SAMPLE",
        entity_id=sample.id,
        details={
            "cohort_id": cohort_id,
            "status": sample.status,
            "changes": sorted(changes.keys()),
        },
    )
    return sample


def delete_sample(
    db: Session,
    *,
    cohort_id: str,
    sample_id: str,
    actor_user_id: str,
) -> None:
    """Remove a sample. Callers must have checked the admin gate."""
    sample = get_sample_in_cohort(db, cohort_id, sample_id)
    sample_period = sample.sample_period

    try:
        db.delete(sample)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("IQA sample %s deleted from cohort %s", sample_id, cohort_id)
    audit_services.record(
        db,
        actor_user_id=actor_user_id,
        action=audit_services.IQA_SAMPLE_DELETED,
        entity_type="IQA_SAMPLE",
        entity_id=sample_id,
        details={"cohort_id": cohort_id, "sample_period": sample_period},
    )
