from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cohortdb.apps.accounts import models as account_models
from cohortdb.apps.cohorts import access, lookups
from cohortdb.database import get_db
from cohortdb.security import get_optional_current_user

from . import schemas, services
from .models import SignoffStatus

router = APIRouter(prefix="/cohorts/{cohort_id}/assessments", tags=["assessments"])


@router.get("", response_model=schemas.AssessmentListResponse)
def list_assessments(
    cohort_id: str,
    learner_id: Optional[str] = None,
    lesson_id: Optional[str] = None,
    status: Optional[SignoffStatus] = None,
    criterion_code: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    access.require_cohort_access(db, current_user, cohort_id)
    lookups.get_cohort(db, cohort_id)
    records = services.list_signoffs(
        db,
        cohort_id=cohort_id,
        learner_id=learner_id,
        lesson_id=lesson_id,
        status=status,
        criterion_code=criterion_code,
    )
    return {
        "records": records,
        "by_learner": services.group_by_learner(records),
        "stats": services.status_counts(records),
    }


@router.post("", response_model=schemas.SignoffRead)
def upsert_assessment(
    cohort_id: str,
    payload: schemas.SignoffUpsert,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    user = access.require_cohort_access(db, current_user, cohort_id)
    return services.upsert_signoff(db, cohort_id=cohort_id, payload=payload, actor_user_id=user.id)


@router.post("/bulk", response_model=schemas.SignoffBulkResponse)
def upsert_assessments_bulk(
    cohort_id: str,
    payload: schemas.SignoffBulkUpsert,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    """Apply a batch of signoffs. Rejected as a unit if any learner is outside the cohort."""
    user = access.require_cohort_access(db, current_user, cohort_id)
    records = services.upsert_bulk(db, cohort_id=cohort_id, payload=payload, actor_user_id=user.id)
    return {"success": True, "records": records}
