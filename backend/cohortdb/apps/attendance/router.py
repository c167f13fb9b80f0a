from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cohortdb.apps.accounts import models as account_models
from cohortdb.apps.cohorts import access, lookups
from cohortdb.database import get_db
from cohortdb.security import get_optional_current_user

from . import schemas, services

router = APIRouter(prefix="/cohorts/{cohort_id}/attendance", tags=["attendance"])


@router.get("", response_model=schemas.AttendanceListResponse)
def list_attendance(
    cohort_id: str,
    session_id: Optional[str] = None,
    learner_id: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    access.require_cohort_access(db, current_user, cohort_id)
    lookups.get_cohort(db, cohort_id)
    records, stats = services.list_attendance(
        db,
        cohort_id=cohort_id,
        session_id=session_id,
        learner_id=learner_id,
    )
    return {"records": records, "stats": stats}


@router.post("", response_model=schemas.AttendanceBulkResponse)
def mark_attendance(
    cohort_id: str,
    payload: schemas.AttendanceMarkBulk,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    """Mark a whole session register. Rejected as a unit if any learner is outside the cohort."""
    user = access.require_cohort_access(db, current_user, cohort_id)
    records = services.mark_bulk(db, cohort_id=cohort_id, payload=payload, actor_user_id=user.id)
    return {"success": True, "records": records}


@router.put("", response_model=schemas.AttendanceRead)
def mark_single_attendance(
    cohort_id: str,
    payload: schemas.AttendanceMarkSingle,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    user = access.require_cohort_access(db, current_user, cohort_id)
    return services.mark_single(db, cohort_id=cohort_id, payload=payload, actor_user_id=user.id)


@router.get("/rates", response_model=List[schemas.AttendanceRateRead])
def list_attendance_rates(
    cohort_id: str,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    access.require_cohort_access(db, current_user, cohort_id)
    lookups.get_cohort(db, cohort_id)
    rates = services.attendance_rates(db, cohort_id)
    return [
        schemas.AttendanceRateRead(
            learner_id=learner_id,
            attended=rate.attended,
            completed_sessions=rate.completed_sessions,
            rate=rate.rate,
        )
        for learner_id, rate in rates.items()
    ]
