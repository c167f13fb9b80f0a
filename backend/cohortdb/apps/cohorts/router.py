from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from cohortdb.apps.accounts import models as account_models
from cohortdb.database import get_db
from cohortdb.errors import Unauthenticated
from cohortdb.security import get_optional_current_user

from . import access, lookups, schemas, services
from .models import CohortStatus

router = APIRouter(prefix="/cohorts", tags=["cohorts"])


@router.get("", response_model=List[schemas.CohortListItem])
def list_cohorts(
    status_filter: Optional[CohortStatus] = Query(None, alias="status"),
    course_id: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    if current_user is None:
        raise Unauthenticated()
    return services.list_cohorts(db, caller=current_user, status=status_filter, course_id=course_id)


@router.post("", response_model=schemas.CohortRead, status_code=status.HTTP_201_CREATED)
def create_cohort(
    payload: schemas.CohortCreate,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    user = access.require_platform_admin(current_user, "Only admins can create cohorts")
    return services.create_cohort(db, payload=payload, actor_user_id=user.id)


@router.get("/{cohort_id}", response_model=schemas.CohortRead)
def get_cohort(
    cohort_id: str,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    access.require_cohort_access(db, current_user, cohort_id)
    return lookups.get_cohort(db, cohort_id)


@router.patch("/{cohort_id}", response_model=schemas.CohortRead)
def update_cohort(
    cohort_id: str,
    payload: schemas.CohortUpdate,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    user = access.require_cohort_access(db, current_user, cohort_id)
    return services.update_cohort(db, cohort_id=cohort_id, payload=payload, actor_user_id=user.id)


@router.delete("/{cohort_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_cohort(
    cohort_id: str,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    user = access.require_platform_admin(current_user, "Only admins can delete cohorts")
    services.delete_cohort(db, cohort_id=cohort_id, actor_user_id=user.id)
    return None


@router.get("/{cohort_id}/access", response_model=schemas.AccessDecisionRead)
def get_cohort_access(
    cohort_id: str,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    """The caller's access decision for this cohort. Never raises for a denial."""
    decision = access.authorize_cohort_access(db, current_user, cohort_id)
    return schemas.AccessDecisionRead(
        allowed=decision.allowed,
        reason=decision.reason,
        status_code=decision.status_code,
    )
