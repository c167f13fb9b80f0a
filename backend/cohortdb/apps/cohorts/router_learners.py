from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from cohortdb.apps.accounts import models as account_models
from cohortdb.database import get_db
from cohortdb.security import get_optional_current_user

from . import access, lookups, schemas, services

router = APIRouter(prefix="/cohorts/{cohort_id}/learners", tags=["learners"])


@router.get("", response_model=List[schemas.LearnerListItem])
def list_learners(
    cohort_id: str,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    access.require_cohort_access(db, current_user, cohort_id)
    return services.list_learners(db, cohort_id=cohort_id)


@router.post("", response_model=schemas.LearnerRead, status_code=status.HTTP_201_CREATED)
def add_learner(
    cohort_id: str,
    payload: schemas.LearnerCreate,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    user = access.require_cohort_access(db, current_user, cohort_id)
    return services.add_learner(db, cohort_id=cohort_id, payload=payload, actor_user_id=user.id)


@router.get("/{learner_id}", response_model=schemas.LearnerRead)
def get_learner(
    cohort_id: str,
    learner_id: str,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    access.require_cohort_access(db, current_user, cohort_id)
    return lookups.get_learner_in_cohort(db, cohort_id, learner_id)


@router.patch("/{learner_id}", response_model=schemas.LearnerRead)
def update_learner(
    cohort_id: str,
    learner_id: str,
    payload: schemas.LearnerUpdate,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    user = access.require_cohort_access(db, current_user, cohort_id)
    return services.update_learner(
        db,
        cohort_id=cohort_id,
        learner_id=learner_id,
        payload=payload,
        actor_user_id=user.id,
    )


@router.delete("/{learner_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_learner(
    cohort_id: str,
    learner_id: str,
    hard: bool = False,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    """Withdraw the learner; `hard=true` deletes the row and is admin-only."""
    user = access.require_cohort_access(db, current_user, cohort_id)
    if hard:
        access.require_platform_admin(user, "Only admins can permanently delete learners")
        services.delete_learner(db, cohort_id=cohort_id, learner_id=learner_id, actor_user_id=user.id)
    else:
        services.withdraw_learner(db, cohort_id=cohort_id, learner_id=learner_id, actor_user_id=user.id)
    return None
