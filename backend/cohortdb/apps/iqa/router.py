from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from cohortdb.apps.accounts import models as account_models
from cohortdb.apps.cohorts import access, lookups
from cohortdb.database import get_db
from cohortdb.security import get_optional_current_user

from . import schemas, services

router = APIRouter(prefix="/cohorts/{cohort_id}/iqa", tags=["iqa"])


@router.get("", response_model=List[schemas.IqaSampleListItem])
def list_iqa_samples(
    cohort_id: str,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    access.require_cohort_access(db, current_user, cohort_id)
    lookups.get_cohort(db, cohort_id)
    return services.list_samples(db, cohort_id=cohort_id)


@router.post("", response_model=schemas.IqaSampleRead, status_code=status.HTTP_201_CREATED)
def create_iqa_sample(
    cohort_id: str,
    payload: schemas.IqaSampleCreate,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    user = access.require_cohort_access(db, current_user, cohort_id)
    return services.create_sample(db, cohort_id=cohort_id, payload=payload, actor_user_id=user.id)


@router.get("/{sample_id}", response_model=schemas.IqaSampleDetail)
def get_iqa_sample(
    cohort_id: str,
    sample_id: str,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    access.require_cohort_access(db, current_user, cohort_id)
    return services.sample_detail(db, cohort_id=cohort_id, sample_id=sample_id)


@router.patch("/{sample_id}", response_model=schemas.IqaSampleRead)
def update_iqa_sample(
    cohort_id: str,
    sample_id: str,
    payload: schemas.IqaSampleUpdate,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    user = access.require_cohort_access(db, current_user, cohort_id)
    return services.update_sample(
        db,
        cohort_id=cohort_id,
        sample_id=sample_id,
        payload=payload,
        actor_user_id=user.id,
    )


@router.delete("/{sample_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_iqa_sample(
    cohort_id: str,
    sample_id: str,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    """Admins only, even for instructors assigned to the cohort."""
    user = access.require_cohort_access(db, current_user, cohort_id)
    access.require_platform_admin(user, "Only admins can delete IQA samples")
    services.delete_sample(db, cohort_id=cohort_id, sample_id=sample_id, actor_user_id=user.id)
    return None
