from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from cohortdb.apps.accounts import models as account_models
from cohortdb.database import get_db
from cohortdb.security import get_optional_current_user

from . import access, schemas, services

router = APIRouter(prefix="/cohorts/{cohort_id}/sessions", tags=["sessions"])


@router.get("", response_model=List[schemas.SessionListItem])
def list_sessions(
    cohort_id: str,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    access.require_cohort_access(db, current_user, cohort_id)
    return services.list_sessions(db, cohort_id=cohort_id)


@router.post("", response_model=schemas.SessionRead, status_code=status.HTTP_201_CREATED)
def create_session(
    cohort_id: str,
    payload: schemas.SessionCreate,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    user = access.require_cohort_access(db, current_user, cohort_id)
    return services.create_session(db, cohort_id=cohort_id, payload=payload, actor_user_id=user.id)


@router.get("/{session_id}", response_model=schemas.SessionDetail)
def get_session(
    cohort_id: str,
    session_id: str,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    access.require_cohort_access(db, current_user, cohort_id)
    return services.session_detail(db, cohort_id=cohort_id, session_id=session_id)


@router.patch("/{session_id}", response_model=schemas.SessionRead)
def update_session(
    cohort_id: str,
    session_id: str,
    payload: schemas.SessionUpdate,
    db: Session = Depends(get_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    user = access.require_cohort_access(db, current_user, cohort_id)
    return services.update_session(
        db,
        cohort_id=cohort_id,
        session_id=session_id,
        payload=payload,
        actor_user_id=user.id,
    )
