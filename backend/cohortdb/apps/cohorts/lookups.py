"""
Membership lookups shared by the cohort-scoped apps.

Each getter raises NotFound when the row is missing *or* belongs to a
different cohort, so callers never act across cohort boundaries.
"""

from __future__ import annotations

from typing import Iterable, List, Set

from sqlalchemy.orm import Session

from cohortdb.errors import NotFound

from . import models


def get_cohort(db: Session, cohort_id: str) -> models.Cohort:
    cohort = db.query(models.Cohort).filter(models.Cohort.id == cohort_id).first()
    if cohort is None:
        raise NotFound("Cohort not found")
    return cohort


def get_learner_in_cohort(db: Session, cohort_id: str, learner_id: str) -> models.Learner:
    learner = db.query(models.Learner).filter(models.Learner.id == learner_id).first()
    if learner is None:
        raise NotFound("Learner not found")
    if learner.cohort_id != cohort_id:
        raise NotFound("Learner not in this cohort")
    return learner


def get_session_in_cohort(db: Session, cohort_id: str, session_id: str) -> models.SessionDelivery:
    session = db.query(models.SessionDelivery).filter(models.SessionDelivery.id == session_id).first()
    if session is None or session.cohort_id != cohort_id:
        raise NotFound("Session not found in this cohort")
    return session


def missing_learner_ids(db: Session, cohort_id: str, learner_ids: Iterable[str]) -> Set[str]:
    """Return the ids in `learner_ids` that are not learners of `cohort_id`."""
    wanted = set(learner_ids)
    if not wanted:
        return set()
    found = {
        row.id
        for row in db.query(models.Learner.id)
        .filter(models.Learner.cohort_id == cohort_id, models.Learner.id.in_(wanted))
        .all()
    }
    return wanted - found


def cohort_learner_ids(db: Session, cohort_id: str) -> List[str]:
    return [row.id for row in db.query(models.Learner.id).filter(models.Learner.cohort_id == cohort_id).all()]
