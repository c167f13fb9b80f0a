from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from . import models, schemas

logger = logging.getLogger(__name__)


# Action tags written by the cohort apps.
ATTENDANCE_MARKED = "ATTENDANCE_MARKED"
ASSESSMENTS_UPDATED = "ASSESSMENTS_UPDATED"
IQA_SAMPLE_CREATED = "IQA_SAMPLE_CREATED"
IQA_SAMPLE_UPDATED = "IQA_SAMPLE_UPDATED"
IQA_SAMPLE_DELETED = "IQA_SAMPLE_DELETED"
COHORT_CREATED = "COHORT_CREATED"
COHORT_UPDATED = "COHORT_UPDATED"
COHORT_DELETED = "COHORT_DELETED"
LEARNER_ADDED = "LEARNER_ADDED"
LEARNER_UPDATED = "LEARNER_UPDATED"
LEARNER_WITHDRAWN = "LEARNER_WITHDRAWN"
LEARNER_DELETED = "LEARNER_DELETED"
SESSION_CREATED = "SESSION_CREATED"


def create_audit_log(db: Session, *, data: schemas.AuditLogCreate) -> models.AuditLog:
    entry = models.AuditLog(
        actor_user_id=data.actor_user_id,
        action=data.action,
        entity_type=data.entity_type,
        entity_id=data.entity_id,
        # JSON columns need plain types (enums, datetimes -> str)
        details=jsonable_encoder(data.details) if data.details is not None else None,
    )
    if data.occurred_at is not None:
        entry.occurred_at = data.occurred_at
    db.add(entry)
    db.flush()
    return entry


def record(
    db: Session,
    *,
    actor_user_id: Optional[str],
    action: str,
    entity_type: str,
    entity_id: str,
    details: Optional[Dict[str, Any]] = None,
) -> Optional[models.AuditLog]:
    """
    Best-effort audit write.

    Call this only after the business change has been committed. The entry
    is committed on its own; on failure the audit write is rolled back, a
    warning is logged and None is returned, leaving the business result
    untouched.
    """
    try:
        entry = create_audit_log(
            db,
            data=schemas.AuditLogCreate(
                actor_user_id=actor_user_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                details=details,
            ),
        )
        db.commit()
        return entry
    except Exception:
        db.rollback()
        logger.warning(
            "Failed to record audit log",
            exc_info=True,
            extra={
                "action": action,
                "entity_type": entity_type,
                "entity_id": entity_id,
            },
        )
        return None


def list_audit_logs(
    db: Session,
    *,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 200,
) -> List[models.AuditLog]:
    query = db.query(models.AuditLog)
    if entity_type:
        query = query.filter(models.AuditLog.entity_type == entity_type)
    if entity_id:
        query = query.filter(models.AuditLog.entity_id == entity_id)
    if action:
        query = query.filter(models.AuditLog.action == action)
    if start:
        query = query.filter(models.AuditLog.occurred_at >= start)
    if end:
        query = query.filter(models.AuditLog.occurred_at <= end)
    return query.order_by(models.AuditLog.occurred_at.desc()).limit(limit).all()
