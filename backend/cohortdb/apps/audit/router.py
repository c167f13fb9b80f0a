from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from cohortdb.apps.accounts import models as account_models
from cohortdb.apps.cohorts.access import require_platform_admin
from cohortdb.database import get_read_db
from cohortdb.security import get_optional_current_user

from . import schemas, services


router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=List[schemas.AuditLogRead])
def list_audit_logs(
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_read_db),
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
):
    """Read-only view of the audit trail for platform admins."""
    require_platform_admin(current_user, "Only admins can browse the audit log")
    return services.list_audit_logs(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        start=start,
        end=end,
        limit=limit,
    )
