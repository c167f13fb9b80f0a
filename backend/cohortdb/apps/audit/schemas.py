from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel


class AuditLogCreate(BaseModel):
    actor_user_id: Optional[str] = None
    action: str
    entity_type: str
    entity_id: str
    details: Optional[Dict[str, Any]] = None
    occurred_at: Optional[datetime] = None


class AuditLogRead(BaseModel):
    id: str
    actor_user_id: Optional[str] = None
    action: str
    entity_type: str
    entity_id: str
    details: Optional[Dict[str, Any]] = None
    occurred_at: datetime

    class Config:
        from_attributes = True
