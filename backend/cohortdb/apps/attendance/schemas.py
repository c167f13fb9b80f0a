from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from cohortdb.apps.cohorts.models import SessionStatus

from .models import AttendanceStatus


class AttendanceEntry(BaseModel):
    learner_id: str = Field(..., min_length=1)
    status: AttendanceStatus
    arrived_at: Optional[datetime] = None


class AttendanceMarkBulk(BaseModel):
    """Register for a whole session. Applied all-or-nothing."""

    session_id: str = Field(..., min_length=1)
    records: List[AttendanceEntry] = Field(..., min_length=1)


class AttendanceMarkSingle(AttendanceEntry):
    session_id: str = Field(..., min_length=1)


class AttendanceLearnerSummary(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: str

    class Config:
        from_attributes = True


class AttendanceSessionSummary(BaseModel):
    id: str
    lesson_id: str
    scheduled_date: datetime
    status: SessionStatus

    class Config:
        from_attributes = True


class AttendanceRead(BaseModel):
    id: str
    session_id: str
    learner_id: str
    status: AttendanceStatus
    arrived_at: Optional[datetime] = None
    marked_by_user_id: Optional[str] = None
    marked_at: datetime
    session: Optional[AttendanceSessionSummary] = None
    learner: Optional[AttendanceLearnerSummary] = None

    class Config:
        from_attributes = True


class AttendanceStats(BaseModel):
    total: int = 0
    by_status: Dict[AttendanceStatus, int] = Field(default_factory=dict)


class AttendanceListResponse(BaseModel):
    records: List[AttendanceRead]
    stats: AttendanceStats


class AttendanceBulkResponse(BaseModel):
    success: bool = True
    records: List[AttendanceRead]


class AttendanceRateRead(BaseModel):
    learner_id: str
    attended: int
    completed_sessions: int
    # None until the learner has a record against a COMPLETED session.
    rate: Optional[int] = None
