from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from cohortdb.apps.attendance.models import AttendanceStatus

from .models import CohortStatus, InstructorRole, LearnerStatus, SessionStatus


# ---------------------------------------------------------------------------
# COHORTS
# ---------------------------------------------------------------------------


class CohortBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    start_date: datetime
    end_date: Optional[datetime] = None
    max_learners: int = Field(12, ge=1, le=50)
    location: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class CohortCreate(CohortBase):
    course_id: str = Field(..., min_length=1)
    code: str = Field(
        ...,
        min_length=1,
        max_length=64,
        pattern=r"^[A-Z0-9-]+$",
        description="Uppercase letters, digits and dashes, e.g. 'FA-2025-03'.",
    )
    # First id becomes the LEAD instructor, the rest ASSISTANT.
    instructor_ids: List[str] = Field(..., min_length=1)


class CohortUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    max_learners: Optional[int] = Field(None, ge=1, le=50)
    location: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None
    status: Optional[CohortStatus] = None


class InstructorUserSummary(BaseModel):
    id: str
    full_name: str
    email: str

    class Config:
        from_attributes = True


class CohortInstructorRead(BaseModel):
    user_id: str
    role: InstructorRole
    user: Optional[InstructorUserSummary] = None

    class Config:
        from_attributes = True


class CohortRead(CohortBase):
    id: str
    course_id: str
    code: str
    status: CohortStatus
    instructors: List[CohortInstructorRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CohortListItem(CohortRead):
    learner_count: int = 0
    session_count: int = 0


class AccessDecisionRead(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    status_code: int


# ---------------------------------------------------------------------------
# LEARNERS
# ---------------------------------------------------------------------------


class LearnerCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=64)
    external_learner_id: Optional[str] = Field(None, max_length=64)
    notes: Optional[str] = None


class LearnerUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=64)
    external_learner_id: Optional[str] = Field(None, max_length=64)
    notes: Optional[str] = None
    status: Optional[LearnerStatus] = None


class LearnerRead(BaseModel):
    id: str
    cohort_id: str
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    external_learner_id: Optional[str] = None
    notes: Optional[str] = None
    status: LearnerStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class LearnerListItem(LearnerRead):
    # None = no completed session / no signoff yet, which is not 0 %.
    attendance_rate: Optional[int] = None
    assessment_progress: Optional[int] = None
    attendance_count: int = 0
    assessment_count: int = 0
    signed_off_count: int = 0


# ---------------------------------------------------------------------------
# SESSIONS
# ---------------------------------------------------------------------------


class SessionCreate(BaseModel):
    lesson_id: str = Field(..., min_length=1)
    scheduled_date: datetime
    scheduled_time: Optional[str] = Field(None, max_length=32, description="Free text, e.g. '09:00-12:30'.")
    notes: Optional[str] = None


class SessionUpdate(BaseModel):
    status: Optional[SessionStatus] = None
    scheduled_date: Optional[datetime] = None
    scheduled_time: Optional[str] = Field(None, max_length=32)
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    notes: Optional[str] = None


class SessionLessonSummary(BaseModel):
    id: str
    title: str
    duration_mins: Optional[int] = None

    class Config:
        from_attributes = True


class SessionRead(BaseModel):
    id: str
    cohort_id: str
    lesson_id: str
    scheduled_date: datetime
    scheduled_time: Optional[str] = None
    status: SessionStatus
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    notes: Optional[str] = None
    lesson: Optional[SessionLessonSummary] = None

    class Config:
        from_attributes = True


class SessionListItem(SessionRead):
    attendance_count: int = 0


class RegisterAttendance(BaseModel):
    id: str
    status: AttendanceStatus
    arrived_at: Optional[datetime] = None
    marked_by_user_id: Optional[str] = None
    marked_at: datetime

    class Config:
        from_attributes = True


class RegisterEntry(BaseModel):
    learner: LearnerRead
    attendance: Optional[RegisterAttendance] = None


class SessionDetail(BaseModel):
    session: SessionRead
    register: List[RegisterEntry]
