from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .models import SignoffStatus


# ---------------------------------------------------------------------------
# INPUT
# ---------------------------------------------------------------------------


class SignoffUpsert(BaseModel):
    """
    Create-or-update keyed by (learner_id, lesson_id, criterion_code).

    evidence_notes / evidence_files are only changed when present in the
    payload; send null explicitly to clear them.
    """

    learner_id: str = Field(..., min_length=1)
    lesson_id: str = Field(..., min_length=1)
    criterion_code: str = Field(..., min_length=1, description="Awarding-body criterion code, e.g. '1.2'.")
    criterion_text: str = Field(..., min_length=1)
    status: SignoffStatus
    evidence_notes: Optional[str] = None
    evidence_files: Optional[List[str]] = Field(
        None,
        description="References (storage keys or URLs) to uploaded evidence.",
    )


class SignoffBulkUpsert(BaseModel):
    signoffs: List[SignoffUpsert] = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# OUTPUT
# ---------------------------------------------------------------------------


class SignoffLearnerSummary(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: str
    external_learner_id: Optional[str] = None

    class Config:
        from_attributes = True


class SignoffLessonSummary(BaseModel):
    id: str
    title: str

    class Config:
        from_attributes = True


class SignoffUserSummary(BaseModel):
    id: str
    full_name: str

    class Config:
        from_attributes = True


class SignoffRead(BaseModel):
    id: str
    learner_id: str
    lesson_id: str
    criterion_code: str
    criterion_text: str
    status: SignoffStatus
    evidence_notes: Optional[str] = None
    evidence_files: List[str] = Field(default_factory=list)
    signed_off_at: Optional[datetime] = None
    signed_off_by_user_id: Optional[str] = None
    learner: Optional[SignoffLearnerSummary] = None
    lesson: Optional[SignoffLessonSummary] = None
    signed_off_by: Optional[SignoffUserSummary] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SignoffStats(BaseModel):
    total: int = 0
    by_status: Dict[SignoffStatus, int] = Field(default_factory=dict)


class LearnerCriteria(BaseModel):
    """One row of the learner x criterion matrix."""

    learner: SignoffLearnerSummary
    criteria: List[SignoffRead]


class AssessmentListResponse(BaseModel):
    records: List[SignoffRead]
    by_learner: List[LearnerCriteria]
    stats: SignoffStats


class SignoffBulkResponse(BaseModel):
    success: bool = True
    records: List[SignoffRead]
