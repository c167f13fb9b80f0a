from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from cohortdb.apps.assessments.schemas import SignoffLearnerSummary, SignoffRead

from .models import IqaStatus


class IqaSampleCreate(BaseModel):
    sample_period: str = Field(..., description="Free-text period label, e.g. 'Q1 2025'.")
    learners_selected: List[str] = Field(default_factory=list)
    criteria_selected: List[str] = Field(default_factory=list)


class IqaSampleUpdate(BaseModel):
    status: Optional[IqaStatus] = None
    findings: Optional[str] = None
    action_points: Optional[str] = None


class IqaUserSummary(BaseModel):
    id: str
    full_name: str
    email: str

    class Config:
        from_attributes = True


class IqaSampleRead(BaseModel):
    id: str
    cohort_id: str
    sample_period: str
    learners_selected: List[str]
    criteria_selected: List[str]
    status: IqaStatus
    findings: Optional[str] = None
    action_points: Optional[str] = None
    sampled_by_user_id: Optional[str] = None
    sampled_by: Optional[IqaUserSummary] = None
    sampled_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class IqaSampleListItem(IqaSampleRead):
    learner_names: List[str] = Field(default_factory=list)


class IqaSampleDetail(BaseModel):
    sample: IqaSampleRead
    learners: List[SignoffLearnerSummary]
    signoffs: List[SignoffRead]
