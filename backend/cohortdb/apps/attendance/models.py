from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from cohortdb.database import Base
from cohortdb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttendanceStatus(str, enum.Enum):
    PRESENT = "PRESENT"
    LATE = "LATE"
    ABSENT = "ABSENT"
    EXCUSED = "EXCUSED"
    PARTIAL = "PARTIAL"


# Statuses that count as "attended" for the attendance rate.
ATTENDED_STATUSES = frozenset({AttendanceStatus.PRESENT, AttendanceStatus.LATE})


class Attendance(Base):
    """
    One learner's attendance at one session.

    Re-marking overwrites the row; previous marks are not kept.
    """

    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint("session_id", "learner_id", name="uq_attendance_session_learner"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    session_id = Column(
        String(36),
        ForeignKey("session_deliveries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    learner_id = Column(String(36), ForeignKey("learners.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Enum(AttendanceStatus, name="attendance_status_enum"), nullable=False, index=True)
    arrived_at = Column(DateTime(timezone=True), nullable=True)
    marked_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    marked_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    session = relationship("SessionDelivery", lazy="joined")
    learner = relationship("Learner", lazy="joined")

    def __repr__(self) -> str:
        return f"<Attendance session={self.session_id} learner={self.learner_id} {self.status}>"
