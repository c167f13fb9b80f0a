# backend/cohortdb/apps/accounts/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Enum, String
from sqlalchemy.orm import relationship

from cohortdb.database import Base
from cohortdb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class AccountRole(str, enum.Enum):
    """Platform-wide roles.

    Cohort-level rights for instructors come from CohortInstructor rows,
    not from the role alone.
    """

    SUPER_ADMIN = "SUPER_ADMIN"   # Platform owner
    ADMIN = "ADMIN"               # Training provider admin
    INSTRUCTOR = "INSTRUCTOR"
    STUDENT = "STUDENT"


PLATFORM_ADMIN_ROLES = frozenset({AccountRole.SUPER_ADMIN, AccountRole.ADMIN})


# ---------------------------------------------------------------------------
# USERS
# ---------------------------------------------------------------------------


class User(Base):
    """
    Authenticated staff account.

    Credentials and session issuance live with the identity provider; this
    table only holds what authorisation decisions need.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    role = Column(
        Enum(AccountRole, name="account_role_enum"),
        nullable=False,
        default=AccountRole.STUDENT,
        index=True,
    )
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    cohort_assignments = relationship(
        "CohortInstructor",
        back_populates="user",
        lazy="noload",
    )

    @property
    def is_platform_admin(self) -> bool:
        return self.role in PLATFORM_ADMIN_ROLES

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role}>"
