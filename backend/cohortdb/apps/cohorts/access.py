# backend/cohortdb/apps/cohorts/access.py
"""
Cohort access policy.

Single source of truth for "may this caller act on this cohort":

- No caller                      -> 401
- SUPER_ADMIN / ADMIN            -> allowed for every cohort
- INSTRUCTOR with an assignment  -> allowed for that cohort only
- INSTRUCTOR without one         -> 403 "Not assigned to this cohort"
- anything else                  -> 403

The check has no side effects. Every cohort-scoped router calls
`require_cohort_access` before touching domain data.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from fastapi import status
from sqlalchemy.orm import Session

from cohortdb.apps.accounts import models as account_models
from cohortdb.apps.accounts.models import AccountRole, PLATFORM_ADMIN_ROLES
from cohortdb.errors import Forbidden, Unauthenticated

from . import models


class InstructorAssignmentLookup(Protocol):
    def is_assigned(self, user_id: str, cohort_id: str) -> bool:
        ...


class SqlInstructorAssignmentLookup:
    """Assignment lookup backed by the cohort_instructors table."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def is_assigned(self, user_id: str, cohort_id: str) -> bool:
        return (
            self._db.query(models.CohortInstructor.id)
            .filter(
                models.CohortInstructor.cohort_id == cohort_id,
                models.CohortInstructor.user_id == user_id,
            )
            .first()
            is not None
        )


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[str] = None
    status_code: int = status.HTTP_200_OK


ALLOWED = AccessDecision(allowed=True)


def _role(caller: account_models.User) -> Optional[AccountRole]:
    role = getattr(caller, "role", None)
    if role is None or isinstance(role, AccountRole):
        return role
    try:
        return AccountRole(role)
    except ValueError:
        return None


def is_platform_admin(caller: Optional[account_models.User]) -> bool:
    return caller is not None and _role(caller) in PLATFORM_ADMIN_ROLES


class CohortAccessPolicy:
    def __init__(self, assignments: InstructorAssignmentLookup) -> None:
        self._assignments = assignments

    def check(self, caller: Optional[account_models.User], cohort_id: str) -> AccessDecision:
        if caller is None:
            return AccessDecision(False, "Unauthorized", status.HTTP_401_UNAUTHORIZED)

        role = _role(caller)
        if role in PLATFORM_ADMIN_ROLES:
            return ALLOWED

        if role == AccountRole.INSTRUCTOR:
            if self._assignments.is_assigned(str(caller.id), cohort_id):
                return ALLOWED
            return AccessDecision(False, "Not assigned to this cohort", status.HTTP_403_FORBIDDEN)

        return AccessDecision(False, "Forbidden", status.HTTP_403_FORBIDDEN)

    def require(self, caller: Optional[account_models.User], cohort_id: str) -> account_models.User:
        decision = self.check(caller, cohort_id)
        if decision.allowed:
            return caller
        if decision.status_code == status.HTTP_401_UNAUTHORIZED:
            raise Unauthenticated(decision.reason)
        raise Forbidden(decision.reason)


# ---------------------------------------------------------------------------
# ROUTER HELPERS
# ---------------------------------------------------------------------------


def policy_for(db: Session) -> CohortAccessPolicy:
    return CohortAccessPolicy(SqlInstructorAssignmentLookup(db))


def authorize_cohort_access(
    db: Session,
    caller: Optional[account_models.User],
    cohort_id: str,
) -> AccessDecision:
    return policy_for(db).check(caller, cohort_id)


def require_cohort_access(
    db: Session,
    caller: Optional[account_models.User],
    cohort_id: str,
) -> account_models.User:
    return policy_for(db).require(caller, cohort_id)


def require_platform_admin(
    caller: Optional[account_models.User],
    message: str = "Only admins can perform this action",
) -> account_models.User:
    if caller is None:
        raise Unauthenticated()
    if not is_platform_admin(caller):
        raise Forbidden(message)
    return caller
