from __future__ import annotations

import pytest

from cohortdb.apps.accounts import models as account_models
from cohortdb.apps.accounts.models import AccountRole
from cohortdb.apps.cohorts import access
from cohortdb.apps.cohorts import router as cohorts_router
from cohortdb.errors import Forbidden, Unauthenticated
from cohortdb.tests import factories


class _StaticAssignments:
    def __init__(self, pairs):
        self.pairs = set(pairs)
        self.calls = []

    def is_assigned(self, user_id: str, cohort_id: str) -> bool:
        self.calls.append((user_id, cohort_id))
        return (user_id, cohort_id) in self.pairs


def _caller(role: AccountRole, user_id: str = "u-1") -> account_models.User:
    return account_models.User(id=user_id, email=f"{user_id}@acme-training.co.uk", full_name=user_id, role=role)


def test_anonymous_caller_is_unauthenticated():
    policy = access.CohortAccessPolicy(_StaticAssignments([]))
    decision = policy.check(None, "c-1")
    assert decision.allowed is False
    assert decision.status_code == 401


@pytest.mark.parametrize("role", [AccountRole.ADMIN, AccountRole.SUPER_ADMIN])
def test_platform_admins_reach_every_cohort_without_assignment_lookup(role):
    lookup = _StaticAssignments([])
    policy = access.CohortAccessPolicy(lookup)
    assert policy.check(_caller(role), "any-cohort").allowed is True
    assert lookup.calls == []


def test_instructor_allowed_only_where_assigned():
    policy = access.CohortAccessPolicy(_StaticAssignments([("u-1", "c-1")]))
    instructor = _caller(AccountRole.INSTRUCTOR)

    assert policy.check(instructor, "c-1").allowed is True

    denied = policy.check(instructor, "c-2")
    assert denied.allowed is False
    assert denied.status_code == 403
    assert denied.reason == "Not assigned to this cohort"


def test_student_role_is_forbidden_even_when_assigned():
    policy = access.CohortAccessPolicy(_StaticAssignments([("u-1", "c-1")]))
    decision = policy.check(_caller(AccountRole.STUDENT), "c-1")
    assert decision.allowed is False
    assert decision.status_code == 403
    assert decision.reason == "Forbidden"


def test_require_raises_mapped_errors():
    policy = access.CohortAccessPolicy(_StaticAssignments([]))

    with pytest.raises(Unauthenticated) as exc:
        policy.require(None, "c-1")
    assert exc.value.status_code == 401

    with pytest.raises(Forbidden) as exc:
        policy.require(_caller(AccountRole.INSTRUCTOR), "c-1")
    assert exc.value.status_code == 403
    assert exc.value.message == "Not assigned to this cohort"


def test_sql_lookup_reads_instructor_assignments(db_session):
    assigned = factories.create_user(db_session, email="lead@acme-training.co.uk", role=AccountRole.INSTRUCTOR)
    other = factories.create_user(db_session, email="other@acme-training.co.uk", role=AccountRole.INSTRUCTOR)
    course = factories.create_course(db_session)
    cohort = factories.create_cohort(db_session, course_id=course.id, instructor_ids=[assigned.id])

    assert access.authorize_cohort_access(db_session, assigned, cohort.id).allowed is True
    assert access.authorize_cohort_access(db_session, other, cohort.id).status_code == 403

    with pytest.raises(Forbidden):
        access.require_cohort_access(db_session, other, cohort.id)


def test_require_platform_admin():
    assert access.require_platform_admin(_caller(AccountRole.ADMIN)).role == AccountRole.ADMIN
    with pytest.raises(Unauthenticated):
        access.require_platform_admin(None)
    with pytest.raises(Forbidden) as exc:
        access.require_platform_admin(_caller(AccountRole.INSTRUCTOR), "Only admins can delete IQA samples")
    assert exc.value.message == "Only admins can delete IQA samples"


def test_access_route_reports_decision_without_raising(db_session):
    instructor = factories.create_user(db_session, email="tutor@acme-training.co.uk", role=AccountRole.INSTRUCTOR)
    course = factories.create_course(db_session)
    cohort = factories.create_cohort(db_session, course_id=course.id)

    denied = cohorts_router.get_cohort_access(cohort_id=cohort.id, db=db_session, current_user=instructor)
    assert denied.allowed is False
    assert denied.status_code == 403

    anonymous = cohorts_router.get_cohort_access(cohort_id=cohort.id, db=db_session, current_user=None)
    assert anonymous.status_code == 401
