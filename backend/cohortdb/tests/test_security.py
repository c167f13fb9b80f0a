from __future__ import annotations

import pytest
from jose import jwt

from cohortdb import security
from cohortdb.apps.accounts.models import AccountRole
from cohortdb.errors import Unauthenticated, ValidationFailed
from cohortdb.tests import factories


def _token(subject, key=None):
    return jwt.encode({"sub": subject}, key or security.SECRET_KEY, algorithm=security.JWT_ALGORITHM)


def test_valid_token_resolves_the_user(db_session):
    user = factories.create_user(db_session, email="lead@acme-training.co.uk", role=AccountRole.INSTRUCTOR)
    resolved = security.get_optional_current_user(token=_token(user.id), db=db_session)
    assert resolved.id == user.id


def test_missing_or_forged_token_is_anonymous(db_session):
    user = factories.create_user(db_session, email="lead@acme-training.co.uk", role=AccountRole.INSTRUCTOR)
    assert security.get_optional_current_user(token=None, db=db_session) is None
    assert security.get_optional_current_user(token=_token(user.id, key="not-the-key"), db=db_session) is None
    assert security.get_optional_current_user(token=_token("no-such-user"), db=db_session) is None


def test_inactive_user_is_rejected_with_a_coded_error(db_session):
    user = factories.create_user(
        db_session,
        email="former@acme-training.co.uk",
        role=AccountRole.INSTRUCTOR,
        is_active=False,
    )

    with pytest.raises(ValidationFailed) as exc:
        security.get_optional_current_user(token=_token(user.id), db=db_session)

    assert exc.value.status_code == 400
    assert exc.value.code == "VALIDATION_FAILED"
    assert exc.value.message == "Inactive user account"


def test_active_user_dependency_rejects_anonymous_callers():
    with pytest.raises(Unauthenticated):
        security.get_current_active_user(current_user=None)
