# backend/cohortdb/security.py

"""
Security helpers for the cohort backend.

Responsibilities:
- Decoding bearer JWTs issued by the identity provider
- FastAPI dependencies for the current user (optional or required)

Token issuance and password handling belong to the identity provider and
are not implemented here. Per-cohort authorisation lives in
`cohortdb.apps.cohorts.access`.
"""

from __future__ import annotations

import os
from typing import Optional, Union

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .database import get_db
from .errors import Unauthenticated, ValidationFailed
from cohortdb.apps.accounts import models as account_models

# ---------------------------------------------------------------------------
# CONFIG
# ---------------------------------------------------------------------------

# In production, ALWAYS override these via environment variables.
SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_IN_PRODUCTION")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
TOKEN_URL = os.getenv("AUTH_TOKEN_URL", "/auth/login")

# auto_error=False: anonymous callers reach the cohort authoriser, which
# owns the 401 decision for cohort-scoped routes.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=TOKEN_URL, auto_error=False)


# ---------------------------------------------------------------------------
# USER LOOKUP HELPERS
# ---------------------------------------------------------------------------


def get_user_by_id(
    db: Session,
    user_id: Union[str, int, None],
) -> Optional[account_models.User]:
    if user_id is None:
        return None

    normalised_id = str(user_id).strip()
    if not normalised_id:
        return None

    return (
        db.query(account_models.User)
        .filter(account_models.User.id == normalised_id)
        .first()
    )


def decode_subject(token: str) -> Optional[str]:
    """Return the `sub` claim of a valid token, or None."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None
    subject = payload.get("sub")
    return str(subject) if subject is not None else None


# ---------------------------------------------------------------------------
# FASTAPI DEPENDENCIES
# ---------------------------------------------------------------------------


def get_optional_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Optional[account_models.User]:
    """
    Resolve the caller, or None when no usable credentials were sent.

    A token that is present but invalid is treated the same as no token:
    the caller is anonymous.
    """
    if not token:
        return None

    user = get_user_by_id(db, decode_subject(token))
    if user is None:
        return None

    if not getattr(user, "is_active", False):
        raise ValidationFailed("Inactive user account")
    return user


def get_current_active_user(
    current_user: Optional[account_models.User] = Depends(get_optional_current_user),
) -> account_models.User:
    """Same as above, but anonymous callers are rejected with 401."""
    if current_user is None:
        raise Unauthenticated("Could not validate credentials")
    return current_user
