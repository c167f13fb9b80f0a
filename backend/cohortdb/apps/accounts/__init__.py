# backend/cohortdb/apps/accounts/__init__.py
"""
Accounts app

Responsible for:
- Staff user records and their platform role (SUPER_ADMIN, ADMIN,
  INSTRUCTOR, STUDENT)

Other apps should depend on these models for anything related to
"who is calling". Per-cohort rights live in cohorts.access.
"""

from . import models  # noqa: F401

__all__ = ["models"]
