# backend/cohortdb/apps/curriculum/__init__.py

"""
Curriculum directory.

Read-only mirror of courses and lessons, kept so that cohorts, sessions
and signoffs can be validated against real lesson identifiers.
"""

from . import models  # noqa: F401
