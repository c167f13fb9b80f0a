"""
Cohorts app.

Cohorts, their instructor assignments, learners and session deliveries,
plus the cohort access policy every cohort-scoped router goes through.
"""

from . import models  # noqa: F401
