# backend/cohortdb/__init__.py
"""
Import ORM models from each app so that:

- Alembic and Base.metadata.create_all() see all tables.
- The package exposes a clear surface.

The actual model classes are kept in cohortdb/apps/*/models.py.
"""

from .apps.accounts import models as accounts_models          # users + roles
from .apps.curriculum import models as curriculum_models      # courses + lessons (read-only directory)
from .apps.cohorts import models as cohorts_models            # cohorts / learners / sessions
from .apps.attendance import models as attendance_models      # per-session attendance
from .apps.assessments import models as assessments_models    # criterion signoffs
from .apps.iqa import models as iqa_models                    # IQA samples
from .apps.audit import models as audit_models                # append-only audit trail

__all__ = [
    "accounts_models",
    "curriculum_models",
    "cohorts_models",
    "attendance_models",
    "assessments_models",
    "iqa_models",
    "audit_models",
]
