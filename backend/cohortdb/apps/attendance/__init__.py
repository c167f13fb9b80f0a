"""
Attendance app.

Per-session registers for cohort learners and the derived attendance rate.
"""

from . import models  # noqa: F401
