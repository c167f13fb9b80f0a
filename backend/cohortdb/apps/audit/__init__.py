"""
Audit app.

Append-only record of state-changing cohort operations.
"""

from . import models  # noqa: F401
