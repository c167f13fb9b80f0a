"""
IQA sampling app.

Internal Quality Assurance samples over a cohort's learners and criteria.
"""

from . import models  # noqa: F401
