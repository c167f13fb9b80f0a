"""
Assessment signoff app.

Per-criterion competency evidence for each learner, with the sign-off stamp.
"""

from . import models  # noqa: F401
