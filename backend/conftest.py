from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ.setdefault("APP_ENV", "test")

from cohortdb.database import Base  # noqa: E402
from cohortdb.apps.accounts import models as account_models  # noqa: E402
from cohortdb.apps.curriculum import models as curriculum_models  # noqa: E402
from cohortdb.apps.cohorts import models as cohort_models  # noqa: E402
from cohortdb.apps.attendance import models as attendance_models  # noqa: E402
from cohortdb.apps.assessments import models as assessment_models  # noqa: E402
from cohortdb.apps.iqa import models as iqa_models  # noqa: E402
from cohortdb.apps.audit import models as audit_models  # noqa: E402


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(
        bind=engine,
        tables=[
            account_models.User.__table__,
            curriculum_models.CurriculumCourse.__table__,
            curriculum_models.CurriculumLesson.__table__,
            cohort_models.Cohort.__table__,
            cohort_models.CohortInstructor.__table__,
            cohort_models.Learner.__table__,
            cohort_models.SessionDelivery.__table__,
            attendance_models.Attendance.__table__,
            assessment_models.AssessmentSignoff.__table__,
            iqa_models.IqaSample.__table__,
            audit_models.AuditLog.__table__,
        ],
    )
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
