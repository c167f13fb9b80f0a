"""
Initial cohort compliance schema: users, curriculum mirror, cohorts,
learners, sessions, attendance, assessment signoffs, IQA samples and the
audit log.

Revision ID: a1c0e7d2b001
Revises:
Create Date: 2026-10-16
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1c0e7d2b001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ACCOUNT_ROLES = ("SUPER_ADMIN", "ADMIN", "INSTRUCTOR", "STUDENT")
COHORT_STATUSES = ("DRAFT", "SCHEDULED", "IN_PROGRESS", "COMPLETED", "CANCELLED")
INSTRUCTOR_ROLES = ("LEAD", "ASSISTANT")
LEARNER_STATUSES = ("ENROLLED", "ACTIVE", "DEFERRED", "WITHDRAWN", "COMPLETED", "FAILED")
SESSION_STATUSES = ("SCHEDULED", "IN_PROGRESS", "COMPLETED", "CANCELLED")
ATTENDANCE_STATUSES = ("PRESENT", "LATE", "ABSENT", "EXCUSED", "PARTIAL")
SIGNOFF_STATUSES = (
    "NOT_STARTED",
    "IN_PROGRESS",
    "SUBMITTED",
    "SIGNED_OFF",
    "REQUIRES_REVISION",
    "VERIFIED",
)
IQA_STATUSES = ("PLANNED", "IN_PROGRESS", "COMPLETED", "ACTION_REQUIRED")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("role", sa.Enum(*ACCOUNT_ROLES, name="account_role_enum"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_is_active", "users", ["is_active"])

    op.create_table(
        "curriculum_courses",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("slug", sa.String(length=128), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_curriculum_courses_slug", "curriculum_courses", ["slug"], unique=True)

    op.create_table(
        "curriculum_lessons",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "course_id",
            sa.String(length=36),
            sa.ForeignKey("curriculum_courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("duration_mins", sa.Integer(), nullable=True),
        sa.Column("criteria", sa.JSON(), nullable=False),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_curriculum_lessons_course_id", "curriculum_lessons", ["course_id"])

    op.create_table(
        "cohorts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "course_id",
            sa.String(length=36),
            sa.ForeignKey("curriculum_courses.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_learners", sa.Integer(), nullable=False, server_default="12"),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*COHORT_STATUSES, name="cohort_status_enum"),
            nullable=False,
            server_default="DRAFT",
        ),
        *_timestamps(),
    )
    op.create_index("ix_cohorts_course_id", "cohorts", ["course_id"])
    op.create_index("ix_cohorts_code", "cohorts", ["code"], unique=True)
    op.create_index("ix_cohorts_status", "cohorts", ["status"])

    op.create_table(
        "cohort_instructors",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "cohort_id",
            sa.String(length=36),
            sa.ForeignKey("cohorts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role", sa.Enum(*INSTRUCTOR_ROLES, name="cohort_instructor_role_enum"), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("cohort_id", "user_id", name="uq_cohort_instructors_cohort_user"),
    )
    op.create_index("ix_cohort_instructors_cohort_id", "cohort_instructors", ["cohort_id"])
    op.create_index("ix_cohort_instructors_user_id", "cohort_instructors", ["user_id"])

    op.create_table(
        "learners",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "cohort_id",
            sa.String(length=36),
            sa.ForeignKey("cohorts.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("external_learner_id", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*LEARNER_STATUSES, name="learner_status_enum"),
            nullable=False,
            server_default="ENROLLED",
        ),
        *_timestamps(),
        sa.UniqueConstraint("cohort_id", "email", name="uq_learners_cohort_email"),
    )
    op.create_index("ix_learners_cohort_id", "learners", ["cohort_id"])
    op.create_index("ix_learners_cohort_name", "learners", ["cohort_id", "last_name", "first_name"])
    op.create_index("ix_learners_external_learner_id", "learners", ["external_learner_id"])
    op.create_index("ix_learners_status", "learners", ["status"])

    op.create_table(
        "session_deliveries",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "cohort_id",
            sa.String(length=36),
            sa.ForeignKey("cohorts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "lesson_id",
            sa.String(length=36),
            sa.ForeignKey("curriculum_lessons.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scheduled_day", sa.Date(), nullable=False),
        sa.Column("scheduled_time", sa.String(length=32), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*SESSION_STATUSES, name="session_status_enum"),
            nullable=False,
            server_default="SCHEDULED",
        ),
        sa.Column("actual_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("cohort_id", "lesson_id", "scheduled_day", name="uq_session_deliveries_cohort_lesson_day"),
    )
    op.create_index("ix_session_deliveries_cohort_id", "session_deliveries", ["cohort_id"])
    op.create_index("ix_session_deliveries_lesson_id", "session_deliveries", ["lesson_id"])
    op.create_index("ix_session_deliveries_scheduled_date", "session_deliveries", ["scheduled_date"])
    op.create_index("ix_session_deliveries_status", "session_deliveries", ["status"])

    op.create_table(
        "attendance_records",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "session_id",
            sa.String(length=36),
            sa.ForeignKey("session_deliveries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "learner_id",
            sa.String(length=36),
            sa.ForeignKey("learners.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", sa.Enum(*ATTENDANCE_STATUSES, name="attendance_status_enum"), nullable=False),
        sa.Column("arrived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "marked_by_user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("marked_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("session_id", "learner_id", name="uq_attendance_session_learner"),
    )
    op.create_index("ix_attendance_records_session_id", "attendance_records", ["session_id"])
    op.create_index("ix_attendance_records_learner_id", "attendance_records", ["learner_id"])
    op.create_index("ix_attendance_records_status", "attendance_records", ["status"])

    op.create_table(
        "assessment_signoffs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "learner_id",
            sa.String(length=36),
            sa.ForeignKey("learners.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "lesson_id",
            sa.String(length=36),
            sa.ForeignKey("curriculum_lessons.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("criterion_code", sa.String(length=64), nullable=False),
        sa.Column("criterion_text", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*SIGNOFF_STATUSES, name="signoff_status_enum"),
            nullable=False,
            server_default="NOT_STARTED",
        ),
        sa.Column("evidence_notes", sa.Text(), nullable=True),
        sa.Column("evidence_files", sa.JSON(), nullable=False),
        sa.Column("signed_off_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "signed_off_by_user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        *_timestamps(),
        sa.UniqueConstraint(
            "learner_id",
            "lesson_id",
            "criterion_code",
            name="uq_assessment_signoffs_learner_lesson_criterion",
        ),
    )
    op.create_index("ix_assessment_signoffs_learner_id", "assessment_signoffs", ["learner_id"])
    op.create_index("ix_assessment_signoffs_lesson_id", "assessment_signoffs", ["lesson_id"])
    op.create_index("ix_assessment_signoffs_criterion_code", "assessment_signoffs", ["criterion_code"])
    op.create_index("ix_assessment_signoffs_status", "assessment_signoffs", ["status"])
    op.create_index(
        "ix_assessment_signoffs_criterion_status",
        "assessment_signoffs",
        ["criterion_code", "status"],
    )

    op.create_table(
        "iqa_samples",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "cohort_id",
            sa.String(length=36),
            sa.ForeignKey("cohorts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sample_period", sa.String(length=100), nullable=False),
        sa.Column("learners_selected", sa.JSON(), nullable=False),
        sa.Column("criteria_selected", sa.JSON(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*IQA_STATUSES, name="iqa_status_enum"),
            nullable=False,
            server_default="PLANNED",
        ),
        sa.Column("findings", sa.Text(), nullable=True),
        sa.Column("action_points", sa.Text(), nullable=True),
        sa.Column(
            "sampled_by_user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("sampled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_iqa_samples_cohort_id", "iqa_samples", ["cohort_id"])
    op.create_index("ix_iqa_samples_status", "iqa_samples", ["status"])
    op.create_index("ix_iqa_samples_cohort_sampled_at", "iqa_samples", ["cohort_id", "sampled_at"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "actor_user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_actor_user_id", "audit_logs", ["actor_user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])
    op.create_index("ix_audit_logs_occurred_at", "audit_logs", ["occurred_at"])
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("ix_audit_logs_action_time", "audit_logs", ["action", "occurred_at"])
    op.create_index("ix_audit_logs_time_desc", "audit_logs", [sa.text("occurred_at DESC")])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("iqa_samples")
    op.drop_table("assessment_signoffs")
    op.drop_table("attendance_records")
    op.drop_table("session_deliveries")
    op.drop_table("learners")
    op.drop_table("cohort_instructors")
    op.drop_table("cohorts")
    op.drop_table("curriculum_lessons")
    op.drop_table("curriculum_courses")
    op.drop_table("users")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_name in (
            "iqa_status_enum",
            "signoff_status_enum",
            "attendance_status_enum",
            "session_status_enum",
            "learner_status_enum",
            "cohort_instructor_role_enum",
            "cohort_status_enum",
            "account_role_enum",
        ):
            sa.Enum(name=enum_name).drop(bind, checkfirst=True)
