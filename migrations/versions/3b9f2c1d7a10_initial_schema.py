"""initial schema: users, courses, enrollments, exams, certificates

Revision ID: 3b9f2c1d7a10
Revises:
Create Date: 2025-12-02 10:41:08.512337

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3b9f2c1d7a10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps(updated: bool = True):
    columns = [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        )
    ]
    if updated:
        columns.append(
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                server_default=sa.func.now(),
                nullable=False,
            )
        )
    return columns


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False),
        *_timestamps(),
        sa.Column("last_sign_in_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"])

    op.create_table(
        "user_licenses",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("license_type", sa.String(20), nullable=False),
        sa.Column("license_number", sa.String(100), nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint("user_id", "license_type", name="uq_user_licenses_user_type"),
    )
    op.create_index("ix_user_licenses_user_id", "user_licenses", ["user_id"])

    op.create_table(
        "courses",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("sku", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("author", sa.String(255), nullable=True),
        sa.Column("main_subject", sa.String(255), nullable=True),
        sa.Column("table_of_contents_url", sa.Text(), nullable=True),
        sa.Column("course_content_url", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("length(trim(sku)) > 0", name="ck_courses_sku"),
    )
    op.create_index("ix_courses_sku", "courses", ["sku"], unique=True)

    op.create_table(
        "course_formats",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "course_id",
            sa.String(36),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("format", sa.String(20), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint("course_id", "format"),
    )

    op.create_table(
        "course_credits",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "course_id",
            sa.String(36),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("credit_type", sa.String(20), nullable=False),
        sa.Column("amount", sa.Numeric(6, 2), nullable=False),
        sa.Column("course_number", sa.String(100), nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint("course_id", "credit_type"),
    )

    op.create_table(
        "course_states",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "course_id",
            sa.String(36),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("state_code", sa.String(2), nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint("course_id", "state_code"),
    )

    op.create_table(
        "user_enrollments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "course_id",
            sa.String(36),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("enrollment_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("enrollment_notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(36), nullable=True),
        sa.Column("payment_id", sa.String(255), nullable=True),
        sa.Column("progress", sa.Integer(), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False),
        sa.Column("exam_score", sa.Numeric(5, 2), nullable=True),
        sa.Column("exam_passed", sa.Boolean(), nullable=True),
        sa.Column(
            "enrolled_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("last_accessed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint(
            "user_id", "course_id", name="uq_user_enrollments_user_course"
        ),
    )
    op.create_index("ix_user_enrollments_user_id", "user_enrollments", ["user_id"])
    op.create_index("ix_user_enrollments_course_id", "user_enrollments", ["course_id"])

    op.create_table(
        "exams",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "course_id",
            sa.String(36),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("passing_score", sa.Numeric(5, 2), nullable=False),
        sa.Column("attempt_limit", sa.Integer(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("ix_exams_course_id", "exams", ["course_id"])

    op.create_table(
        "exam_questions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "exam_id",
            sa.String(36),
            sa.ForeignKey("exams.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("question_text", sa.Text(), nullable=False),
        sa.Column("options", JSONType, nullable=False),
        sa.Column("correct_options", JSONType, nullable=False),
        sa.Column("explanation", sa.Text(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("ix_exam_questions_exam_id", "exam_questions", ["exam_id"])

    op.create_table(
        "user_exam_attempts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "exam_id",
            sa.String(36),
            sa.ForeignKey("exams.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("score", sa.Numeric(5, 2), nullable=True),
        sa.Column("passed", sa.Boolean(), nullable=True),
        sa.Column("completed", sa.Boolean(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint(
            "user_id", "exam_id", "attempt_number", name="uq_exam_attempts_number"
        ),
    )
    op.create_index("ix_user_exam_attempts_user_id", "user_exam_attempts", ["user_id"])
    op.create_index("ix_user_exam_attempts_exam_id", "user_exam_attempts", ["exam_id"])

    op.create_table(
        "user_exam_answers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "attempt_id",
            sa.String(36),
            sa.ForeignKey("user_exam_attempts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "question_id",
            sa.String(36),
            sa.ForeignKey("exam_questions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("selected_options", JSONType, nullable=False),
        sa.Column("is_correct", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("attempt_id", "question_id", name="uq_exam_answers_question"),
    )
    op.create_index(
        "ix_user_exam_answers_attempt_id", "user_exam_answers", ["attempt_id"]
    )

    op.create_table(
        "certificate_templates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("credit_type", sa.String(20), nullable=False, unique=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("body_text", sa.Text(), nullable=True),
        sa.Column("issuer_name", sa.String(255), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "certificates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("certificate_number", sa.String(50), nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "course_id", sa.String(36), sa.ForeignKey("courses.id"), nullable=False
        ),
        sa.Column(
            "enrollment_id",
            sa.String(36),
            sa.ForeignKey("user_enrollments.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "template_id",
            sa.String(36),
            sa.ForeignKey("certificate_templates.id"),
            nullable=True,
        ),
        sa.Column("credit_type", sa.String(20), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("recipient_name", sa.String(255), nullable=False),
        sa.Column("course_title", sa.String(255), nullable=False),
        sa.Column("completion_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("exam_score", sa.Numeric(5, 2), nullable=True),
        sa.Column("credits_earned", sa.Numeric(6, 2), nullable=False),
        sa.Column("custom_data", JSONType, nullable=True),
        sa.Column("is_revoked", sa.Boolean(), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_by", sa.String(36), nullable=True),
        sa.Column("revoked_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id", "course_id", "credit_type", name="uq_certificates_credit"
        ),
    )
    op.create_index(
        "ix_certificates_certificate_number",
        "certificates",
        ["certificate_number"],
        unique=True,
    )
    op.create_index("ix_certificates_user_id", "certificates", ["user_id"])
    op.create_index("ix_certificates_course_id", "certificates", ["course_id"])

    op.create_table(
        "certificate_edits",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "certificate_id",
            sa.String(36),
            sa.ForeignKey("certificates.id"),
            nullable=False,
        ),
        sa.Column("edited_by", sa.String(36), nullable=False),
        sa.Column("field_name", sa.String(50), nullable=False),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("edit_reason", sa.Text(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index(
        "ix_certificate_edits_certificate_id", "certificate_edits", ["certificate_id"]
    )


def downgrade() -> None:
    op.drop_table("certificate_edits")
    op.drop_table("certificates")
    op.drop_table("certificate_templates")
    op.drop_table("user_exam_answers")
    op.drop_table("user_exam_attempts")
    op.drop_table("exam_questions")
    op.drop_table("exams")
    op.drop_table("user_enrollments")
    op.drop_table("course_states")
    op.drop_table("course_credits")
    op.drop_table("course_formats")
    op.drop_table("courses")
    op.drop_table("profiles")
    op.drop_table("user_licenses")
    op.drop_table("users")
