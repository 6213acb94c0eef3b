"""Initial schema for grade computation

Revision ID: 001_grading
Revises:
Create Date: 2026-10-19

"""

import typing as t

from alembic import op
from sqlalchemy import func as f
from sqlalchemy.schema import Column, ForeignKey, Index, UniqueConstraint
from sqlalchemy.types import Boolean, Date, DateTime, Integer, JSON, Numeric, String, Text

# revision identifiers, used by Alembic.
revision: str = "001_grading"
down_revision: str | None = None
branch_labels: str | t.Sequence[str] | None = None
depends_on: str | t.Sequence[str] | None = None


def _timestamps() -> list[Column]:
    return [
        Column("create_time", DateTime(timezone=True), server_default=f.now(), nullable=False),
        Column("update_time", DateTime(timezone=True), server_default=f.now(), onupdate=f.now(), nullable=False),
    ]


def upgrade() -> None:
    # Users & offerings
    op.create_table(
        "users",
        Column("user_id", String(22), primary_key=True),
        Column("email", String, unique=True, nullable=False),
        Column("name", String, nullable=False),
        Column("role", String(32), nullable=False, server_default="student"),
        *_timestamps(),
    )

    op.create_table(
        "academic_periods",
        Column("academic_period_id", String(22), primary_key=True),
        Column("name", String, nullable=False),
        Column("starts_on", Date, nullable=True),
        Column("ends_on", Date, nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "class_offerings",
        Column("class_offering_id", String(22), primary_key=True),
        Column("name", String, nullable=False),
        Column("academic_period_id", String(22), ForeignKey("academic_periods.academic_period_id"), nullable=True),
        Column("active_formula_id", String(22), nullable=True),
        Column("running_computation_id", String(22), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "offering_teachers",
        Column("class_offering_id", String(22), ForeignKey("class_offerings.class_offering_id"), primary_key=True),
        Column("user_id", String(22), ForeignKey("users.user_id"), primary_key=True),
    )

    op.create_table(
        "enrollments",
        Column("class_offering_id", String(22), ForeignKey("class_offerings.class_offering_id"), primary_key=True),
        Column("student_id", String(22), ForeignKey("users.user_id"), primary_key=True),
        Column("position", Integer, nullable=False, server_default="0"),
        Column("is_active", Boolean, nullable=False, server_default="1"),
    )

    # Components & formulas
    op.create_table(
        "grading_components",
        Column("component_id", String(22), primary_key=True),
        Column("class_offering_id", String(22), ForeignKey("class_offerings.class_offering_id"), nullable=False),
        Column("name", String, nullable=False),
        Column("weight", Numeric(12, 4), nullable=False),
        Column("max_score", Numeric(12, 4), nullable=False),
        Column("weighting", String(32), nullable=False, server_default="weight"),
        Column("label", String, nullable=True),
        Column("is_active", Boolean, nullable=False, server_default="1"),
        Column("deleted_at", DateTime(timezone=True), nullable=True),
        *_timestamps(),
        Index("ix_grading_components_offering", "class_offering_id"),
    )

    op.create_table(
        "grading_formulas",
        Column("formula_id", String(22), primary_key=True),
        Column("class_offering_id", String(22), ForeignKey("class_offerings.class_offering_id"), nullable=False),
        Column("created_by", String(22), ForeignKey("users.user_id"), nullable=False),
        Column("expression", Text, nullable=False),
        Column("output_scale", Numeric(12, 4), nullable=False),
        Column("grade_boundaries", JSON, nullable=False),
        Column("rounding_rule", String(32), nullable=False, server_default="half_up"),
        Column("decimal_places", Integer, nullable=False, server_default="2"),
        Column("pass_threshold", Numeric(12, 4), nullable=True),
        Column("description", Text, nullable=True),
        Column("version", Integer, nullable=False, server_default="1"),
        Column("is_active", Boolean, nullable=False, server_default="0"),
        *_timestamps(),
        Index("ix_grading_formulas_offering", "class_offering_id"),
    )

    # Assessment input
    op.create_table(
        "assessment_grades",
        Column("student_id", String(22), ForeignKey("users.user_id"), primary_key=True),
        Column("component_id", String(22), ForeignKey("grading_components.component_id"), primary_key=True),
        Column("score", Numeric(12, 4), nullable=True),
    )

    # Computations & final grades
    op.create_table(
        "grade_computations",
        Column("computation_id", String(22), primary_key=True),
        Column("class_offering_id", String(22), ForeignKey("class_offerings.class_offering_id"), nullable=False),
        Column("formula_id", String(22), ForeignKey("grading_formulas.formula_id"), nullable=False),
        Column("triggered_by", String(22), ForeignKey("users.user_id"), nullable=False),
        Column("started_at", DateTime(timezone=True), nullable=False),
        Column("status", String(32), nullable=False, server_default="running"),
        Column("completed_at", DateTime(timezone=True), nullable=True),
        Column("student_count", Integer, nullable=False, server_default="0"),
        Column("succeeded_count", Integer, nullable=False, server_default="0"),
        Column("failed_count", Integer, nullable=False, server_default="0"),
        Column("results", JSON, nullable=False),
        Column("error_message", Text, nullable=True),
        Index("ix_grade_computations_offering", "class_offering_id"),
    )

    op.create_table(
        "final_grades",
        Column("final_grade_id", String(22), primary_key=True),
        Column("student_id", String(22), ForeignKey("users.user_id"), nullable=False),
        Column("class_offering_id", String(22), ForeignKey("class_offerings.class_offering_id"), nullable=False),
        Column("computation_id", String(22), ForeignKey("grade_computations.computation_id"), nullable=False),
        Column("formula_id", String(22), ForeignKey("grading_formulas.formula_id"), nullable=False),
        Column("raw_score", Numeric(12, 4), nullable=False),
        Column("letter", String, nullable=False),
        Column("is_passing", Boolean, nullable=True),
        Column("component_breakdown", JSON, nullable=False),
        Column("status", String(32), nullable=False, server_default="draft"),
        Column("override", JSON(none_as_null=True), nullable=True),
        Column("published_at", DateTime(timezone=True), nullable=True),
        Column("published_by", String(22), ForeignKey("users.user_id"), nullable=True),
        Column("locked_at", DateTime(timezone=True), nullable=True),
        Column("locked_by", String(22), ForeignKey("users.user_id"), nullable=True),
        Column("revision", Integer, nullable=False, server_default="1"),
        *_timestamps(),
        UniqueConstraint("student_id", "class_offering_id"),
    )

    # Audit
    op.create_table(
        "audit_events",
        Column("event_id", String(22), primary_key=True),
        Column("event", String, nullable=False),
        Column("actor_id", String(22), ForeignKey("users.user_id"), nullable=False),
        Column("target", String, nullable=False),
        Column("details", JSON, nullable=False),
        Column("create_time", DateTime(timezone=True), server_default=f.now(), nullable=False),
        Index("ix_audit_events_target", "target"),
    )


def downgrade() -> None:
    for table in (
        "audit_events",
        "final_grades",
        "grade_computations",
        "assessment_grades",
        "grading_formulas",
        "grading_components",
        "enrollments",
        "offering_teachers",
        "class_offerings",
        "academic_periods",
        "users",
    ):
        op.drop_table(table)
