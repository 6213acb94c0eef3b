"""Add formula_templates table

Revision ID: 002_formula_templates
Revises: 001_grading
Create Date: 2026-10-19

"""

import typing as t

from alembic import op
from sqlalchemy import func as f
from sqlalchemy.schema import Column, ForeignKey, Index
from sqlalchemy.types import DateTime, Integer, JSON, Numeric, String, Text

# revision identifiers, used by Alembic.
revision: str = "002_formula_templates"
down_revision: str | None = "001_grading"
branch_labels: str | t.Sequence[str] | None = None
depends_on: str | t.Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "formula_templates",
        Column("template_id", String(22), primary_key=True),
        Column("created_by", String(22), ForeignKey("users.user_id"), nullable=False),
        Column("name", String, nullable=False),
        Column("expression", Text, nullable=False),
        Column("output_scale", Numeric(12, 4), nullable=False),
        Column("grade_boundaries", JSON, nullable=False),
        Column("category", String(32), nullable=False, server_default="custom"),
        Column("rounding_rule", String(32), nullable=False, server_default="half_up"),
        Column("decimal_places", Integer, nullable=False, server_default="2"),
        Column("pass_threshold", Numeric(12, 4), nullable=True),
        Column("description", Text, nullable=True),
        Column("create_time", DateTime(timezone=True), server_default=f.now(), nullable=False),
        Column("update_time", DateTime(timezone=True), server_default=f.now(), onupdate=f.now(), nullable=False),
        Index("ix_formula_templates_category", "category"),
    )


def downgrade() -> None:
    op.drop_table("formula_templates")
