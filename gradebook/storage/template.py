from __future__ import annotations

import decimal
import typing as t

import sqlalchemy as sqla

from gradebook.core import di
from gradebook.model import FormulaTemplate, FormulaTemplateID, GradeBoundary, RoundingRule, TemplateCategory, UserID

from . import Session
from .table import formula_templates


def get(
    template_id: FormulaTemplateID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> FormulaTemplate | None:
    stmt = sqla.select(formula_templates.__table__).where(formula_templates.template_id == template_id)
    row = session.execute(stmt).mappings().one_or_none()
    return FormulaTemplate(**row) if row else None


def find(
    *,
    category: TemplateCategory | None = None,
    created_by: UserID | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[FormulaTemplate, ...]:
    """Templates ordered by name."""
    stmt = sqla.select(formula_templates.__table__).order_by(formula_templates.name, formula_templates.create_time)
    if category is not None:
        stmt = stmt.where(formula_templates.category == category)
    if created_by is not None:
        stmt = stmt.where(formula_templates.created_by == created_by)
    rows = session.execute(stmt).mappings().all()
    return tuple(FormulaTemplate(**row) for row in rows)


def create(
    *,
    name: str,
    created_by: UserID,
    expression: str,
    output_scale: decimal.Decimal,
    grade_boundaries: t.Sequence[GradeBoundary],
    rounding_rule: RoundingRule,
    decimal_places: int,
    category: TemplateCategory = TemplateCategory.Custom,
    pass_threshold: decimal.Decimal | None = None,
    description: str | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> FormulaTemplate:
    template_id = FormulaTemplateID()
    stmt = sqla.insert(formula_templates).values(
        template_id=template_id,
        name=name,
        created_by=created_by,
        expression=expression,
        output_scale=output_scale,
        grade_boundaries=[b.model_dump(mode="json") for b in grade_boundaries],
        category=category,
        rounding_rule=rounding_rule,
        decimal_places=decimal_places,
        pass_threshold=pass_threshold,
        description=description,
    )
    session.execute(stmt)
    session.flush()
    result = get(template_id, session=session)
    assert result is not None
    return result


def delete(
    template_id: FormulaTemplateID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> bool:
    """Delete a template.

    Returns:
        True if a template was deleted, False if not found
    """
    stmt = sqla.delete(formula_templates).where(formula_templates.template_id == template_id)
    result = session.execute(stmt)
    return bool(result.rowcount)  # pyright: ignore[reportUnknownArgumentType, reportAttributeAccessIssue]
