from __future__ import annotations

import decimal
import typing as t

import sqlalchemy as sqla

from gradebook.core import di
from gradebook.lib import NotSet
from gradebook.model import ClassOfferingID, FormulaID, GradeBoundary, GradingFormula, RoundingRule, UserID

from . import Session
from .table import grading_formulas


def _boundaries(boundaries: t.Sequence[GradeBoundary]) -> list[dict[str, t.Any]]:
    return [b.model_dump(mode="json") for b in boundaries]


def get(
    formula_id: FormulaID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> GradingFormula | None:
    stmt = sqla.select(grading_formulas.__table__).where(grading_formulas.formula_id == formula_id)
    row = session.execute(stmt).mappings().one_or_none()
    return GradingFormula(**row) if row else None


def find(
    *,
    class_offering_id: ClassOfferingID | None = None,
    is_active: bool | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[GradingFormula, ...]:
    """Formulas, newest version first."""
    stmt = sqla.select(grading_formulas.__table__).order_by(
        grading_formulas.version.desc(), grading_formulas.create_time.desc()
    )
    if class_offering_id is not None:
        stmt = stmt.where(grading_formulas.class_offering_id == class_offering_id)
    if is_active is not None:
        stmt = stmt.where(grading_formulas.is_active.is_(is_active))
    rows = session.execute(stmt).mappings().all()
    return tuple(GradingFormula(**row) for row in rows)


def next_version(
    class_offering_id: ClassOfferingID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> int:
    stmt = sqla.select(sqla.func.coalesce(sqla.func.max(grading_formulas.version), 0) + 1).where(
        grading_formulas.class_offering_id == class_offering_id
    )
    return int(session.execute(stmt).scalar_one())


def create(
    *,
    class_offering_id: ClassOfferingID,
    created_by: UserID,
    expression: str,
    output_scale: decimal.Decimal,
    grade_boundaries: t.Sequence[GradeBoundary],
    rounding_rule: RoundingRule,
    decimal_places: int,
    pass_threshold: decimal.Decimal | None = None,
    description: str | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> GradingFormula:
    """Create an inactive formula; activation is a separate step."""
    formula_id = FormulaID()
    stmt = sqla.insert(grading_formulas).values(
        formula_id=formula_id,
        class_offering_id=class_offering_id,
        created_by=created_by,
        expression=expression,
        output_scale=output_scale,
        grade_boundaries=_boundaries(grade_boundaries),
        rounding_rule=rounding_rule,
        decimal_places=decimal_places,
        pass_threshold=pass_threshold,
        description=description,
        version=next_version(class_offering_id, session=session),
        is_active=False,
    )
    session.execute(stmt)
    session.flush()
    result = get(formula_id, session=session)
    assert result is not None
    return result


def update(
    formula_id: FormulaID,
    *,
    expression: str | NotSet = NotSet(),
    output_scale: decimal.Decimal | NotSet = NotSet(),
    grade_boundaries: t.Sequence[GradeBoundary] | NotSet = NotSet(),
    rounding_rule: RoundingRule | NotSet = NotSet(),
    decimal_places: int | NotSet = NotSet(),
    pass_threshold: decimal.Decimal | None | NotSet = NotSet(),
    description: str | None | NotSet = NotSet(),
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """Update a formula.

    Raises:
        KeyError: If formula_id does not correspond to a formula
    """
    fields: dict[str, t.Any] = {
        "expression": expression,
        "output_scale": output_scale,
        "rounding_rule": rounding_rule,
        "decimal_places": decimal_places,
        "pass_threshold": pass_threshold,
        "description": description,
    }
    values = {k: v for k, v in fields.items() if not isinstance(v, NotSet)}
    if not isinstance(grade_boundaries, NotSet):
        values["grade_boundaries"] = _boundaries(grade_boundaries)
    if not values:
        values = {"formula_id": formula_id}

    stmt = sqla.update(grading_formulas).where(grading_formulas.formula_id == formula_id).values(**values)
    result = session.execute(stmt)
    if result.rowcount == 0:  # pyright: ignore[reportAttributeAccessIssue]
        raise KeyError(f"GradingFormula {formula_id} not found")
    session.flush()


def set_active(
    class_offering_id: ClassOfferingID,
    formula_id: FormulaID | None,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """Mark ``formula_id`` as the only active formula of the offering (or none)."""
    session.execute(
        sqla
        .update(grading_formulas)
        .where(grading_formulas.class_offering_id == class_offering_id)
        .where(grading_formulas.is_active.is_(True))
        .values(is_active=False)
    )
    if formula_id is not None:
        result = session.execute(
            sqla
            .update(grading_formulas)
            .where(grading_formulas.formula_id == formula_id)
            .where(grading_formulas.class_offering_id == class_offering_id)
            .values(is_active=True)
        )
        if result.rowcount == 0:  # pyright: ignore[reportAttributeAccessIssue]
            raise KeyError(f"GradingFormula {formula_id} not found in {class_offering_id}")
    session.flush()


def delete(
    formula_id: FormulaID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> bool:
    """Delete a formula.

    Returns:
        True if a formula was deleted, False if not found
    """
    stmt = sqla.delete(grading_formulas).where(grading_formulas.formula_id == formula_id)
    result = session.execute(stmt)
    return bool(result.rowcount)  # pyright: ignore[reportUnknownArgumentType, reportAttributeAccessIssue]
