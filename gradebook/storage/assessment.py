from __future__ import annotations

import decimal
import typing as t

import sqlalchemy as sqla

from gradebook.core import di
from gradebook.model import ComponentID, UserID

from . import Session
from .table import assessment_grades


def get_scores(
    student_id: UserID,
    component_ids: t.Iterable[ComponentID],
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> dict[ComponentID, decimal.Decimal | None]:
    """Recorded scores of one student; components without a record are absent from the result."""
    ids = list(component_ids)
    if not ids:
        return {}
    stmt = (
        sqla
        .select(assessment_grades.component_id, assessment_grades.score)
        .where(assessment_grades.student_id == student_id)
        .where(assessment_grades.component_id.in_(ids))
    )
    return {row.component_id: row.score for row in session.execute(stmt)}


def record(
    student_id: UserID,
    component_id: ComponentID,
    score: decimal.Decimal | None,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """Insert or replace one score."""
    result = session.execute(
        sqla
        .update(assessment_grades)
        .where(assessment_grades.student_id == student_id)
        .where(assessment_grades.component_id == component_id)
        .values(score=score)
    )
    if result.rowcount == 0:  # pyright: ignore[reportAttributeAccessIssue]
        session.execute(
            sqla.insert(assessment_grades).values(student_id=student_id, component_id=component_id, score=score)
        )
    session.flush()
