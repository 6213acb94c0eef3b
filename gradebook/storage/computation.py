from __future__ import annotations

import datetime
import typing as t

import sqlalchemy as sqla

from gradebook.core import di
from gradebook.model import ClassOfferingID, ComputationID, ComputationStatus, FormulaID, GradeComputation, \
    StudentResult, UserID

from . import Session
from .table import grade_computations


def get(
    computation_id: ComputationID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> GradeComputation | None:
    stmt = sqla.select(grade_computations.__table__).where(grade_computations.computation_id == computation_id)
    row = session.execute(stmt).mappings().one_or_none()
    return GradeComputation(**row) if row else None


def find(
    *,
    class_offering_id: ClassOfferingID | None = None,
    status: ComputationStatus | None = None,
    limit: int | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[GradeComputation, ...]:
    """Computations, most recent first."""
    stmt = sqla.select(grade_computations.__table__).order_by(grade_computations.started_at.desc())
    if class_offering_id is not None:
        stmt = stmt.where(grade_computations.class_offering_id == class_offering_id)
    if status is not None:
        stmt = stmt.where(grade_computations.status == status)
    if limit is not None:
        stmt = stmt.limit(limit)
    rows = session.execute(stmt).mappings().all()
    return tuple(GradeComputation(**row) for row in rows)


def create(
    *,
    computation_id: ComputationID | None = None,
    class_offering_id: ClassOfferingID,
    formula_id: FormulaID,
    triggered_by: UserID,
    started_at: datetime.datetime,
    session: Session = di.Provide["storage.persistent.session"],
) -> GradeComputation:
    computation_id = computation_id or ComputationID()
    stmt = sqla.insert(grade_computations).values(
        computation_id=computation_id,
        class_offering_id=class_offering_id,
        formula_id=formula_id,
        triggered_by=triggered_by,
        started_at=started_at,
        status=ComputationStatus.Running,
        results=[],
    )
    session.execute(stmt)
    session.flush()
    result = get(computation_id, session=session)
    assert result is not None
    return result


def finish(
    computation_id: ComputationID,
    *,
    status: t.Literal[ComputationStatus.Completed, ComputationStatus.Failed],
    completed_at: datetime.datetime,
    results: t.Sequence[StudentResult] = (),
    student_count: int | None = None,
    succeeded_count: int = 0,
    failed_count: int = 0,
    error_message: str | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> bool:
    """Move a running computation to its terminal status.

    Only a ``running`` row is touched, so a computation that already finished
    (or was superseded as stale) keeps its recorded outcome.

    Returns:
        True if the row was still running and is now finished
    """
    stmt = (
        sqla
        .update(grade_computations)
        .where(grade_computations.computation_id == computation_id)
        .where(grade_computations.status == ComputationStatus.Running)
        .values(
            status=status,
            completed_at=completed_at,
            results=[r.model_dump(mode="json") for r in results],
            student_count=student_count if student_count is not None else len(results),
            succeeded_count=succeeded_count,
            failed_count=failed_count,
            error_message=error_message,
        )
    )
    result = session.execute(stmt)
    session.flush()
    return bool(result.rowcount)  # pyright: ignore[reportAttributeAccessIssue]
