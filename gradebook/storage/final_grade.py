from __future__ import annotations

import datetime
import decimal
import typing as t

import sqlalchemy as sqla

from gradebook.core import di
from gradebook.lib import NotSet
from gradebook.model import ClassOfferingID, ComputationID, FinalGrade, FinalGradeID, FinalGradeStatus, FormulaID, \
    GradeOverride, UserID

from . import Session
from .table import final_grades

# Every write below is conditional on the row's (status, revision) as last read
# by the caller and bumps revision on success. A False return means the row
# changed underneath the caller.


def get(
    final_grade_id: FinalGradeID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> FinalGrade | None:
    stmt = sqla.select(final_grades.__table__).where(final_grades.final_grade_id == final_grade_id)
    row = session.execute(stmt).mappings().one_or_none()
    return FinalGrade(**row) if row else None


def get_for_student(
    student_id: UserID,
    class_offering_id: ClassOfferingID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> FinalGrade | None:
    stmt = (
        sqla
        .select(final_grades.__table__)
        .where(final_grades.student_id == student_id)
        .where(final_grades.class_offering_id == class_offering_id)
    )
    row = session.execute(stmt).mappings().one_or_none()
    return FinalGrade(**row) if row else None


def find(
    *,
    class_offering_id: ClassOfferingID | None = None,
    class_offering_ids: t.Iterable[ClassOfferingID] | None = None,
    student_id: UserID | None = None,
    student_ids: t.Iterable[UserID] | None = None,
    statuses: t.Iterable[FinalGradeStatus] | None = None,
    computation_id: ComputationID | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[FinalGrade, ...]:
    stmt = sqla.select(final_grades.__table__).order_by(final_grades.class_offering_id, final_grades.student_id)
    if class_offering_id is not None:
        stmt = stmt.where(final_grades.class_offering_id == class_offering_id)
    if class_offering_ids is not None:
        stmt = stmt.where(final_grades.class_offering_id.in_(list(class_offering_ids)))
    if student_id is not None:
        stmt = stmt.where(final_grades.student_id == student_id)
    if student_ids is not None:
        stmt = stmt.where(final_grades.student_id.in_(list(student_ids)))
    if statuses is not None:
        stmt = stmt.where(final_grades.status.in_(list(statuses)))
    if computation_id is not None:
        stmt = stmt.where(final_grades.computation_id == computation_id)
    rows = session.execute(stmt).mappings().all()
    return tuple(FinalGrade(**row) for row in rows)


def create(
    *,
    student_id: UserID,
    class_offering_id: ClassOfferingID,
    computation_id: ComputationID,
    formula_id: FormulaID,
    raw_score: decimal.Decimal,
    letter: str,
    is_passing: bool | None,
    component_breakdown: dict[str, t.Any],
    session: Session = di.Provide["storage.persistent.session"],
) -> FinalGrade:
    """Insert a draft. The (student, offering) unique constraint rejects a second row."""
    final_grade_id = FinalGradeID()
    stmt = sqla.insert(final_grades).values(
        final_grade_id=final_grade_id,
        student_id=student_id,
        class_offering_id=class_offering_id,
        computation_id=computation_id,
        formula_id=formula_id,
        raw_score=raw_score,
        letter=letter,
        is_passing=is_passing,
        component_breakdown=component_breakdown,
        status=FinalGradeStatus.Draft,
        revision=1,
    )
    session.execute(stmt)
    session.flush()
    result = get(final_grade_id, session=session)
    assert result is not None
    return result


def _conditional_update(
    final_grade_id: FinalGradeID,
    expected_status: FinalGradeStatus | t.Iterable[FinalGradeStatus],
    expected_revision: int,
    values: dict[str, t.Any],
    session: Session,
    *,
    without_override: bool = False,
) -> bool:
    statuses = [expected_status] if isinstance(expected_status, FinalGradeStatus) else list(expected_status)
    stmt = (
        sqla
        .update(final_grades)
        .where(final_grades.final_grade_id == final_grade_id)
        .where(final_grades.status.in_(statuses))
        .where(final_grades.revision == expected_revision)
        .values(revision=final_grades.revision + 1, **values)
    )
    if without_override:
        stmt = stmt.where(final_grades.override.is_(None))
    result = session.execute(stmt)
    session.flush()
    return bool(result.rowcount)  # pyright: ignore[reportAttributeAccessIssue]


def replace_draft(
    final_grade_id: FinalGradeID,
    *,
    expected_revision: int,
    computation_id: ComputationID,
    formula_id: FormulaID,
    raw_score: decimal.Decimal,
    letter: str,
    is_passing: bool | None,
    component_breakdown: dict[str, t.Any],
    session: Session = di.Provide["storage.persistent.session"],
) -> bool:
    """Overwrite a draft's computed values; never touches a published, locked or overridden row."""
    return _conditional_update(
        final_grade_id,
        FinalGradeStatus.Draft,
        expected_revision,
        {
            "computation_id": computation_id,
            "formula_id": formula_id,
            "raw_score": raw_score,
            "letter": letter,
            "is_passing": is_passing,
            "component_breakdown": component_breakdown,
        },
        session,
        without_override=True,
    )


def transition(
    final_grade_id: FinalGradeID,
    *,
    expected_status: FinalGradeStatus,
    expected_revision: int,
    status: FinalGradeStatus,
    published_at: datetime.datetime | None | NotSet = NotSet(),
    published_by: UserID | None | NotSet = NotSet(),
    locked_at: datetime.datetime | None | NotSet = NotSet(),
    locked_by: UserID | None | NotSet = NotSet(),
    session: Session = di.Provide["storage.persistent.session"],
) -> bool:
    fields: dict[str, t.Any] = {
        "published_at": published_at,
        "published_by": published_by,
        "locked_at": locked_at,
        "locked_by": locked_by,
    }
    values = {k: v for k, v in fields.items() if not isinstance(v, NotSet)}
    values["status"] = status
    return _conditional_update(final_grade_id, expected_status, expected_revision, values, session)


def set_override(
    final_grade_id: FinalGradeID,
    override: GradeOverride | None,
    *,
    expected_status: FinalGradeStatus,
    expected_revision: int,
    session: Session = di.Provide["storage.persistent.session"],
) -> bool:
    value = override.model_dump(mode="json") if override is not None else None
    return _conditional_update(final_grade_id, expected_status, expected_revision, {"override": value}, session)
