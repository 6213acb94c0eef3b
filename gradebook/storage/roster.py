from __future__ import annotations

import sqlalchemy as sqla

from gradebook.core import di
from gradebook.model import ClassOfferingID, Enrollment, UserID

from . import Session
from .table import enrollments


def find(
    class_offering_id: ClassOfferingID,
    *,
    active_only: bool = True,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[Enrollment, ...]:
    """Enrollments of an offering in roster order."""
    stmt = (
        sqla
        .select(enrollments.__table__)
        .where(enrollments.class_offering_id == class_offering_id)
        .order_by(enrollments.position, enrollments.student_id)
    )
    if active_only:
        stmt = stmt.where(enrollments.is_active.is_(True))
    rows = session.execute(stmt).mappings().all()
    return tuple(Enrollment(**row) for row in rows)


def enroll(
    class_offering_id: ClassOfferingID,
    student_id: UserID,
    *,
    position: int | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> Enrollment:
    """Add a student at the end of the roster, or at ``position``."""
    if position is None:
        stmt = sqla.select(sqla.func.coalesce(sqla.func.max(enrollments.position) + 1, 0)).where(
            enrollments.class_offering_id == class_offering_id
        )
        position = int(session.execute(stmt).scalar_one())
    session.execute(
        sqla.insert(enrollments).values(
            class_offering_id=class_offering_id, student_id=student_id, position=position, is_active=True
        )
    )
    session.flush()
    return Enrollment(class_offering_id=class_offering_id, student_id=student_id, position=position)


def withdraw(
    class_offering_id: ClassOfferingID,
    student_id: UserID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> bool:
    stmt = (
        sqla
        .update(enrollments)
        .where(enrollments.class_offering_id == class_offering_id)
        .where(enrollments.student_id == student_id)
        .values(is_active=False)
    )
    result = session.execute(stmt)
    session.flush()
    return bool(result.rowcount)  # pyright: ignore[reportAttributeAccessIssue]
