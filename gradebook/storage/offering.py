from __future__ import annotations

import datetime
import typing as t

import sqlalchemy as sqla

from gradebook.core import di
from gradebook.lib import NotSet
from gradebook.model import AcademicPeriod, AcademicPeriodID, ClassOffering, ClassOfferingID, ComputationID, \
    FormulaID, UserID

from . import Session
from .table import academic_periods, class_offerings, offering_teachers


def get(
    class_offering_id: ClassOfferingID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> ClassOffering | None:
    stmt = sqla.select(class_offerings.__table__).where(class_offerings.class_offering_id == class_offering_id)
    row = session.execute(stmt).mappings().one_or_none()
    return ClassOffering(**row) if row else None


def find(
    *,
    academic_period_ids: t.Iterable[AcademicPeriodID] | None = None,
    class_offering_ids: t.Iterable[ClassOfferingID] | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[ClassOffering, ...]:
    stmt = sqla.select(class_offerings.__table__).order_by(class_offerings.name)
    if academic_period_ids is not None:
        stmt = stmt.where(class_offerings.academic_period_id.in_(list(academic_period_ids)))
    if class_offering_ids is not None:
        stmt = stmt.where(class_offerings.class_offering_id.in_(list(class_offering_ids)))
    rows = session.execute(stmt).mappings().all()
    return tuple(ClassOffering(**row) for row in rows)


def create(
    *,
    name: str,
    academic_period_id: AcademicPeriodID | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> ClassOffering:
    class_offering_id = ClassOfferingID()
    stmt = sqla.insert(class_offerings).values(
        class_offering_id=class_offering_id,
        name=name,
        academic_period_id=academic_period_id,
    )
    session.execute(stmt)
    session.flush()
    result = get(class_offering_id, session=session)
    assert result is not None
    return result


def set_active_formula(
    class_offering_id: ClassOfferingID,
    formula_id: FormulaID | None,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """Point the offering at a formula (or at none).

    Raises:
        KeyError: If class_offering_id does not correspond to an offering
    """
    stmt = (
        sqla
        .update(class_offerings)
        .where(class_offerings.class_offering_id == class_offering_id)
        .values(active_formula_id=formula_id)
    )
    result = session.execute(stmt)
    if result.rowcount == 0:  # pyright: ignore[reportAttributeAccessIssue]
        raise KeyError(f"ClassOffering {class_offering_id} not found")
    session.flush()


def claim(
    class_offering_id: ClassOfferingID,
    computation_id: ComputationID,
    *,
    expected: ComputationID | None | NotSet = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> bool:
    """Compare-and-swap the offering's running computation.

    The swap succeeds only while ``running_computation_id`` still equals
    ``expected`` (no claim by default). Pass ``NotSet()`` to take the claim
    unconditionally.

    Returns:
        True if this caller now holds the claim
    """
    stmt = (
        sqla
        .update(class_offerings)
        .where(class_offerings.class_offering_id == class_offering_id)
        .values(running_computation_id=computation_id)
    )
    if expected is None:
        stmt = stmt.where(class_offerings.running_computation_id.is_(None))
    elif not isinstance(expected, NotSet):
        stmt = stmt.where(class_offerings.running_computation_id == expected)
    result = session.execute(stmt)
    session.flush()
    return bool(result.rowcount)  # pyright: ignore[reportAttributeAccessIssue]


def release(
    class_offering_id: ClassOfferingID,
    computation_id: ComputationID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> bool:
    """Drop the claim, but only if ``computation_id`` still holds it."""
    stmt = (
        sqla
        .update(class_offerings)
        .where(class_offerings.class_offering_id == class_offering_id)
        .where(class_offerings.running_computation_id == computation_id)
        .values(running_computation_id=None)
    )
    result = session.execute(stmt)
    session.flush()
    return bool(result.rowcount)  # pyright: ignore[reportAttributeAccessIssue]


# Teachers


def add_teacher(
    class_offering_id: ClassOfferingID,
    user_id: UserID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    session.execute(sqla.insert(offering_teachers).values(class_offering_id=class_offering_id, user_id=user_id))
    session.flush()


def is_teacher(
    class_offering_id: ClassOfferingID,
    user_id: UserID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> bool:
    stmt = (
        sqla
        .select(sqla.func.count())
        .select_from(offering_teachers)
        .where(offering_teachers.class_offering_id == class_offering_id)
        .where(offering_teachers.user_id == user_id)
    )
    return bool(session.execute(stmt).scalar_one())


# Academic periods


def get_period(
    academic_period_id: AcademicPeriodID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> AcademicPeriod | None:
    stmt = sqla.select(academic_periods.__table__).where(academic_periods.academic_period_id == academic_period_id)
    row = session.execute(stmt).mappings().one_or_none()
    return AcademicPeriod(**row) if row else None


def create_period(
    *,
    name: str,
    starts_on: datetime.date | None = None,
    ends_on: datetime.date | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> AcademicPeriod:
    academic_period_id = AcademicPeriodID()
    stmt = sqla.insert(academic_periods).values(
        academic_period_id=academic_period_id, name=name, starts_on=starts_on, ends_on=ends_on
    )
    session.execute(stmt)
    session.flush()
    result = get_period(academic_period_id, session=session)
    assert result is not None
    return result
