from __future__ import annotations

import datetime
import decimal
import typing as t

import sqlalchemy as sqla

from gradebook.core import di
from gradebook.lib import NotSet
from gradebook.model import ClassOfferingID, ComponentID, GradingComponent, Weighting

from . import Session
from .table import grading_components


def get(
    component_id: ComponentID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> GradingComponent | None:
    stmt = sqla.select(grading_components.__table__).where(grading_components.component_id == component_id)
    row = session.execute(stmt).mappings().one_or_none()
    return GradingComponent(**row) if row else None


def find(
    *,
    class_offering_id: ClassOfferingID | None = None,
    name: str | None = None,
    include_inactive: bool = False,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[GradingComponent, ...]:
    """Components, oldest first. Soft-deleted and inactive ones only with ``include_inactive``."""
    stmt = sqla.select(grading_components.__table__).order_by(
        grading_components.create_time, grading_components.component_id
    )
    if class_offering_id is not None:
        stmt = stmt.where(grading_components.class_offering_id == class_offering_id)
    if name is not None:
        stmt = stmt.where(grading_components.name == name)
    if not include_inactive:
        stmt = stmt.where(grading_components.is_active.is_(True)).where(grading_components.deleted_at.is_(None))
    rows = session.execute(stmt).mappings().all()
    return tuple(GradingComponent(**row) for row in rows)


def create(
    *,
    class_offering_id: ClassOfferingID,
    name: str,
    weight: decimal.Decimal,
    max_score: decimal.Decimal,
    weighting: Weighting = Weighting.Weight,
    label: str | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> GradingComponent:
    component_id = ComponentID()
    stmt = sqla.insert(grading_components).values(
        component_id=component_id,
        class_offering_id=class_offering_id,
        name=name,
        label=label,
        weighting=weighting,
        weight=weight,
        max_score=max_score,
    )
    session.execute(stmt)
    session.flush()
    result = get(component_id, session=session)
    assert result is not None
    return result


def update(
    component_id: ComponentID,
    *,
    name: str | NotSet = NotSet(),
    label: str | None | NotSet = NotSet(),
    weighting: Weighting | NotSet = NotSet(),
    weight: decimal.Decimal | NotSet = NotSet(),
    max_score: decimal.Decimal | NotSet = NotSet(),
    is_active: bool | NotSet = NotSet(),
    deleted_at: datetime.datetime | None | NotSet = NotSet(),
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """Update a component.

    Uses NotSet sentinel for parameters where None may be a valid value.
    Call get() after if you need the updated entity.

    Raises:
        KeyError: If component_id does not correspond to a component
    """
    fields: dict[str, t.Any] = {
        "name": name,
        "label": label,
        "weighting": weighting,
        "weight": weight,
        "max_score": max_score,
        "is_active": is_active,
        "deleted_at": deleted_at,
    }
    values = {k: v for k, v in fields.items() if not isinstance(v, NotSet)}
    if not values:
        values = {"component_id": component_id}

    stmt = sqla.update(grading_components).where(grading_components.component_id == component_id).values(**values)
    result = session.execute(stmt)
    if result.rowcount == 0:  # pyright: ignore[reportAttributeAccessIssue]
        raise KeyError(f"GradingComponent {component_id} not found")
    session.flush()
