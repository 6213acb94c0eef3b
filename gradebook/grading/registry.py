"""Grading components of a class offering: the named, weighted inputs that
formulas reference.

Components are never hard-deleted. A component referenced by the offering's
active formula can be neither renamed, deactivated nor deleted.
"""

from __future__ import annotations

import decimal
import logging
import typing as t

from gradebook import formula as formula_engine
from gradebook.core import di
from gradebook.core.config import ComponentSettings
from gradebook.core.provider import TimestampProvider
from gradebook.errors import ComponentInUse, NotFoundError, ValidationError, WeightConfigurationError
from gradebook.lib import NotSet
from gradebook.model import ClassOffering, ClassOfferingID, ComponentID, GradingComponent, User, Weighting
from gradebook.model.component import IdentifierPattern
from gradebook.storage import component as component_storage
from gradebook.storage import formula as formula_storage
from gradebook.storage import Session

from .guard import authorize
from .provider import AccessPolicy, AuditSink

logger = logging.getLogger(__name__)


def check_weight_set(
    weights: t.Iterable[tuple[Weighting, decimal.Decimal]],
    settings: ComponentSettings,
    *,
    complete: bool = False,
) -> decimal.Decimal:
    """Check a set of active component weights for consistency.

    All components must share one weighting mode. Weight-based sets may not
    exceed the target, and with ``complete`` must reach it, both within
    ``settings.epsilon``.

    Returns:
        the sum of the weights
    """
    weights = list(weights)
    modes = {mode for mode, _ in weights}
    if len(modes) > 1:
        raise WeightConfigurationError("active components mix weight- and point-based weighting", field="weighting")

    total = sum((w for _, w in weights), decimal.Decimal(0))
    if modes != {Weighting.Weight}:
        return total

    if total > settings.weight_target + settings.epsilon:
        raise WeightConfigurationError(
            f"component weights sum to {total}, above the target of {settings.weight_target}",
            field="weight",
            total=total,
        )
    if complete and abs(total - settings.weight_target) > settings.epsilon:
        raise WeightConfigurationError(
            f"component weights sum to {total}, expected {settings.weight_target}",
            field="weight",
            total=total,
        )
    return total


def _check_fields(
    *,
    name: str,
    weighting: Weighting,
    weight: decimal.Decimal,
    max_score: decimal.Decimal,
    settings: ComponentSettings,
) -> None:
    if not IdentifierPattern.match(name) or len(name) > 50:
        raise ValidationError(f"{name!r} is not a valid component name", field="name")
    if max_score <= 0:
        raise ValidationError("max_score must be positive", field="max_score")
    if weight <= 0:
        raise ValidationError("weight must be positive", field="weight")
    if weighting is Weighting.Weight and weight > settings.weight_target:
        raise ValidationError(f"weight may not exceed {settings.weight_target}", field="weight")


def _referenced_names(offering: ClassOffering, session: Session) -> frozenset[str]:
    if offering.active_formula_id is None:
        return frozenset()
    active = formula_storage.get(offering.active_formula_id, session=session)
    if active is None:
        return frozenset()
    return formula_engine.references(formula_engine.parse(active.expression))


def _require(component_id: ComponentID, session: Session) -> GradingComponent:
    component = component_storage.get(component_id, session=session)
    if component is None or component.deleted_at is not None:
        raise NotFoundError(f"grading component {component_id} not found", component_id=component_id)
    return component


@di.inject
def create_component(
    class_offering_id: ClassOfferingID,
    *,
    actor: User,
    name: str,
    weight: decimal.Decimal,
    max_score: decimal.Decimal,
    weighting: Weighting = Weighting.Weight,
    label: str | None = None,
    session: Session = di.Provide["storage.persistent.session"],
    access: AccessPolicy = di.Provide["grading.access"],
    audit: AuditSink = di.Provide["grading.audit"],
    settings: ComponentSettings = di.Provide["config.grading.components", di.as_(ComponentSettings)],
) -> GradingComponent:
    with session.begin():
        authorize(actor, class_offering_id, access=access, session=session)
        _check_fields(name=name, weighting=weighting, weight=weight, max_score=max_score, settings=settings)

        active = component_storage.find(class_offering_id=class_offering_id, session=session)
        if any(c.name == name for c in active):
            raise ValidationError(f"a component named {name!r} already exists", field="name")
        check_weight_set([*((c.weighting, c.weight) for c in active), (weighting, weight)], settings)

        component = component_storage.create(
            class_offering_id=class_offering_id,
            name=name,
            weight=weight,
            max_score=max_score,
            weighting=weighting,
            label=label,
            session=session,
        )
        audit.record(
            "component.created",
            actor,
            component.component_id,
            {"class_offering_id": class_offering_id, "name": name, "weight": str(weight)},
            session=session,
        )

    logger.info(
        "created grading component",
        extra={"component_id": component.component_id, "class_offering_id": class_offering_id, "name": name},
    )
    return component


@di.inject
def update_component(
    component_id: ComponentID,
    *,
    actor: User,
    name: str | NotSet = NotSet(),
    label: str | None | NotSet = NotSet(),
    weighting: Weighting | NotSet = NotSet(),
    weight: decimal.Decimal | NotSet = NotSet(),
    max_score: decimal.Decimal | NotSet = NotSet(),
    is_active: bool | NotSet = NotSet(),
    session: Session = di.Provide["storage.persistent.session"],
    access: AccessPolicy = di.Provide["grading.access"],
    audit: AuditSink = di.Provide["grading.audit"],
    settings: ComponentSettings = di.Provide["config.grading.components", di.as_(ComponentSettings)],
) -> GradingComponent:
    """Update a component.

    Raises:
        NotFoundError: the component does not exist or was deleted
        ComponentInUse: renaming or deactivating a component the active formula references
        ValidationError: the resulting component or weight set is invalid
    """
    changes: dict[str, t.Any] = {
        "name": name,
        "label": label,
        "weighting": weighting,
        "weight": weight,
        "max_score": max_score,
        "is_active": is_active,
    }
    changes = {k: v for k, v in changes.items() if not isinstance(v, NotSet)}

    with session.begin():
        current = _require(component_id, session)
        offering = authorize(actor, current.class_offering_id, access=access, session=session)
        updated = current.model_copy(update=changes)
        _check_fields(
            name=updated.name,
            weighting=updated.weighting,
            weight=updated.weight,
            max_score=updated.max_score,
            settings=settings,
        )

        if current.is_active and (updated.name != current.name or not updated.is_active):
            if current.name in _referenced_names(offering, session):
                raise ComponentInUse(
                    f"component {current.name!r} is referenced by the active formula", component_id=component_id
                )

        others = [
            c
            for c in component_storage.find(class_offering_id=current.class_offering_id, session=session)
            if c.component_id != component_id
        ]
        if updated.is_active:
            if any(c.name == updated.name for c in others):
                raise ValidationError(f"a component named {updated.name!r} already exists", field="name")
            weights = [(c.weighting, c.weight) for c in others]
            check_weight_set([*weights, (updated.weighting, updated.weight)], settings)

        component_storage.update(component_id, session=session, **changes)
        audit.record(
            "component.updated",
            actor,
            component_id,
            {k: str(v.value if isinstance(v, Weighting) else v) for k, v in changes.items()},
            session=session,
        )
        result = component_storage.get(component_id, session=session)
        assert result is not None

    logger.info("updated grading component", extra={"component_id": component_id, "fields": sorted(changes)})
    return result


@di.inject
def delete_component(
    component_id: ComponentID,
    *,
    actor: User,
    session: Session = di.Provide["storage.persistent.session"],
    access: AccessPolicy = di.Provide["grading.access"],
    audit: AuditSink = di.Provide["grading.audit"],
    utcnow: TimestampProvider = di.Provide["utcnow"],
) -> None:
    """Soft-delete a component; its scores and history stay in place.

    Raises:
        ComponentInUse: the offering's active formula references the component
    """
    with session.begin():
        current = _require(component_id, session)
        offering = authorize(actor, current.class_offering_id, access=access, session=session)
        if current.name in _referenced_names(offering, session):
            raise ComponentInUse(
                f"component {current.name!r} is referenced by the active formula", component_id=component_id
            )
        component_storage.update(component_id, is_active=False, deleted_at=utcnow(), session=session)
        audit.record(
            "component.deleted",
            actor,
            component_id,
            {"class_offering_id": current.class_offering_id, "name": current.name},
            session=session,
        )
    logger.info("deleted grading component", extra={"component_id": component_id})


@di.inject
def get_component(
    component_id: ComponentID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> GradingComponent:
    with session.begin():
        component = component_storage.get(component_id, session=session)
    if component is None:
        raise NotFoundError(f"grading component {component_id} not found", component_id=component_id)
    return component


@di.inject
def list_components(
    class_offering_id: ClassOfferingID,
    *,
    include_inactive: bool = False,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[GradingComponent, ...]:
    with session.begin():
        return component_storage.find(
            class_offering_id=class_offering_id, include_inactive=include_inactive, session=session
        )


@di.inject
def check_weights(
    class_offering_id: ClassOfferingID,
    *,
    complete: bool | None = None,
    session: Session = di.Provide["storage.persistent.session"],
    settings: ComponentSettings = di.Provide["config.grading.components", di.as_(ComponentSettings)],
) -> decimal.Decimal:
    """Check the offering's active weights; ``complete`` defaults to ``require_complete_weights``.

    Returns:
        the sum of the active weights
    """
    with session.begin():
        active = component_storage.find(class_offering_id=class_offering_id, session=session)
    return check_weight_set(
        ((c.weighting, c.weight) for c in active),
        settings,
        complete=settings.require_complete_weights if complete is None else complete,
    )
