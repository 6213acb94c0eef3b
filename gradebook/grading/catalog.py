"""Formula catalog: versioned grading formulas and the per-offering active pointer.

A formula that has been used by a computation is frozen; editing a grading
scheme after the fact means creating a new version and activating it, so
historical computations keep pointing at the formula that produced them.

Templates are formula definitions kept apart from any offering. Applying
one creates a new formula version in the target offering.
"""

from __future__ import annotations

import decimal
import logging
import typing as t

import sqlalchemy as sqla

from gradebook import formula as formula_engine
from gradebook.core import di
from gradebook.core.config import ComponentSettings, FormulaSettings
from gradebook.errors import Forbidden, NoActiveFormula, NotFoundError, StateConflict, ValidationError
from gradebook.lib import NotSet
from gradebook.model import ClassOfferingID, FormulaID, FormulaTemplate, FormulaTemplateID, GradeBoundary, \
    GradingFormula, RoundingRule, TemplateCategory, User, UserRole
from gradebook.storage import component as component_storage
from gradebook.storage import formula as formula_storage
from gradebook.storage import offering as offering_storage
from gradebook.storage import template as template_storage
from gradebook.storage import Session
from gradebook.storage.table import grade_computations

from .guard import authorize
from .provider import AccessPolicy, AuditSink
from .registry import check_weight_set

logger = logging.getLogger(__name__)


def _component_names(class_offering_id: ClassOfferingID, session: Session) -> set[str]:
    return {c.name for c in component_storage.find(class_offering_id=class_offering_id, session=session)}


def _check_definition(
    expression: str,
    *,
    known: t.Iterable[str],
    grade_boundaries: t.Sequence[GradeBoundary],
    output_scale: decimal.Decimal,
    pass_threshold: decimal.Decimal | None,
) -> formula_engine.ValidationResult:
    result = formula_engine.validate(expression, known)
    formula_engine.check_boundaries(grade_boundaries, output_scale)
    if pass_threshold is not None and not (0 <= pass_threshold <= output_scale):
        raise ValidationError(f"pass_threshold must lie within [0, {output_scale}]", field="pass_threshold")
    return result


def _is_used(formula_id: FormulaID, session: Session) -> bool:
    stmt = sqla.select(sqla.func.count()).select_from(grade_computations).where(
        grade_computations.formula_id == formula_id
    )
    return bool(session.execute(stmt).scalar_one())


def _require(formula_id: FormulaID, session: Session) -> GradingFormula:
    result = formula_storage.get(formula_id, session=session)
    if result is None:
        raise NotFoundError(f"grading formula {formula_id} not found", formula_id=formula_id)
    return result


@di.inject
def create_formula(
    class_offering_id: ClassOfferingID,
    *,
    actor: User,
    expression: str,
    grade_boundaries: t.Sequence[GradeBoundary] | None = None,
    output_scale: decimal.Decimal | None = None,
    rounding_rule: RoundingRule | None = None,
    decimal_places: int | None = None,
    pass_threshold: decimal.Decimal | None = None,
    description: str | None = None,
    activate: bool = False,
    session: Session = di.Provide["storage.persistent.session"],
    access: AccessPolicy = di.Provide["grading.access"],
    audit: AuditSink = di.Provide["grading.audit"],
    settings: FormulaSettings = di.Provide["config.grading.formula", di.as_(FormulaSettings)],
) -> GradingFormula:
    """Create the next version of the offering's formula.

    Fields left as None take the configured defaults. With ``activate`` the
    new version also becomes the active one, subject to the same checks as
    ``activate_formula``.
    """
    output_scale = output_scale if output_scale is not None else settings.default_output_scale
    grade_boundaries = grade_boundaries if grade_boundaries is not None else settings.default_boundaries
    if decimal_places is not None and not (0 <= decimal_places <= 4):
        raise ValidationError("decimal_places must lie within [0, 4]", field="decimal_places")

    with session.begin():
        authorize(actor, class_offering_id, access=access, session=session)
        _check_definition(
            expression,
            known=_component_names(class_offering_id, session),
            grade_boundaries=grade_boundaries,
            output_scale=output_scale,
            pass_threshold=pass_threshold,
        )
        result = formula_storage.create(
            class_offering_id=class_offering_id,
            created_by=actor.user_id,
            expression=expression,
            output_scale=output_scale,
            grade_boundaries=grade_boundaries,
            rounding_rule=rounding_rule or settings.default_rounding_rule,
            decimal_places=decimal_places if decimal_places is not None else settings.default_decimal_places,
            pass_threshold=pass_threshold,
            description=description,
            session=session,
        )
        audit.record(
            "formula.created",
            actor,
            result.formula_id,
            {"class_offering_id": class_offering_id, "version": result.version, "expression": expression},
            session=session,
        )

    logger.info(
        "created grading formula",
        extra={"formula_id": result.formula_id, "class_offering_id": class_offering_id, "version": result.version},
    )
    if activate:
        return activate_formula(result.formula_id, actor=actor, session=session, access=access, audit=audit)
    return result


@di.inject
def update_formula(
    formula_id: FormulaID,
    *,
    actor: User,
    expression: str | NotSet = NotSet(),
    grade_boundaries: t.Sequence[GradeBoundary] | NotSet = NotSet(),
    output_scale: decimal.Decimal | NotSet = NotSet(),
    rounding_rule: RoundingRule | NotSet = NotSet(),
    decimal_places: int | NotSet = NotSet(),
    pass_threshold: decimal.Decimal | None | NotSet = NotSet(),
    description: str | None | NotSet = NotSet(),
    session: Session = di.Provide["storage.persistent.session"],
    access: AccessPolicy = di.Provide["grading.access"],
    audit: AuditSink = di.Provide["grading.audit"],
) -> GradingFormula:
    """Edit a formula that no computation has used yet.

    Raises:
        StateConflict: the formula already produced a computation
    """
    with session.begin():
        current = _require(formula_id, session)
        authorize(actor, current.class_offering_id, access=access, session=session)
        if _is_used(formula_id, session):
            raise StateConflict(
                "formula has been used by a computation; create a new version instead", formula_id=formula_id
            )

        changes: dict[str, t.Any] = {
            "expression": expression,
            "grade_boundaries": grade_boundaries,
            "output_scale": output_scale,
            "rounding_rule": rounding_rule,
            "decimal_places": decimal_places,
            "pass_threshold": pass_threshold,
            "description": description,
        }
        changes = {k: v for k, v in changes.items() if not isinstance(v, NotSet)}
        if "grade_boundaries" in changes:
            changes["grade_boundaries"] = list(changes["grade_boundaries"])
        updated = current.model_copy(update=changes)
        if not (0 <= updated.decimal_places <= 4):
            raise ValidationError("decimal_places must lie within [0, 4]", field="decimal_places")
        _check_definition(
            updated.expression,
            known=_component_names(current.class_offering_id, session),
            grade_boundaries=updated.grade_boundaries,
            output_scale=updated.output_scale,
            pass_threshold=updated.pass_threshold,
        )

        formula_storage.update(formula_id, session=session, **changes)
        audit.record("formula.updated", actor, formula_id, {"fields": sorted(changes)}, session=session)
        result = _require(formula_id, session)

    logger.info("updated grading formula", extra={"formula_id": formula_id, "fields": sorted(changes)})
    return result


@di.inject
def activate_formula(
    formula_id: FormulaID,
    *,
    actor: User,
    session: Session = di.Provide["storage.persistent.session"],
    access: AccessPolicy = di.Provide["grading.access"],
    audit: AuditSink = di.Provide["grading.audit"],
    settings: ComponentSettings = di.Provide["config.grading.components", di.as_(ComponentSettings)],
) -> GradingFormula:
    """Make ``formula_id`` the single active formula of its offering.

    The formula is revalidated against the offering's current components and
    the weights must pass the full consistency check. The previous active
    formula is kept for historical computations.
    """
    with session.begin():
        current = _require(formula_id, session)
        offering = authorize(actor, current.class_offering_id, access=access, session=session)

        components = component_storage.find(class_offering_id=current.class_offering_id, session=session)
        check_weight_set(
            ((c.weighting, c.weight) for c in components), settings, complete=settings.require_complete_weights
        )
        _check_definition(
            current.expression,
            known={c.name for c in components},
            grade_boundaries=current.grade_boundaries,
            output_scale=current.output_scale,
            pass_threshold=current.pass_threshold,
        )

        formula_storage.set_active(current.class_offering_id, formula_id, session=session)
        offering_storage.set_active_formula(current.class_offering_id, formula_id, session=session)
        audit.record(
            "formula.activated",
            actor,
            formula_id,
            {"class_offering_id": current.class_offering_id, "previous_formula_id": offering.active_formula_id},
            session=session,
        )
        result = _require(formula_id, session)

    logger.info(
        "activated grading formula",
        extra={
            "formula_id": formula_id,
            "class_offering_id": current.class_offering_id,
            "previous_formula_id": offering.active_formula_id,
        },
    )
    return result


@di.inject
def deactivate_formula(
    class_offering_id: ClassOfferingID,
    *,
    actor: User,
    session: Session = di.Provide["storage.persistent.session"],
    access: AccessPolicy = di.Provide["grading.access"],
    audit: AuditSink = di.Provide["grading.audit"],
) -> None:
    """Clear the offering's active formula; computations then fail with NoActiveFormula."""
    with session.begin():
        offering = authorize(actor, class_offering_id, access=access, session=session)
        if offering.active_formula_id is None:
            return
        formula_storage.set_active(class_offering_id, None, session=session)
        offering_storage.set_active_formula(class_offering_id, None, session=session)
        audit.record(
            "formula.deactivated",
            actor,
            offering.active_formula_id,
            {"class_offering_id": class_offering_id},
            session=session,
        )
    logger.info("deactivated grading formula", extra={"class_offering_id": class_offering_id})


@di.inject
def delete_formula(
    formula_id: FormulaID,
    *,
    actor: User,
    session: Session = di.Provide["storage.persistent.session"],
    access: AccessPolicy = di.Provide["grading.access"],
    audit: AuditSink = di.Provide["grading.audit"],
) -> None:
    """Delete a formula that is neither active nor referenced by a computation."""
    with session.begin():
        current = _require(formula_id, session)
        authorize(actor, current.class_offering_id, access=access, session=session)
        if current.is_active:
            raise StateConflict("cannot delete the active formula", formula_id=formula_id)
        if _is_used(formula_id, session):
            raise StateConflict("formula has been used by a computation", formula_id=formula_id)
        formula_storage.delete(formula_id, session=session)
        audit.record(
            "formula.deleted", actor, formula_id, {"class_offering_id": current.class_offering_id}, session=session
        )
    logger.info("deleted grading formula", extra={"formula_id": formula_id})


@di.inject
def get_formula(
    formula_id: FormulaID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> GradingFormula:
    with session.begin():
        return _require(formula_id, session)


@di.inject
def get_active_formula(
    class_offering_id: ClassOfferingID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> GradingFormula:
    with session.begin():
        offering = offering_storage.get(class_offering_id, session=session)
        if offering is None:
            raise NotFoundError(f"class offering {class_offering_id} not found", class_offering_id=class_offering_id)
        if offering.active_formula_id is None:
            raise NoActiveFormula(f"class offering {class_offering_id} has no active formula")
        return _require(offering.active_formula_id, session)


@di.inject
def list_formulas(
    class_offering_id: ClassOfferingID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[GradingFormula, ...]:
    with session.begin():
        return formula_storage.find(class_offering_id=class_offering_id, session=session)


@di.inject
def validate_formula(
    class_offering_id: ClassOfferingID,
    expression: str,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> formula_engine.ValidationResult:
    """Check an expression against the offering's active components without saving it."""
    with session.begin():
        known = _component_names(class_offering_id, session)
    return formula_engine.validate(expression, known)


@di.inject
def preview_formula(
    class_offering_id: ClassOfferingID,
    expression: str,
    sample_scores: t.Mapping[str, decimal.Decimal | None],
    *,
    grade_boundaries: t.Sequence[GradeBoundary] | None = None,
    output_scale: decimal.Decimal | None = None,
    rounding_rule: RoundingRule | None = None,
    decimal_places: int | None = None,
    pass_threshold: decimal.Decimal | None = None,
    session: Session = di.Provide["storage.persistent.session"],
    settings: FormulaSettings = di.Provide["config.grading.formula", di.as_(FormulaSettings)],
) -> formula_engine.Preview:
    """Evaluate an expression over sample scores, for trying a formula out before saving it."""
    with session.begin():
        known = _component_names(class_offering_id, session)
    return formula_engine.preview(
        expression,
        sample_scores,
        boundaries=grade_boundaries if grade_boundaries is not None else settings.default_boundaries,
        output_scale=output_scale if output_scale is not None else settings.default_output_scale,
        rounding_rule=rounding_rule or settings.default_rounding_rule,
        decimal_places=decimal_places if decimal_places is not None else settings.default_decimal_places,
        pass_threshold=pass_threshold,
        known_component_ids=known,
    )


# Templates


def _check_template_author(actor: User) -> None:
    if actor.role not in (UserRole.Teacher, UserRole.Admin):
        raise Forbidden()


def _check_template_name(name: str) -> str:
    name = name.strip()
    if not (1 <= len(name) <= 100):
        raise ValidationError("template name must have between 1 and 100 characters", field="name")
    return name


def _require_template(template_id: FormulaTemplateID, session: Session) -> FormulaTemplate:
    result = template_storage.get(template_id, session=session)
    if result is None:
        raise NotFoundError(f"formula template {template_id} not found", template_id=template_id)
    return result


@di.inject
def create_template(
    *,
    actor: User,
    name: str,
    expression: str,
    grade_boundaries: t.Sequence[GradeBoundary] | None = None,
    output_scale: decimal.Decimal | None = None,
    rounding_rule: RoundingRule | None = None,
    decimal_places: int | None = None,
    pass_threshold: decimal.Decimal | None = None,
    description: str | None = None,
    category: TemplateCategory = TemplateCategory.Custom,
    session: Session = di.Provide["storage.persistent.session"],
    audit: AuditSink = di.Provide["grading.audit"],
    settings: FormulaSettings = di.Provide["config.grading.formula", di.as_(FormulaSettings)],
) -> FormulaTemplate:
    """Save a formula definition for reuse across offerings.

    The expression is checked for syntax and constant divisors only. Its
    component names are resolved against an offering when the template is
    applied.
    """
    _check_template_author(actor)
    name = _check_template_name(name)
    output_scale = output_scale if output_scale is not None else settings.default_output_scale
    grade_boundaries = grade_boundaries if grade_boundaries is not None else settings.default_boundaries
    if decimal_places is not None and not (0 <= decimal_places <= 4):
        raise ValidationError("decimal_places must lie within [0, 4]", field="decimal_places")
    _check_definition(
        expression,
        known=formula_engine.references(formula_engine.parse(expression)),
        grade_boundaries=grade_boundaries,
        output_scale=output_scale,
        pass_threshold=pass_threshold,
    )

    with session.begin():
        result = template_storage.create(
            name=name,
            created_by=actor.user_id,
            expression=expression,
            output_scale=output_scale,
            grade_boundaries=grade_boundaries,
            rounding_rule=rounding_rule or settings.default_rounding_rule,
            decimal_places=decimal_places if decimal_places is not None else settings.default_decimal_places,
            category=category,
            pass_threshold=pass_threshold,
            description=description,
            session=session,
        )
        audit.record(
            "template.created", actor, result.template_id, {"name": name, "expression": expression}, session=session
        )

    logger.info("created formula template", extra={"template_id": result.template_id, "template_name": name})
    return result


@di.inject
def get_template(
    template_id: FormulaTemplateID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> FormulaTemplate:
    with session.begin():
        return _require_template(template_id, session)


@di.inject
def list_templates(
    *,
    category: TemplateCategory | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[FormulaTemplate, ...]:
    with session.begin():
        return template_storage.find(category=category, session=session)


@di.inject
def delete_template(
    template_id: FormulaTemplateID,
    *,
    actor: User,
    session: Session = di.Provide["storage.persistent.session"],
    audit: AuditSink = di.Provide["grading.audit"],
) -> None:
    """Delete a template. Only its author or an admin may do so.

    Formulas already created from the template are unaffected.
    """
    with session.begin():
        current = _require_template(template_id, session)
        if actor.role is not UserRole.Admin and actor.user_id != current.created_by:
            raise Forbidden()
        template_storage.delete(template_id, session=session)
        audit.record("template.deleted", actor, template_id, {"name": current.name}, session=session)
    logger.info("deleted formula template", extra={"template_id": template_id})


@di.inject
def duplicate_template(
    template_id: FormulaTemplateID,
    *,
    actor: User,
    name: str | None = None,
    session: Session = di.Provide["storage.persistent.session"],
    audit: AuditSink = di.Provide["grading.audit"],
) -> FormulaTemplate:
    """Copy a template into a new custom template owned by ``actor``."""
    _check_template_author(actor)
    with session.begin():
        source = _require_template(template_id, session)
        new_name = _check_template_name(name if name is not None else f"{source.name} (copy)")
        result = template_storage.create(
            name=new_name,
            created_by=actor.user_id,
            expression=source.expression,
            output_scale=source.output_scale,
            grade_boundaries=source.grade_boundaries,
            rounding_rule=source.rounding_rule,
            decimal_places=source.decimal_places,
            category=TemplateCategory.Custom,
            pass_threshold=source.pass_threshold,
            description=source.description,
            session=session,
        )
        audit.record(
            "template.duplicated", actor, result.template_id, {"source_template_id": template_id}, session=session
        )

    logger.info(
        "duplicated formula template", extra={"template_id": result.template_id, "source_template_id": template_id}
    )
    return result


@di.inject
def apply_template(
    template_id: FormulaTemplateID,
    class_offering_id: ClassOfferingID,
    *,
    actor: User,
    activate: bool = False,
    session: Session = di.Provide["storage.persistent.session"],
    access: AccessPolicy = di.Provide["grading.access"],
    audit: AuditSink = di.Provide["grading.audit"],
) -> GradingFormula:
    """Create the offering's next formula version from a template.

    The new version goes through ``create_formula``, so the template's
    expression must name components the offering actually has.

    Raises:
        NotFoundError: the template or the offering does not exist
        UnknownReference: the expression names a component the offering lacks
    """
    with session.begin():
        template = _require_template(template_id, session)

    result = create_formula(
        class_offering_id,
        actor=actor,
        expression=template.expression,
        grade_boundaries=template.grade_boundaries,
        output_scale=template.output_scale,
        rounding_rule=template.rounding_rule,
        decimal_places=template.decimal_places,
        pass_threshold=template.pass_threshold,
        description=template.description or template.name,
        activate=activate,
        session=session,
        access=access,
        audit=audit,
    )
    logger.info(
        "applied formula template",
        extra={"template_id": template_id, "class_offering_id": class_offering_id, "formula_id": result.formula_id},
    )
    return result
