"""Grade computation runs.

A run takes the offering's claim, grades every student on the roster in its
own transaction, records the per-student outcomes on the computation and
releases the claim. One student failing to grade never fails the run; an
unexpected error does, and is re-raised after the run is marked failed.
"""

from __future__ import annotations

import datetime
import decimal
import logging
import typing as t

from gradebook import formula as formula_engine
from gradebook.core import di
from gradebook.core.config import ComputationSettings, FormulaSettings
from gradebook.core.provider import TimestampProvider
from gradebook.errors import ComputationInProgress, FinalGradeLocked, IncompleteGrading, LifecycleError, \
    NoActiveFormula, NotFoundError, OverridePresent, StateConflict, StudentGradingError, UnknownReference
from gradebook.model import ClassOffering, ClassOfferingID, ComputationID, ComputationStatus, FinalGradeStatus, \
    FormulaID, GradeBoundary, GradeComputation, GradePreview, GradingComponent, GradingFormula, RoundingRule, \
    StudentOutcome, StudentResult, User, UserID
from gradebook.storage import component as component_storage
from gradebook.storage import computation as computation_storage
from gradebook.storage import final_grade as final_grade_storage
from gradebook.storage import formula as formula_storage
from gradebook.storage import offering as offering_storage
from gradebook.storage import Session

from .guard import authorize
from .provider import AccessPolicy, AssessmentStore, AuditSink, RosterProvider

logger = logging.getLogger(__name__)


def _resolve_formula(offering: ClassOffering, formula_id: FormulaID | None, session: Session) -> GradingFormula:
    if formula_id is None:
        if offering.active_formula_id is None:
            raise NoActiveFormula(f"class offering {offering.class_offering_id} has no active formula")
        formula_id = offering.active_formula_id
    result = formula_storage.get(formula_id, session=session)
    if result is None or result.class_offering_id != offering.class_offering_id:
        raise NotFoundError(f"grading formula {formula_id} not found", formula_id=formula_id)
    return result


def _claim(
    class_offering_id: ClassOfferingID,
    computation_id: ComputationID,
    *,
    now: datetime.datetime,
    stale_after: datetime.timedelta,
    session: Session,
) -> None:
    """Take the offering's claim, superseding a holder that went stale.

    Raises:
        ComputationInProgress: a live computation holds the claim
    """
    if offering_storage.claim(class_offering_id, computation_id, session=session):
        return

    offering = offering_storage.get(class_offering_id, session=session)
    holder_id = offering.running_computation_id if offering is not None else None
    if holder_id is not None:
        holder = computation_storage.get(holder_id, session=session)
        if holder is not None and holder.status is ComputationStatus.Running:
            if now - holder.started_at < stale_after:
                raise ComputationInProgress(
                    f"computation {holder_id} is already running for {class_offering_id}", computation_id=holder_id
                )
            computation_storage.finish(
                holder_id,
                status=ComputationStatus.Failed,
                completed_at=now,
                results=holder.results,
                error_message="abandoned: superseded by a later computation",
                session=session,
            )
            logger.warning(
                "superseding stale computation",
                extra={
                    "class_offering_id": class_offering_id,
                    "computation_id": holder_id,
                    "started_at": holder.started_at,
                },
            )

    if not offering_storage.claim(class_offering_id, computation_id, expected=holder_id, session=session):
        raise ComputationInProgress(f"another computation claimed {class_offering_id}")


class Scheme(t.TypedDict):
    """How a formula's value becomes a grade: everything but the expression."""

    boundaries: list[GradeBoundary]
    output_scale: decimal.Decimal
    rounding_rule: RoundingRule
    decimal_places: int
    pass_threshold: decimal.Decimal | None


def _scheme(formula: GradingFormula) -> Scheme:
    return Scheme(
        boundaries=formula.grade_boundaries,
        output_scale=formula.output_scale,
        rounding_rule=formula.rounding_rule,
        decimal_places=formula.decimal_places,
        pass_threshold=formula.pass_threshold,
    )


def _default_scheme(settings: FormulaSettings) -> Scheme:
    return Scheme(
        boundaries=settings.default_boundaries,
        output_scale=settings.default_output_scale,
        rounding_rule=settings.default_rounding_rule,
        decimal_places=settings.default_decimal_places,
        pass_threshold=None,
    )


def _breakdown(
    expression: str,
    scheme: Scheme,
    components: t.Mapping[str, GradingComponent],
    result: formula_engine.Preview,
    *,
    version: int | None = None,
) -> dict[str, t.Any]:
    """Everything needed to re-derive ``raw_score``: inputs, weights, expression and rounding."""
    breakdown = result.breakdown(expression)
    breakdown["formula_version"] = version
    breakdown["rounding_rule"] = scheme["rounding_rule"].value
    breakdown["decimal_places"] = scheme["decimal_places"]
    breakdown["weights"] = {
        name: {
            "component_id": components[name].component_id,
            "weighting": components[name].weighting.value,
            "weight": str(components[name].weight),
            "max_score": str(components[name].max_score),
        }
        for name in sorted(result.component_scores)
    }
    return breakdown


def _score(
    compiled: formula_engine.ValidationResult,
    scores: t.Mapping[str, decimal.Decimal | None],
    scheme: Scheme,
) -> formula_engine.Preview:
    missing = {name for name in compiled.references if scores.get(name) is None}
    if missing:
        raise IncompleteGrading(missing)
    return formula_engine.score(compiled.tree, scores, **scheme)


def _grade_student(
    student_id: UserID,
    *,
    computation: GradeComputation,
    formula: GradingFormula,
    compiled: formula_engine.ValidationResult,
    components: t.Mapping[str, GradingComponent],
    assessments: AssessmentStore,
    session: Session,
) -> StudentResult:
    """Grade one student in a transaction of its own; per-student failures are returned, not raised."""
    try:
        with session.begin():
            # a lifecycle block outranks missing scores
            existing = final_grade_storage.get_for_student(student_id, computation.class_offering_id, session=session)
            if existing is not None and existing.status is not FinalGradeStatus.Draft:
                raise FinalGradeLocked(f"final grade is {existing.status.value}; unpublish it to recompute")
            if existing is not None and existing.override is not None:
                raise OverridePresent("final grade carries an override; remove it to recompute")

            names = sorted(compiled.references)
            recorded = assessments.get_component_scores(
                student_id,
                computation.class_offering_id,
                [components[name].component_id for name in names],
                session=session,
            )
            scheme = _scheme(formula)
            result = _score(compiled, {name: recorded.get(components[name].component_id) for name in names}, scheme)
            values: dict[str, t.Any] = {
                "computation_id": computation.computation_id,
                "formula_id": formula.formula_id,
                "raw_score": result.raw_score,
                "letter": result.letter,
                "is_passing": result.is_passing,
                "component_breakdown": _breakdown(
                    formula.expression, scheme, components, result, version=formula.version
                ),
            }

            if existing is None:
                final_grade_storage.create(
                    student_id=student_id, class_offering_id=computation.class_offering_id, session=session, **values
                )
            elif not final_grade_storage.replace_draft(
                existing.final_grade_id, expected_revision=existing.revision, session=session, **values
            ):
                raise StateConflict("final grade changed during computation")
    except (StudentGradingError, LifecycleError, StateConflict) as e:
        logger.info(
            "could not grade student",
            extra={"computation_id": computation.computation_id, "student_id": student_id, "error": e.code},
        )
        return StudentResult(student_id=student_id, outcome=StudentOutcome.Failed, error=e.code, message=e.message)

    return StudentResult(
        student_id=student_id, outcome=StudentOutcome.Succeeded, raw_score=result.raw_score, letter=result.letter
    )


@di.inject
def compute_grades(
    class_offering_id: ClassOfferingID,
    *,
    actor: User,
    formula_id: FormulaID | None = None,
    student_ids: t.Sequence[UserID] | None = None,
    session: Session = di.Provide["storage.persistent.session"],
    assessments: AssessmentStore = di.Provide["grading.assessments"],
    roster: RosterProvider = di.Provide["grading.roster"],
    access: AccessPolicy = di.Provide["grading.access"],
    audit: AuditSink = di.Provide["grading.audit"],
    settings: ComputationSettings = di.Provide["config.grading.computation", di.as_(ComputationSettings)],
    utcnow: TimestampProvider = di.Provide["utcnow"],
) -> GradeComputation:
    """Compute draft final grades for the offering's roster, or for ``student_ids``.

    Raises:
        Forbidden: the actor may not manage grades for the offering
        NoActiveFormula: no ``formula_id`` given and the offering has no active formula
        ValidationError: the formula no longer matches the offering's components
        ComputationInProgress: another live computation holds the offering
    """
    with session.begin():
        offering = authorize(actor, class_offering_id, access=access, session=session)
        formula = _resolve_formula(offering, formula_id, session)
        components = {c.name: c for c in component_storage.find(class_offering_id=class_offering_id, session=session)}
        compiled = formula_engine.validate(formula.expression, components)
        formula_engine.check_boundaries(formula.grade_boundaries, formula.output_scale)

        computation = computation_storage.create(
            class_offering_id=class_offering_id,
            formula_id=formula.formula_id,
            triggered_by=actor.user_id,
            started_at=utcnow(),
            session=session,
        )
        _claim(
            class_offering_id,
            computation.computation_id,
            now=computation.started_at,
            stale_after=datetime.timedelta(seconds=settings.stale_after_seconds),
            session=session,
        )
        enrolled = roster.get_students_for_offering(class_offering_id, session=session)

    logger.info(
        "started grade computation",
        extra={
            "computation_id": computation.computation_id,
            "class_offering_id": class_offering_id,
            "formula_id": formula.formula_id,
        },
    )

    results: list[StudentResult] = []
    try:
        if student_ids is None:
            targets = list(enrolled)
        else:
            targets = list(dict.fromkeys(student_ids))
        for student_id in targets:
            if student_id not in enrolled:
                results.append(
                    StudentResult(
                        student_id=student_id,
                        outcome=StudentOutcome.Failed,
                        error=NotFoundError.code,
                        message="student is not enrolled in the class offering",
                    )
                )
                continue
            results.append(
                _grade_student(
                    student_id,
                    computation=computation,
                    formula=formula,
                    compiled=compiled,
                    components=components,
                    assessments=assessments,
                    session=session,
                )
            )

        succeeded = sum(1 for r in results if r.outcome is StudentOutcome.Succeeded)
        with session.begin():
            computation_storage.finish(
                computation.computation_id,
                status=ComputationStatus.Completed,
                completed_at=utcnow(),
                results=results,
                succeeded_count=succeeded,
                failed_count=len(results) - succeeded,
                session=session,
            )
            offering_storage.release(class_offering_id, computation.computation_id, session=session)
            audit.record(
                "grades.computed",
                actor,
                computation.computation_id,
                {
                    "class_offering_id": class_offering_id,
                    "formula_id": formula.formula_id,
                    "succeeded": succeeded,
                    "failed": len(results) - succeeded,
                },
                session=session,
            )
            finished = computation_storage.get(computation.computation_id, session=session)
    except Exception as e:
        logger.exception(
            "grade computation failed",
            extra={"computation_id": computation.computation_id, "class_offering_id": class_offering_id},
        )
        with session.begin():
            computation_storage.finish(
                computation.computation_id,
                status=ComputationStatus.Failed,
                completed_at=utcnow(),
                results=results,
                succeeded_count=sum(1 for r in results if r.outcome is StudentOutcome.Succeeded),
                failed_count=sum(1 for r in results if r.outcome is StudentOutcome.Failed),
                error_message=str(e) or type(e).__name__,
                session=session,
            )
            offering_storage.release(class_offering_id, computation.computation_id, session=session)
        raise

    assert finished is not None
    logger.info(
        "finished grade computation",
        extra={
            "computation_id": finished.computation_id,
            "succeeded": finished.succeeded_count,
            "failed": finished.failed_count,
        },
    )
    return finished


@di.inject
def preview_grade(
    class_offering_id: ClassOfferingID,
    student_id: UserID,
    *,
    actor: User,
    formula_override: str | None = None,
    component_overrides: t.Mapping[str, decimal.Decimal] | None = None,
    session: Session = di.Provide["storage.persistent.session"],
    assessments: AssessmentStore = di.Provide["grading.assessments"],
    roster: RosterProvider = di.Provide["grading.roster"],
    access: AccessPolicy = di.Provide["grading.access"],
    settings: FormulaSettings = di.Provide["config.grading.formula", di.as_(FormulaSettings)],
) -> GradePreview:
    """What the student would get, using recorded scores patched by ``component_overrides``.

    ``formula_override`` replaces the active formula's expression; its
    boundaries, scale and rounding still apply, or the configured defaults
    when the offering has no active formula. Nothing is written.

    Raises:
        NotFoundError: the student is not enrolled in the offering
        IncompleteGrading: a referenced score is neither recorded nor overridden
    """
    component_overrides = dict(component_overrides or {})
    with session.begin():
        offering = authorize(actor, class_offering_id, access=access, session=session)
        if student_id not in roster.get_students_for_offering(class_offering_id, session=session):
            raise NotFoundError(
                f"student {student_id} is not enrolled in {class_offering_id}", student_id=student_id
            )
        components = {c.name: c for c in component_storage.find(class_offering_id=class_offering_id, session=session)}

        formula: GradingFormula | None = None
        if offering.active_formula_id is not None:
            formula = _resolve_formula(offering, None, session)
            expression, scheme = formula.expression, _scheme(formula)
        elif formula_override is not None:
            expression, scheme = formula_override, _default_scheme(settings)
        else:
            raise NoActiveFormula(f"class offering {class_offering_id} has no active formula")

        if formula_override is not None:
            expression = formula_override
        compiled = formula_engine.validate(expression, components)
        unknown = set(component_overrides) - set(components)
        if unknown:
            raise UnknownReference(unknown)

        names = sorted(compiled.references)
        recorded = assessments.get_component_scores(
            student_id, class_offering_id, [components[name].component_id for name in names], session=session
        )

    scores: dict[str, decimal.Decimal | None] = {name: recorded.get(components[name].component_id) for name in names}
    scores.update((name, value) for name, value in component_overrides.items() if name in compiled.references)
    result = _score(compiled, scores, scheme)
    return GradePreview(
        student_id=student_id,
        class_offering_id=class_offering_id,
        formula_id=formula.formula_id if formula is not None else None,
        expression=expression,
        raw_score=result.raw_score,
        letter=result.letter,
        is_passing=result.is_passing,
        component_breakdown=_breakdown(
            expression, scheme, components, result, version=formula.version if formula is not None else None
        ),
    )


@di.inject
def get_computation(
    computation_id: ComputationID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> GradeComputation:
    with session.begin():
        result = computation_storage.get(computation_id, session=session)
    if result is None:
        raise NotFoundError(f"computation {computation_id} not found", computation_id=computation_id)
    return result


@di.inject
def list_computations(
    class_offering_id: ClassOfferingID,
    *,
    status: ComputationStatus | None = None,
    limit: int | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[GradeComputation, ...]:
    with session.begin():
        return computation_storage.find(
            class_offering_id=class_offering_id, status=status, limit=limit, session=session
        )
