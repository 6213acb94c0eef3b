"""Read-only projections over committed final grades.

Summaries and distributions only count published or locked grades, and use
the displayed values, so an override counts the way students see it.
"""

from __future__ import annotations

import decimal
import statistics
import typing as t

from gradebook.core import di
from gradebook.errors import NotFoundError
from gradebook.model import AcademicPeriodID, ClassGradingSummary, ClassOfferingID, DistributionBucket, FinalGrade, \
    FinalGradeStatus, FormulaID, GradeDistribution, GradingFormula, StudentTranscript, TranscriptEntry, UserID
from gradebook.storage import final_grade as final_grade_storage
from gradebook.storage import formula as formula_storage
from gradebook.storage import offering as offering_storage
from gradebook.storage import Session

Cents = decimal.Decimal("0.01")


def _require_offering(class_offering_id: ClassOfferingID, session: Session) -> None:
    if offering_storage.get(class_offering_id, session=session) is None:
        raise NotFoundError(f"class offering {class_offering_id} not found", class_offering_id=class_offering_id)


def _formulas(grades: t.Iterable[FinalGrade], session: Session) -> dict[FormulaID, GradingFormula]:
    result = {}
    for formula_id in {g.formula_id for g in grades}:
        formula = formula_storage.get(formula_id, session=session)
        if formula is not None:
            result[formula_id] = formula
    return result


def _is_passing(grade: FinalGrade, formula: GradingFormula | None) -> bool | None:
    """Pass/fail on the displayed score; None when the formula sets no threshold."""
    if formula is None or formula.pass_threshold is None:
        return grade.is_passing
    return grade.display_score >= formula.pass_threshold


@di.inject
def get_class_summary(
    class_offering_id: ClassOfferingID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> ClassGradingSummary:
    """Count, mean, median, min and max over the offering's authoritative grades.

    Mean and median are rounded half-up to two places. Drafts only show up in
    the per-status counts.
    """
    with session.begin():
        _require_offering(class_offering_id, session)
        grades = final_grade_storage.find(class_offering_id=class_offering_id, session=session)
        authoritative = [g for g in grades if g.is_authoritative]
        formulas = _formulas(authoritative, session)

    by_status = {status: sum(1 for g in grades if g.status is status) for status in FinalGradeStatus}
    summary = ClassGradingSummary(
        class_offering_id=class_offering_id,
        count=len(authoritative),
        draft_count=by_status[FinalGradeStatus.Draft],
        published_count=by_status[FinalGradeStatus.Published],
        locked_count=by_status[FinalGradeStatus.Locked],
    )
    if not authoritative:
        return summary

    scores = [g.display_score for g in authoritative]
    passing = [_is_passing(g, formulas.get(g.formula_id)) for g in authoritative]
    return summary.model_copy(
        update={
            "mean": statistics.mean(scores).quantize(Cents, rounding=decimal.ROUND_HALF_UP),
            "median": statistics.median(scores).quantize(Cents, rounding=decimal.ROUND_HALF_UP),
            "min": min(scores),
            "max": max(scores),
            "passing_count": None if all(p is None for p in passing) else sum(1 for p in passing if p),
        }
    )


@di.inject
def get_grade_distribution(
    class_offering_id: ClassOfferingID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> GradeDistribution:
    """Authoritative grades counted per displayed letter.

    Buckets follow the active formula's boundary order, empty ones included;
    letters outside the boundaries (overrides such as "I") follow in order
    of first appearance.
    """
    with session.begin():
        offering = offering_storage.get(class_offering_id, session=session)
        if offering is None:
            raise NotFoundError(f"class offering {class_offering_id} not found", class_offering_id=class_offering_id)
        grades = [
            g
            for g in final_grade_storage.find(class_offering_id=class_offering_id, session=session)
            if g.is_authoritative
        ]
        formula = None
        if offering.active_formula_id is not None:
            formula = formula_storage.get(offering.active_formula_id, session=session)

    counts: dict[str, int] = {}
    if formula is not None:
        counts.update((b.letter, 0) for b in formula.grade_boundaries)
    for grade in grades:
        counts[grade.display_letter] = counts.get(grade.display_letter, 0) + 1
    return GradeDistribution(
        class_offering_id=class_offering_id,
        total=len(grades),
        buckets=[DistributionBucket(letter=letter, count=count) for letter, count in counts.items()],
    )


@di.inject
def get_student_transcript(
    student_id: UserID,
    *,
    academic_period_ids: t.Iterable[AcademicPeriodID] | None = None,
    include_drafts: bool = True,
    session: Session = di.Provide["storage.persistent.session"],
) -> StudentTranscript:
    """One entry per class offering, each carrying its lifecycle status so
    provisional (draft) grades can be told apart from final ones."""
    with session.begin():
        grades = final_grade_storage.find(student_id=student_id, session=session)
        offerings = {
            o.class_offering_id: o
            for o in offering_storage.find(
                class_offering_ids={g.class_offering_id for g in grades},
                academic_period_ids=academic_period_ids,
                session=session,
            )
        }
        formulas = _formulas(grades, session)

    entries = [
        TranscriptEntry(
            final_grade_id=g.final_grade_id,
            class_offering_id=g.class_offering_id,
            class_offering_name=offerings[g.class_offering_id].name,
            academic_period_id=offerings[g.class_offering_id].academic_period_id,
            score=g.display_score,
            letter=g.display_letter,
            is_passing=_is_passing(g, formulas.get(g.formula_id)),
            status=g.status,
            has_override=g.override is not None,
        )
        for g in grades
        if g.class_offering_id in offerings and (include_drafts or g.is_authoritative)
    ]
    entries.sort(key=lambda e: (e.academic_period_id or "", e.class_offering_name))
    return StudentTranscript(student_id=student_id, entries=entries)


@di.inject
def list_final_grades(
    *,
    class_offering_id: ClassOfferingID | None = None,
    student_ids: t.Iterable[UserID] | None = None,
    statuses: t.Iterable[FinalGradeStatus] | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[FinalGrade, ...]:
    with session.begin():
        return final_grade_storage.find(
            class_offering_id=class_offering_id, student_ids=student_ids, statuses=statuses, session=session
        )


@di.inject
def get_final_grade(
    student_id: UserID,
    class_offering_id: ClassOfferingID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> FinalGrade:
    with session.begin():
        result = final_grade_storage.get_for_student(student_id, class_offering_id, session=session)
    if result is None:
        raise NotFoundError(
            f"no final grade for {student_id} in {class_offering_id}",
            student_id=student_id,
            class_offering_id=class_offering_id,
        )
    return result
