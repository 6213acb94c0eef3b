"""Final grade lifecycle: draft -> published -> locked, and back by explicit request.

Batch transitions work row by row. Each row is written in its own
transaction with a conditional update on the status and revision it was read
at, so a batch can partly succeed; the ``TransitionReport`` says which rows
moved, which were already there, and which could not move and why.
"""

from __future__ import annotations

import decimal
import logging
import typing as t

from gradebook import formula as formula_engine
from gradebook.core import di
from gradebook.core.provider import TimestampProvider
from gradebook.errors import CannotOverrideLocked, CannotUnpublishLocked, LifecycleError, MustPublishBeforeLock, \
    NotFoundError, ScoreOutOfRange, StateConflict, ValidationError
from gradebook.model import ClassOfferingID, FinalGrade, FinalGradeID, FinalGradeStatus, GradeOverride, RowFailure, \
    TransitionReport, User, UserID
from gradebook.storage import final_grade as final_grade_storage
from gradebook.storage import formula as formula_storage
from gradebook.storage import Session

from .guard import authorize
from .provider import AccessPolicy, AuditSink

logger = logging.getLogger(__name__)

# the transition to apply to a row, None when the row is already in the target state
Plan = t.Callable[[FinalGrade], dict[str, t.Any] | None]


def _run_batch(
    action: str,
    class_offering_id: ClassOfferingID,
    student_ids: t.Sequence[UserID] | None,
    plan: Plan,
    *,
    actor: User,
    access: AccessPolicy,
    audit: AuditSink,
    session: Session,
    details: dict[str, t.Any] | None = None,
) -> TransitionReport:
    with session.begin():
        authorize(actor, class_offering_id, access=access, session=session)
        grades = final_grade_storage.find(class_offering_id=class_offering_id, student_ids=student_ids, session=session)

    report = TransitionReport(class_offering_id=class_offering_id)
    if student_ids is not None:
        present = {g.student_id for g in grades}
        for student_id in dict.fromkeys(student_ids):
            if student_id not in present:
                report.failed.append(
                    RowFailure(student_id=student_id, error=NotFoundError.code, message="student has no final grade")
                )

    for grade in grades:
        try:
            with session.begin():
                values = plan(grade)
                if values is None:
                    report.skipped.append(grade.student_id)
                    continue
                moved = final_grade_storage.transition(
                    grade.final_grade_id,
                    expected_status=grade.status,
                    expected_revision=grade.revision,
                    session=session,
                    **values,
                )
                if not moved:
                    raise StateConflict("final grade changed concurrently")
                if details is not None:
                    audit.record(
                        f"final_grade.{action}",
                        actor,
                        grade.final_grade_id,
                        {"class_offering_id": class_offering_id, "student_id": grade.student_id, **details},
                        session=session,
                    )
            report.affected.append(grade.student_id)
        except (LifecycleError, StateConflict) as e:
            report.failed.append(RowFailure(student_id=grade.student_id, error=e.code, message=e.message))

    with session.begin():
        audit.record(
            f"grades.{action}",
            actor,
            class_offering_id,
            {
                "affected": list(report.affected),
                "skipped": list(report.skipped),
                "failed": [f.student_id for f in report.failed],
                **(details or {}),
            },
            session=session,
        )
    logger.info(
        f"{action} final grades",
        extra={
            "class_offering_id": class_offering_id,
            "affected": len(report.affected),
            "skipped": len(report.skipped),
            "failed": len(report.failed),
        },
    )
    return report


@di.inject
def publish(
    class_offering_id: ClassOfferingID,
    *,
    actor: User,
    student_ids: t.Sequence[UserID] | None = None,
    session: Session = di.Provide["storage.persistent.session"],
    access: AccessPolicy = di.Provide["grading.access"],
    audit: AuditSink = di.Provide["grading.audit"],
    utcnow: TimestampProvider = di.Provide["utcnow"],
) -> TransitionReport:
    """Make draft grades visible. Published and locked rows are skipped."""
    now = utcnow()

    def plan(grade: FinalGrade) -> dict[str, t.Any] | None:
        if grade.status is not FinalGradeStatus.Draft:
            return None
        return {"status": FinalGradeStatus.Published, "published_at": now, "published_by": actor.user_id}

    return _run_batch(
        "published", class_offering_id, student_ids, plan, actor=actor, access=access, audit=audit, session=session
    )


@di.inject
def unpublish(
    class_offering_id: ClassOfferingID,
    *,
    actor: User,
    student_ids: t.Sequence[UserID] | None = None,
    session: Session = di.Provide["storage.persistent.session"],
    access: AccessPolicy = di.Provide["grading.access"],
    audit: AuditSink = di.Provide["grading.audit"],
) -> TransitionReport:
    """Return published grades to draft. Locked rows fail with CannotUnpublishLocked."""

    def plan(grade: FinalGrade) -> dict[str, t.Any] | None:
        match grade.status:
            case FinalGradeStatus.Locked:
                raise CannotUnpublishLocked("final grade is locked; unlock it first")
            case FinalGradeStatus.Draft:
                return None
        return {"status": FinalGradeStatus.Draft, "published_at": None, "published_by": None}

    return _run_batch(
        "unpublished", class_offering_id, student_ids, plan, actor=actor, access=access, audit=audit, session=session
    )


@di.inject
def lock(
    class_offering_id: ClassOfferingID,
    *,
    actor: User,
    student_ids: t.Sequence[UserID] | None = None,
    session: Session = di.Provide["storage.persistent.session"],
    access: AccessPolicy = di.Provide["grading.access"],
    audit: AuditSink = di.Provide["grading.audit"],
    utcnow: TimestampProvider = di.Provide["utcnow"],
) -> TransitionReport:
    """Freeze published grades. Draft rows fail with MustPublishBeforeLock."""
    now = utcnow()

    def plan(grade: FinalGrade) -> dict[str, t.Any] | None:
        match grade.status:
            case FinalGradeStatus.Draft:
                raise MustPublishBeforeLock("final grade must be published before it is locked")
            case FinalGradeStatus.Locked:
                return None
        return {"status": FinalGradeStatus.Locked, "locked_at": now, "locked_by": actor.user_id}

    return _run_batch(
        "locked", class_offering_id, student_ids, plan, actor=actor, access=access, audit=audit, session=session
    )


@di.inject
def unlock(
    class_offering_id: ClassOfferingID,
    *,
    actor: User,
    reason: str,
    student_ids: t.Sequence[UserID] | None = None,
    session: Session = di.Provide["storage.persistent.session"],
    access: AccessPolicy = di.Provide["grading.access"],
    audit: AuditSink = di.Provide["grading.audit"],
) -> TransitionReport:
    """Return locked grades to published. Every unlocked row is audited with the reason."""
    if not reason or not reason.strip():
        raise ValidationError("a reason is required to unlock final grades", field="reason")

    def plan(grade: FinalGrade) -> dict[str, t.Any] | None:
        if grade.status is not FinalGradeStatus.Locked:
            return None
        return {"status": FinalGradeStatus.Published, "locked_at": None, "locked_by": None}

    return _run_batch(
        "unlocked",
        class_offering_id,
        student_ids,
        plan,
        actor=actor,
        access=access,
        audit=audit,
        session=session,
        details={"reason": reason.strip()},
    )


def _require(final_grade_id: FinalGradeID, session: Session) -> FinalGrade:
    result = final_grade_storage.get(final_grade_id, session=session)
    if result is None:
        raise NotFoundError(f"final grade {final_grade_id} not found", final_grade_id=final_grade_id)
    return result


def _check_revision(grade: FinalGrade, expected_revision: int | None) -> None:
    if expected_revision is not None and expected_revision != grade.revision:
        raise StateConflict(
            f"final grade is at revision {grade.revision}, not {expected_revision}",
            final_grade_id=grade.final_grade_id,
        )


@di.inject
def override_final_grade(
    final_grade_id: FinalGradeID,
    *,
    actor: User,
    reason: str,
    score: decimal.Decimal | None = None,
    letter: str | None = None,
    expected_revision: int | None = None,
    session: Session = di.Provide["storage.persistent.session"],
    access: AccessPolicy = di.Provide["grading.access"],
    audit: AuditSink = di.Provide["grading.audit"],
    utcnow: TimestampProvider = di.Provide["utcnow"],
) -> FinalGrade:
    """Replace the displayed score and/or letter of a draft or published grade.

    The computed values stay on the row. A score without a letter takes its
    letter from the grade's formula boundaries.

    Raises:
        CannotOverrideLocked: the grade is locked
        StateConflict: the grade changed since ``expected_revision``
    """
    if not reason or not reason.strip():
        raise ValidationError("a reason is required to override a final grade", field="reason")
    if score is None and letter is None:
        raise ValidationError("an override must set a score or a letter", field="override")
    if letter is not None and not letter.strip():
        raise ValidationError("letter may not be empty", field="letter")

    with session.begin():
        grade = _require(final_grade_id, session)
        authorize(actor, grade.class_offering_id, access=access, session=session)
        if grade.status is FinalGradeStatus.Locked:
            raise CannotOverrideLocked("final grade is locked; unlock it first")
        _check_revision(grade, expected_revision)

        if score is not None and letter is None:
            formula = formula_storage.get(grade.formula_id, session=session)
            if formula is None:
                raise NotFoundError(f"grading formula {grade.formula_id} not found")
            try:
                letter = formula_engine.map_to_letter(score, formula.grade_boundaries, formula.output_scale)
            except ScoreOutOfRange as e:
                raise ValidationError(e.message, field="score") from e

        override = GradeOverride(
            reason=reason.strip(), score=score, letter=letter, applied_by=actor.user_id, applied_at=utcnow()
        )
        if not final_grade_storage.set_override(
            final_grade_id,
            override,
            expected_status=grade.status,
            expected_revision=grade.revision,
            session=session,
        ):
            raise StateConflict("final grade changed concurrently", final_grade_id=final_grade_id)
        audit.record(
            "final_grade.overridden",
            actor,
            final_grade_id,
            {
                "class_offering_id": grade.class_offering_id,
                "student_id": grade.student_id,
                "reason": override.reason,
                "score": str(score) if score is not None else None,
                "letter": letter,
                "raw_score": str(grade.raw_score),
                "computed_letter": grade.letter,
            },
            session=session,
        )
        result = _require(final_grade_id, session)

    logger.info(
        "overrode final grade",
        extra={"final_grade_id": final_grade_id, "student_id": grade.student_id, "actor_id": actor.user_id},
    )
    return result


@di.inject
def remove_grade_override(
    final_grade_id: FinalGradeID,
    *,
    actor: User,
    reason: str | None = None,
    expected_revision: int | None = None,
    session: Session = di.Provide["storage.persistent.session"],
    access: AccessPolicy = di.Provide["grading.access"],
    audit: AuditSink = di.Provide["grading.audit"],
) -> FinalGrade:
    """Drop the override so the computed score and letter show again.

    Raises:
        CannotOverrideLocked: the grade is locked
        StateConflict: the grade changed since ``expected_revision``
    """
    with session.begin():
        grade = _require(final_grade_id, session)
        authorize(actor, grade.class_offering_id, access=access, session=session)
        if grade.status is FinalGradeStatus.Locked:
            raise CannotOverrideLocked("final grade is locked; unlock it first")
        _check_revision(grade, expected_revision)
        if grade.override is None:
            return grade

        if not final_grade_storage.set_override(
            final_grade_id,
            None,
            expected_status=grade.status,
            expected_revision=grade.revision,
            session=session,
        ):
            raise StateConflict("final grade changed concurrently", final_grade_id=final_grade_id)
        audit.record(
            "final_grade.override_removed",
            actor,
            final_grade_id,
            {
                "class_offering_id": grade.class_offering_id,
                "student_id": grade.student_id,
                "reason": reason,
                "removed": grade.override.model_dump(mode="json"),
            },
            session=session,
        )
        result = _require(final_grade_id, session)

    logger.info("removed final grade override", extra={"final_grade_id": final_grade_id, "actor_id": actor.user_id})
    return result
