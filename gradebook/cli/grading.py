"""CLI commands for running grade computations and moving grades through their lifecycle."""

from __future__ import annotations

import typing as t

from sqlalchemy.orm import Session

import gradebook.lib.cli as click
from gradebook.core import di
from gradebook.errors import GradingError
from gradebook.grading import lifecycle, orchestrator, reporting
from gradebook.model import ClassOfferingID, FormulaID, StudentOutcome, TransitionReport, User, UserID
from gradebook.storage import user as user_storage


def _actor(actor_id: UserID, session: Session) -> User:
    with session.begin():
        actor = user_storage.get(actor_id, session=session)
    if actor is None:
        raise click.ClickException(f"user '{actor_id}' not found")
    return actor


def _echo_report(report: TransitionReport) -> None:
    click.echo(f"affected: {len(report.affected)}  skipped: {len(report.skipped)}  failed: {len(report.failed)}")
    for failure in report.failed:
        click.echo(click.style(f"  {failure.student_id}: {failure.error}: {failure.message}", fg="yellow"))


def _run(fn: t.Callable[[], TransitionReport]) -> None:
    try:
        report = fn()
    except GradingError as e:
        raise click.ClickException(f"{e.code}: {e.message}") from e
    _echo_report(report)


actor_option = click.option(
    "--actor", "actor_id", type=click.KeyParamType(UserID), required=True, help="User the action is taken as"
)
students_option = click.option(
    "--student", "student_ids", type=click.KeyParamType(UserID), multiple=True, help="Limit to these students"
)


@click.group("grading")
def grading():
    """Compute, publish and lock final grades."""
    ...


@grading.command("compute")
@click.argument("class_offering_id", type=click.KeyParamType(ClassOfferingID))
@click.option("--formula", "formula_id", type=click.KeyParamType(FormulaID), default=None)
@actor_option
@students_option
@di.inject
def grading_compute(
    class_offering_id: ClassOfferingID,
    formula_id: FormulaID | None,
    actor_id: UserID,
    student_ids: tuple[UserID, ...],
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """Compute draft final grades for CLASS_OFFERING_ID."""
    actor = _actor(actor_id, session)
    try:
        computation = orchestrator.compute_grades(
            class_offering_id,
            actor=actor,
            formula_id=formula_id,
            student_ids=list(student_ids) or None,
            session=session,
        )
    except GradingError as e:
        raise click.ClickException(f"{e.code}: {e.message}") from e

    click.echo(
        f"computation {computation.computation_id} {computation.status.value}: "
        f"{computation.succeeded_count} succeeded, {computation.failed_count} failed"
    )
    for result in computation.results:
        if result.outcome is StudentOutcome.Failed:
            click.echo(click.style(f"  {result.student_id}: {result.error}: {result.message}", fg="yellow"))


@grading.command("publish")
@click.argument("class_offering_id", type=click.KeyParamType(ClassOfferingID))
@actor_option
@students_option
@di.inject
def grading_publish(
    class_offering_id: ClassOfferingID,
    actor_id: UserID,
    student_ids: tuple[UserID, ...],
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """Publish draft final grades."""
    actor = _actor(actor_id, session)
    _run(lambda: lifecycle.publish(class_offering_id, actor=actor, student_ids=student_ids or None, session=session))


@grading.command("lock")
@click.argument("class_offering_id", type=click.KeyParamType(ClassOfferingID))
@actor_option
@students_option
@di.inject
def grading_lock(
    class_offering_id: ClassOfferingID,
    actor_id: UserID,
    student_ids: tuple[UserID, ...],
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """Lock published final grades."""
    actor = _actor(actor_id, session)
    _run(lambda: lifecycle.lock(class_offering_id, actor=actor, student_ids=student_ids or None, session=session))


@grading.command("unlock")
@click.argument("class_offering_id", type=click.KeyParamType(ClassOfferingID))
@click.option("--reason", required=True, help="Recorded in the audit trail of every unlocked grade")
@actor_option
@students_option
@di.inject
def grading_unlock(
    class_offering_id: ClassOfferingID,
    reason: str,
    actor_id: UserID,
    student_ids: tuple[UserID, ...],
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """Return locked final grades to published."""
    actor = _actor(actor_id, session)
    _run(
        lambda: lifecycle.unlock(
            class_offering_id, actor=actor, reason=reason, student_ids=student_ids or None, session=session
        )
    )


@grading.command("summary")
@click.argument("class_offering_id", type=click.KeyParamType(ClassOfferingID))
@di.inject
def grading_summary(
    class_offering_id: ClassOfferingID,
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """Print statistics and the letter distribution of published grades."""
    try:
        summary = reporting.get_class_summary(class_offering_id, session=session)
        distribution = reporting.get_grade_distribution(class_offering_id, session=session)
    except GradingError as e:
        raise click.ClickException(f"{e.code}: {e.message}") from e

    click.echo(
        f"grades: {summary.count} "
        f"(draft {summary.draft_count}, published {summary.published_count}, locked {summary.locked_count})"
    )
    if summary.count:
        click.echo(f"mean {summary.mean}  median {summary.median}  min {summary.min}  max {summary.max}")
        if summary.passing_count is not None:
            click.echo(f"passing: {summary.passing_count}/{summary.count}")
    for bucket in distribution.buckets:
        click.echo(f"  {bucket.letter:<4} {bucket.count:>4} {'#' * bucket.count}")
