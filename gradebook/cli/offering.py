"""CLI commands for class offerings, their rosters and recorded scores."""

from __future__ import annotations

import datetime
import decimal

from sqlalchemy.orm import Session

import gradebook.lib.cli as click
from gradebook.core import di
from gradebook.model import AcademicPeriodID, ClassOfferingID, ComponentID, UserID
from gradebook.storage import assessment as assessment_storage
from gradebook.storage import component as component_storage
from gradebook.storage import offering as offering_storage
from gradebook.storage import roster as roster_storage
from gradebook.storage import user as user_storage


@click.group("offering")
def offering():
    """Manage class offerings and their rosters."""
    ...


@offering.command("period")
@click.argument("name")
@click.option("--starts-on", type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
@click.option("--ends-on", type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
@di.inject
def offering_period(
    name: str,
    starts_on: datetime.datetime | None,
    ends_on: datetime.datetime | None,
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """Create an academic period."""
    with session.begin():
        period = offering_storage.create_period(
            name=name,
            starts_on=starts_on.date() if starts_on else None,
            ends_on=ends_on.date() if ends_on else None,
            session=session,
        )
    click.echo(f"Created academic period {period.name}: {period.academic_period_id}")


@offering.command("create")
@click.argument("name")
@click.option("--period", "academic_period_id", type=click.KeyParamType(AcademicPeriodID), default=None)
@click.option("--teacher", "teacher_ids", type=click.KeyParamType(UserID), multiple=True)
@di.inject
def offering_create(
    name: str,
    academic_period_id: AcademicPeriodID | None,
    teacher_ids: tuple[UserID, ...],
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """Create a class offering, optionally assigning its teachers."""
    with session.begin():
        if academic_period_id and offering_storage.get_period(academic_period_id, session=session) is None:
            click.echo(f"Error: Academic period '{academic_period_id}' not found.", err=True)
            raise SystemExit(1)
        created = offering_storage.create(name=name, academic_period_id=academic_period_id, session=session)
        for teacher_id in teacher_ids:
            if user_storage.get(teacher_id, session=session) is None:
                click.echo(f"Error: User '{teacher_id}' not found.", err=True)
                raise SystemExit(1)
            offering_storage.add_teacher(created.class_offering_id, teacher_id, session=session)
    click.echo(f"Created class offering {created.name}: {created.class_offering_id}")


@offering.command("enroll")
@click.argument("class_offering_id", type=click.KeyParamType(ClassOfferingID))
@click.argument("student_ids", type=click.KeyParamType(UserID), nargs=-1, required=True)
@di.inject
def offering_enroll(
    class_offering_id: ClassOfferingID,
    student_ids: tuple[UserID, ...],
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """Add students to the end of an offering's roster."""
    with session.begin():
        if offering_storage.get(class_offering_id, session=session) is None:
            click.echo(f"Error: Class offering '{class_offering_id}' not found.", err=True)
            raise SystemExit(1)
        enrolled = {e.student_id for e in roster_storage.find(class_offering_id, active_only=False, session=session)}
        for student_id in student_ids:
            if student_id in enrolled:
                click.echo(f"  {student_id} already enrolled")
                continue
            roster_storage.enroll(class_offering_id, student_id, session=session)
            click.echo(f"  {student_id} enrolled")


@offering.command("score")
@click.argument("student_id", type=click.KeyParamType(UserID))
@click.argument("component_id", type=click.KeyParamType(ComponentID))
@click.argument("score", type=click.DecimalParamType(), required=False)
@di.inject
def offering_score(
    student_id: UserID,
    component_id: ComponentID,
    score: decimal.Decimal | None,
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """Record a student's score on a component; leave SCORE out to record an ungraded entry."""
    with session.begin():
        component = component_storage.get(component_id, session=session)
        if component is None:
            click.echo(f"Error: Component '{component_id}' not found.", err=True)
            raise SystemExit(1)
        if score is not None and not 0 <= score <= component.max_score:
            click.echo(f"Error: score must be between 0 and {component.max_score}.", err=True)
            raise SystemExit(1)
        assessment_storage.record(student_id, component_id, score, session=session)
    click.echo(f"Recorded {score if score is not None else 'no score'} for {student_id} on {component.name}")
