"""Tests for gradebook.grading.orchestrator."""

from __future__ import annotations

import datetime
import decimal
import typing as t

import pytest
from sqlalchemy.orm import Session

from gradebook import formula as formula_engine
from gradebook.errors import ComputationInProgress, Forbidden, IncompleteGrading, NoActiveFormula, NotFoundError, \
    UnknownReference
from gradebook.grading import catalog, lifecycle, orchestrator, reporting
from gradebook.model import ClassOffering, ClassOfferingID, ComponentID, ComputationID, ComputationStatus, \
    FinalGradeStatus, GradingComponent, GradingFormula, RoundingRule, User, UserID
from gradebook.storage import computation as computation_storage
from gradebook.storage import offering as offering_storage

if t.TYPE_CHECKING:
    from conftest import GradedOffering

D = decimal.Decimal


def _hold_claim(
    db_session: Session, graded_offering: GradedOffering, teacher: User, started_at: datetime.datetime
) -> ComputationID:
    """Leave a running computation holding the offering's claim, as a crashed run would."""
    with db_session.begin():
        computation = computation_storage.create(
            class_offering_id=graded_offering.offering.class_offering_id,
            formula_id=graded_offering.formula.formula_id,
            triggered_by=teacher.user_id,
            started_at=started_at,
            session=db_session,
        )
        assert offering_storage.claim(
            graded_offering.offering.class_offering_id, computation.computation_id, session=db_session
        )
    return computation.computation_id


class _UnavailableAssessments(object):
    def get_component_scores(
        self,
        student_id: UserID,
        class_offering_id: ClassOfferingID,
        component_ids: t.Sequence[ComponentID],
        *,
        session: Session,
    ) -> dict[ComponentID, decimal.Decimal | None]:
        raise RuntimeError("assessment store unavailable")


class TestComputeGrades(object):
    """Tests for orchestrator.compute_grades()."""

    def test_computes_drafts(self, db_session: Session, graded_offering: GradedOffering, teacher: User) -> None:
        offering_id = graded_offering.offering.class_offering_id
        computation = orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)

        assert computation.status is ComputationStatus.Completed
        assert computation.formula_id == graded_offering.formula.formula_id
        assert (computation.student_count, computation.succeeded_count, computation.failed_count) == (3, 3, 0)
        assert computation.completed_at is not None

        listed = reporting.list_final_grades(class_offering_id=offering_id, session=db_session)
        grades = {g.student_id: g for g in listed}
        expected = [(D("92.5"), "A", True), (D("87"), "B", True), (D("58"), "F", False)]
        for student, (score, letter, passing) in zip(graded_offering.students, expected):
            grade = grades[student.user_id]
            assert grade.raw_score == score
            assert grade.letter == letter
            assert grade.is_passing is passing
            assert grade.status is FinalGradeStatus.Draft
            assert grade.computation_id == computation.computation_id

    def test_breakdown_reproduces_score(
        self, db_session: Session, graded_offering: GradedOffering, teacher: User
    ) -> None:
        offering_id = graded_offering.offering.class_offering_id
        orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)
        grade = reporting.get_final_grade(graded_offering.students[0].user_id, offering_id, session=db_session)

        breakdown = grade.component_breakdown
        assert {k: D(v) for k, v in breakdown["components"].items()} == {"exams": D(95), "homework": D("88.75")}
        assert breakdown["expression"] == "exams * 0.6 + homework * 0.4"
        assert breakdown["raw_score"] == "92.50"
        assert breakdown["rounding_rule"] == "half_up"
        assert breakdown["formula_version"] == graded_offering.formula.version
        assert D(breakdown["weights"]["exams"]["weight"]) == D("0.6")

    def test_claim_released(self, db_session: Session, graded_offering: GradedOffering, teacher: User) -> None:
        offering_id = graded_offering.offering.class_offering_id
        orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)
        with db_session.begin():
            current = offering_storage.get(offering_id, session=db_session)
        assert current is not None
        assert current.running_computation_id is None

    def test_recompute_replaces_drafts(
        self,
        db_session: Session,
        graded_offering: GradedOffering,
        record_scores: t.Callable[..., None],
        teacher: User,
    ) -> None:
        offering_id = graded_offering.offering.class_offering_id
        student = graded_offering.students[2]
        orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)
        record_scores(student.user_id, {graded_offering.components["exams"].component_id: "75"})
        second = orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)

        grade = reporting.get_final_grade(student.user_id, offering_id, session=db_session)
        assert grade.raw_score == D("70")
        assert grade.letter == "C"
        assert grade.revision == 2
        assert grade.computation_id == second.computation_id

    def test_incomplete_grading(
        self,
        db_session: Session,
        graded_offering: GradedOffering,
        record_scores: t.Callable[..., None],
        teacher: User,
    ) -> None:
        """A missing score fails that student only."""
        offering_id = graded_offering.offering.class_offering_id
        student = graded_offering.students[1]
        record_scores(student.user_id, {graded_offering.components["homework"].component_id: None})

        computation = orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)

        assert computation.status is ComputationStatus.Completed
        assert (computation.succeeded_count, computation.failed_count) == (2, 1)
        [failure] = computation.failures
        assert failure.student_id == student.user_id
        assert failure.error == "incomplete_grading"
        assert "homework" in (failure.message or "")

    def test_locked_grade_not_recomputed(
        self, db_session: Session, graded_offering: GradedOffering, teacher: User
    ) -> None:
        offering_id = graded_offering.offering.class_offering_id
        orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)
        lifecycle.publish(offering_id, actor=teacher, session=db_session)
        lifecycle.lock(offering_id, actor=teacher, session=db_session)

        computation = orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)

        assert computation.succeeded_count == 0
        assert {r.error for r in computation.results} == {"final_grade_locked"}
        for grade in reporting.list_final_grades(class_offering_id=offering_id, session=db_session):
            assert grade.status is FinalGradeStatus.Locked

    def test_override_blocks_recompute(
        self, db_session: Session, graded_offering: GradedOffering, teacher: User
    ) -> None:
        offering_id = graded_offering.offering.class_offering_id
        student = graded_offering.students[0]
        orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)
        grade = reporting.get_final_grade(student.user_id, offering_id, session=db_session)
        lifecycle.override_final_grade(
            grade.final_grade_id, actor=teacher, reason="extra credit", letter="A+", session=db_session
        )

        computation = orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)

        [failure] = computation.failures
        assert failure.student_id == student.user_id
        assert failure.error == "override_present"
        assert computation.succeeded_count == 2

    def test_selected_students(self, db_session: Session, graded_offering: GradedOffering, teacher: User) -> None:
        offering_id = graded_offering.offering.class_offering_id
        student = graded_offering.students[1]
        computation = orchestrator.compute_grades(
            offering_id, actor=teacher, student_ids=[student.user_id], session=db_session
        )

        assert [r.student_id for r in computation.results] == [student.user_id]
        assert len(reporting.list_final_grades(class_offering_id=offering_id, session=db_session)) == 1

    def test_student_not_enrolled(
        self,
        db_session: Session,
        graded_offering: GradedOffering,
        user_factory: t.Callable[..., User],
        teacher: User,
    ) -> None:
        stranger = user_factory()
        computation = orchestrator.compute_grades(
            graded_offering.offering.class_offering_id,
            actor=teacher,
            student_ids=[stranger.user_id],
            session=db_session,
        )
        [failure] = computation.failures
        assert failure.student_id == stranger.user_id
        assert failure.error == "not_found"

    def test_live_claim(self, db_session: Session, graded_offering: GradedOffering, teacher: User) -> None:
        _hold_claim(db_session, graded_offering, teacher, datetime.datetime.now(datetime.UTC))
        with pytest.raises(ComputationInProgress):
            orchestrator.compute_grades(graded_offering.offering.class_offering_id, actor=teacher, session=db_session)

    def test_stale_claim_superseded(
        self, db_session: Session, graded_offering: GradedOffering, teacher: User
    ) -> None:
        now = datetime.datetime.now(datetime.UTC)
        stale_id = _hold_claim(db_session, graded_offering, teacher, now - datetime.timedelta(hours=2))

        computation = orchestrator.compute_grades(
            graded_offering.offering.class_offering_id, actor=teacher, session=db_session, utcnow=lambda: now
        )

        assert computation.status is ComputationStatus.Completed
        abandoned = orchestrator.get_computation(stale_id, session=db_session)
        assert abandoned.status is ComputationStatus.Failed
        assert abandoned.error_message == "abandoned: superseded by a later computation"

    def test_no_active_formula(
        self,
        db_session: Session,
        offering: ClassOffering,
        component_factory: t.Callable[..., GradingComponent],
        teacher: User,
    ) -> None:
        component_factory(offering.class_offering_id, "exams", weight="1.0")
        with pytest.raises(NoActiveFormula):
            orchestrator.compute_grades(offering.class_offering_id, actor=teacher, session=db_session)

    def test_forbidden(self, db_session: Session, graded_offering: GradedOffering) -> None:
        student = graded_offering.students[0]
        with pytest.raises(Forbidden):
            orchestrator.compute_grades(graded_offering.offering.class_offering_id, actor=student, session=db_session)

    def test_explicit_formula_version(
        self,
        db_session: Session,
        graded_offering: GradedOffering,
        formula_factory: t.Callable[..., GradingFormula],
        teacher: User,
    ) -> None:
        offering_id = graded_offering.offering.class_offering_id
        inactive = formula_factory(offering_id, "exams", activate=False)
        computation = orchestrator.compute_grades(
            offering_id, actor=teacher, formula_id=inactive.formula_id, session=db_session
        )
        assert computation.formula_id == inactive.formula_id
        assert [r.raw_score for r in computation.results] == [D("95.00"), D("85.00"), D("55.00")]

    def test_listed_most_recent_first(
        self, db_session: Session, graded_offering: GradedOffering, teacher: User
    ) -> None:
        offering_id = graded_offering.offering.class_offering_id
        now = datetime.datetime.now(datetime.UTC)
        first = orchestrator.compute_grades(
            offering_id, actor=teacher, session=db_session, utcnow=lambda: now - datetime.timedelta(minutes=5)
        )
        second = orchestrator.compute_grades(offering_id, actor=teacher, session=db_session, utcnow=lambda: now)

        listed = orchestrator.list_computations(offering_id, session=db_session)
        assert [c.computation_id for c in listed] == [second.computation_id, first.computation_id]
        assert len(orchestrator.list_computations(offering_id, limit=1, session=db_session)) == 1
        assert orchestrator.list_computations(offering_id, status=ComputationStatus.Failed, session=db_session) == ()

    def test_failed_run_releases_claim(
        self, db_session: Session, graded_offering: GradedOffering, teacher: User
    ) -> None:
        """An unexpected error fails the run, frees the offering and propagates; a retry then succeeds."""
        offering_id = graded_offering.offering.class_offering_id

        with pytest.raises(RuntimeError, match="assessment store unavailable"):
            orchestrator.compute_grades(
                offering_id, actor=teacher, assessments=_UnavailableAssessments(), session=db_session
            )

        [failed] = orchestrator.list_computations(offering_id, status=ComputationStatus.Failed, session=db_session)
        assert failed.error_message == "assessment store unavailable"
        assert failed.completed_at is not None
        assert orchestrator.list_computations(offering_id, status=ComputationStatus.Running, session=db_session) == ()
        with db_session.begin():
            current = offering_storage.get(offering_id, session=db_session)
        assert current is not None
        assert current.running_computation_id is None

        retry = orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)
        assert retry.status is ComputationStatus.Completed
        assert retry.succeeded_count == 3

    def test_published_grade_reported_before_missing_score(
        self,
        db_session: Session,
        graded_offering: GradedOffering,
        record_scores: t.Callable[..., None],
        teacher: User,
    ) -> None:
        offering_id = graded_offering.offering.class_offering_id
        student = graded_offering.students[1]
        orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)
        lifecycle.publish(offering_id, actor=teacher, session=db_session)
        record_scores(student.user_id, {graded_offering.components["homework"].component_id: None})

        computation = orchestrator.compute_grades(
            offering_id, actor=teacher, student_ids=[student.user_id], session=db_session
        )

        [failure] = computation.failures
        assert failure.error == "final_grade_locked"

    def test_no_rounding_stores_mapped_value(
        self,
        db_session: Session,
        offering: ClassOffering,
        component_factory: t.Callable[..., GradingComponent],
        formula_factory: t.Callable[..., GradingFormula],
        enroll: t.Callable[..., list[User]],
        record_scores: t.Callable[..., None],
        teacher: User,
    ) -> None:
        """The stored score, its letter, the run's result and a preview all agree without rounding."""
        offering_id = offering.class_offering_id
        project = component_factory(offering_id, "project", weight="1.0")
        formula = formula_factory(offering_id, "project * 0.99999999", rounding_rule=RoundingRule.NoRounding)
        [student] = enroll(offering_id, 1)
        record_scores(student.user_id, {project.component_id: "90"})

        computation = orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)
        grade = reporting.get_final_grade(student.user_id, offering_id, session=db_session)
        preview = orchestrator.preview_grade(offering_id, student.user_id, actor=teacher, session=db_session)

        assert grade.raw_score == D("90.0000")
        assert grade.letter == "A"
        assert formula_engine.map_to_letter(grade.raw_score, formula.grade_boundaries, formula.output_scale) == "A"
        [result] = computation.results
        assert (result.raw_score, result.letter) == (grade.raw_score, grade.letter)
        assert (preview.raw_score, preview.letter) == (grade.raw_score, grade.letter)


class TestPreviewMatchesComputation(object):
    """A preview over the same scores gives what compute_grades stores."""

    def test_weighted_average(
        self,
        db_session: Session,
        offering: ClassOffering,
        component_factory: t.Callable[..., GradingComponent],
        formula_factory: t.Callable[..., GradingFormula],
        enroll: t.Callable[..., list[User]],
        record_scores: t.Callable[..., None],
        teacher: User,
    ) -> None:
        offering_id = offering.class_offering_id
        homework = component_factory(offering_id, "Homework", weight="0.4")
        exam = component_factory(offering_id, "Exam", weight="0.6")
        formula = formula_factory(offering_id, "Homework*0.4 + Exam*0.6")
        [student] = enroll(offering_id, 1)
        record_scores(student.user_id, {homework.component_id: "80", exam.component_id: "90"})

        orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)
        grade = reporting.get_final_grade(student.user_id, offering_id, session=db_session)

        assert grade.raw_score == D(86)
        assert grade.letter == "B"

        sample = {"Homework": D(80), "Exam": D(90)}
        previewed = catalog.preview_formula(offering_id, formula.expression, sample, session=db_session)
        engine = formula_engine.preview(
            formula.expression,
            sample,
            boundaries=formula.grade_boundaries,
            output_scale=formula.output_scale,
            rounding_rule=formula.rounding_rule,
            decimal_places=formula.decimal_places,
        )
        for result in (previewed, engine):
            assert (result.raw_score, result.letter) == (grade.raw_score, grade.letter)

    def test_graded_offering(self, db_session: Session, graded_offering: GradedOffering, teacher: User) -> None:
        offering_id = graded_offering.offering.class_offering_id
        orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)

        for student, sample in zip(
            graded_offering.students,
            [{"exams": D(95), "homework": D("88.75")}, {"exams": D(85), "homework": D(90)}],
        ):
            grade = reporting.get_final_grade(student.user_id, offering_id, session=db_session)
            previewed = catalog.preview_formula(
                offering_id, graded_offering.formula.expression, sample, session=db_session
            )
            assert (previewed.raw_score, previewed.letter) == (grade.raw_score, grade.letter)


class TestPreviewGrade(object):
    """Tests for orchestrator.preview_grade()."""

    def test_preview_writes_nothing(self, db_session: Session, graded_offering: GradedOffering, teacher: User) -> None:
        offering_id = graded_offering.offering.class_offering_id
        student = graded_offering.students[0]
        preview = orchestrator.preview_grade(offering_id, student.user_id, actor=teacher, session=db_session)

        assert preview.raw_score == D("92.50")
        assert preview.letter == "A"
        assert preview.is_passing is True
        assert preview.formula_id == graded_offering.formula.formula_id
        assert reporting.list_final_grades(class_offering_id=offering_id, session=db_session) == ()

    def test_component_overrides(self, db_session: Session, graded_offering: GradedOffering, teacher: User) -> None:
        """What the student would get with a better final exam."""
        student = graded_offering.students[2]
        preview = orchestrator.preview_grade(
            graded_offering.offering.class_offering_id,
            student.user_id,
            actor=teacher,
            component_overrides={"exams": D(70)},
            session=db_session,
        )
        assert preview.raw_score == D("67.00")
        assert preview.letter == "D"
        assert preview.is_passing is True

    def test_formula_override(self, db_session: Session, graded_offering: GradedOffering, teacher: User) -> None:
        preview = orchestrator.preview_grade(
            graded_offering.offering.class_offering_id,
            graded_offering.students[1].user_id,
            actor=teacher,
            formula_override="(exams + homework) / 2",
            session=db_session,
        )
        assert preview.raw_score == D("87.50")
        assert preview.expression == "(exams + homework) / 2"

    def test_unknown_override(self, db_session: Session, graded_offering: GradedOffering, teacher: User) -> None:
        with pytest.raises(UnknownReference):
            orchestrator.preview_grade(
                graded_offering.offering.class_offering_id,
                graded_offering.students[0].user_id,
                actor=teacher,
                component_overrides={"project": D(100)},
                session=db_session,
            )

    def test_student_not_enrolled(
        self,
        db_session: Session,
        graded_offering: GradedOffering,
        user_factory: t.Callable[..., User],
        teacher: User,
    ) -> None:
        stranger = user_factory()
        with pytest.raises(NotFoundError):
            orchestrator.preview_grade(
                graded_offering.offering.class_offering_id, stranger.user_id, actor=teacher, session=db_session
            )

    def test_student_without_scores(
        self,
        db_session: Session,
        graded_offering: GradedOffering,
        record_scores: t.Callable[..., None],
        teacher: User,
    ) -> None:
        student = graded_offering.students[0]
        record_scores(student.user_id, {graded_offering.components["exams"].component_id: None})
        with pytest.raises(IncompleteGrading):
            orchestrator.preview_grade(
                graded_offering.offering.class_offering_id, student.user_id, actor=teacher, session=db_session
            )
