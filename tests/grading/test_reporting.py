"""Tests for gradebook.grading.reporting."""

from __future__ import annotations

import decimal
import typing as t

import pytest
from sqlalchemy.orm import Session

from gradebook.errors import NotFoundError
from gradebook.grading import lifecycle, orchestrator, reporting
from gradebook.model import AcademicPeriodID, ClassOffering, ClassOfferingID, FinalGradeStatus, GradingComponent, \
    GradingFormula, User
from gradebook.storage import roster as roster_storage

if t.TYPE_CHECKING:
    from conftest import GradedOffering

D = decimal.Decimal


@pytest.fixture
def published(db_session: Session, graded_offering: GradedOffering, teacher: User) -> GradedOffering:
    offering_id = graded_offering.offering.class_offering_id
    orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)
    lifecycle.publish(offering_id, actor=teacher, session=db_session)
    return graded_offering


class TestClassSummary(object):
    """Tests for reporting.get_class_summary()."""

    def test_summary(self, db_session: Session, published: GradedOffering) -> None:
        summary = reporting.get_class_summary(published.offering.class_offering_id, session=db_session)

        assert summary.count == 3
        assert summary.mean == D("79.17")
        assert summary.median == D("87.00")
        assert summary.min == D("58")
        assert summary.max == D("92.5")
        assert summary.passing_count == 2
        assert (summary.draft_count, summary.published_count, summary.locked_count) == (0, 3, 0)

    def test_drafts_are_not_counted(
        self, db_session: Session, graded_offering: GradedOffering, teacher: User
    ) -> None:
        offering_id = graded_offering.offering.class_offering_id
        orchestrator.compute_grades(offering_id, actor=teacher, session=db_session)

        summary = reporting.get_class_summary(offering_id, session=db_session)

        assert summary.count == 0
        assert summary.draft_count == 3
        assert summary.mean is None
        assert summary.passing_count is None

    def test_uses_displayed_score(self, db_session: Session, published: GradedOffering, teacher: User) -> None:
        """An override counts the way the student sees it, including for pass/fail."""
        failing = reporting.get_final_grade(
            published.students[2].user_id, published.offering.class_offering_id, session=db_session
        )
        lifecycle.override_final_grade(
            failing.final_grade_id, actor=teacher, reason="regrade", score=D(60), session=db_session
        )

        summary = reporting.get_class_summary(published.offering.class_offering_id, session=db_session)

        assert summary.min == D(60)
        assert summary.mean == D("79.83")
        assert summary.passing_count == 3

    def test_missing_offering(self, db_session: Session) -> None:
        with pytest.raises(NotFoundError):
            reporting.get_class_summary(ClassOfferingID(), session=db_session)


class TestGradeDistribution(object):
    """Tests for reporting.get_grade_distribution()."""

    def test_follows_boundary_order(self, db_session: Session, published: GradedOffering) -> None:
        distribution = reporting.get_grade_distribution(published.offering.class_offering_id, session=db_session)

        assert distribution.total == 3
        assert [(b.letter, b.count) for b in distribution.buckets] == [
            ("A", 1),
            ("B", 1),
            ("C", 0),
            ("D", 0),
            ("F", 1),
        ]

    def test_extra_letters_follow(self, db_session: Session, published: GradedOffering, teacher: User) -> None:
        grade = reporting.get_final_grade(
            published.students[2].user_id, published.offering.class_offering_id, session=db_session
        )
        lifecycle.override_final_grade(
            grade.final_grade_id, actor=teacher, reason="medical leave", letter="I", session=db_session
        )

        distribution = reporting.get_grade_distribution(published.offering.class_offering_id, session=db_session)

        assert [b.letter for b in distribution.buckets] == ["A", "B", "C", "D", "F", "I"]
        assert {b.letter: b.count for b in distribution.buckets}["F"] == 0
        assert {b.letter: b.count for b in distribution.buckets}["I"] == 1

    def test_empty(self, db_session: Session, offering: ClassOffering) -> None:
        distribution = reporting.get_grade_distribution(offering.class_offering_id, session=db_session)
        assert distribution.total == 0
        assert distribution.buckets == []


class TestStudentTranscript(object):
    """Tests for reporting.get_student_transcript()."""

    def test_transcript_across_offerings(
        self,
        db_session: Session,
        published: GradedOffering,
        offering_factory: t.Callable[..., ClassOffering],
        component_factory: t.Callable[..., GradingComponent],
        formula_factory: t.Callable[..., GradingFormula],
        record_scores: t.Callable[..., None],
        teacher: User,
    ) -> None:
        student = published.students[0]
        geometry = offering_factory(name="Geometry")
        project = component_factory(geometry.class_offering_id, "project", weight="1.0")
        formula_factory(geometry.class_offering_id, "project")
        with db_session.begin():
            roster_storage.enroll(geometry.class_offering_id, student.user_id, session=db_session)
        record_scores(student.user_id, {project.component_id: "74"})
        orchestrator.compute_grades(geometry.class_offering_id, actor=teacher, session=db_session)

        transcript = reporting.get_student_transcript(student.user_id, session=db_session)

        entries = {e.class_offering_name: e for e in transcript.entries}
        assert sorted(entries) == ["Algebra I", "Geometry"]
        assert (entries["Algebra I"].letter, entries["Algebra I"].status) == ("A", FinalGradeStatus.Published)
        assert (entries["Geometry"].letter, entries["Geometry"].status) == ("C", FinalGradeStatus.Draft)
        assert entries["Algebra I"].is_final
        assert not entries["Geometry"].is_final

        final_only = reporting.get_student_transcript(student.user_id, include_drafts=False, session=db_session)
        assert [e.class_offering_name for e in final_only.entries] == ["Algebra I"]

    def test_filter_by_period(self, db_session: Session, published: GradedOffering) -> None:
        student = published.students[1]
        period_id = published.offering.academic_period_id
        assert period_id is not None

        matching = reporting.get_student_transcript(
            student.user_id, academic_period_ids=[period_id], session=db_session
        )
        other = reporting.get_student_transcript(
            student.user_id, academic_period_ids=[AcademicPeriodID()], session=db_session
        )

        assert [e.score for e in matching.entries] == [D(87)]
        assert other.entries == []

    def test_no_grades(self, db_session: Session, user_factory: t.Callable[..., User]) -> None:
        student = user_factory()
        transcript = reporting.get_student_transcript(student.user_id, session=db_session)
        assert transcript.student_id == student.user_id
        assert transcript.entries == []
