"""Tests for gradebook.grading.registry."""

from __future__ import annotations

import decimal
import typing as t

import pytest
from sqlalchemy.orm import Session

from gradebook.errors import ComponentInUse, Forbidden, NotFoundError, ValidationError, WeightConfigurationError
from gradebook.grading import registry
from gradebook.model import ClassOffering, ClassOfferingID, ComponentID, GradingComponent, User, UserRole, Weighting
from gradebook.storage import audit as audit_storage

if t.TYPE_CHECKING:
    from conftest import GradedOffering

D = decimal.Decimal


class TestCreateComponent(object):
    """Tests for registry.create_component()."""

    def test_create(
        self,
        db_session: Session,
        offering: ClassOffering,
        component_factory: t.Callable[..., GradingComponent],
        teacher: User,
    ) -> None:
        component = component_factory(offering.class_offering_id, "midterm", weight="0.3", max_score="50")

        assert component.name == "midterm"
        assert component.weight == D("0.3")
        assert component.max_score == D(50)
        assert component.is_active

        with db_session.begin():
            events = audit_storage.find(target=component.component_id, session=db_session)
        assert [e.event for e in events] == ["component.created"]
        assert events[0].actor_id == teacher.user_id

    def test_weights_may_not_exceed_target(
        self, offering: ClassOffering, component_factory: t.Callable[..., GradingComponent]
    ) -> None:
        component_factory(offering.class_offering_id, "exams", weight="0.7")
        with pytest.raises(WeightConfigurationError) as exc_info:
            component_factory(offering.class_offering_id, "homework", weight="0.4")
        assert exc_info.value.field == "weight"

    def test_weights_within_epsilon(
        self, offering: ClassOffering, component_factory: t.Callable[..., GradingComponent]
    ) -> None:
        component_factory(offering.class_offering_id, "a", weight="0.5")
        component_factory(offering.class_offering_id, "b", weight="0.5005")

    def test_mixed_weighting_rejected(
        self, offering: ClassOffering, component_factory: t.Callable[..., GradingComponent]
    ) -> None:
        component_factory(offering.class_offering_id, "exams", weight="0.5")
        with pytest.raises(WeightConfigurationError, match="mix"):
            component_factory(offering.class_offering_id, "bonus", weight="10", weighting=Weighting.Points)

    def test_points_have_no_sum_constraint(
        self, offering: ClassOffering, component_factory: t.Callable[..., GradingComponent]
    ) -> None:
        component_factory(offering.class_offering_id, "labs", weight="40", weighting=Weighting.Points)
        component_factory(offering.class_offering_id, "project", weight="60", weighting=Weighting.Points)

    def test_duplicate_name(
        self, offering: ClassOffering, component_factory: t.Callable[..., GradingComponent]
    ) -> None:
        component_factory(offering.class_offering_id, "exams", weight="0.3")
        with pytest.raises(ValidationError) as exc_info:
            component_factory(offering.class_offering_id, "exams", weight="0.3")
        assert exc_info.value.field == "name"

    @pytest.mark.parametrize("name", ["2nd_exam", "final exam", "exam-1", ""])
    def test_name_must_be_identifier(
        self, offering: ClassOffering, component_factory: t.Callable[..., GradingComponent], name: str
    ) -> None:
        with pytest.raises(ValidationError):
            component_factory(offering.class_offering_id, name)

    @pytest.mark.parametrize("weight, max_score", [("0", "100"), ("-0.1", "100"), ("0.5", "0")])
    def test_positive_values(
        self,
        offering: ClassOffering,
        component_factory: t.Callable[..., GradingComponent],
        weight: str,
        max_score: str,
    ) -> None:
        with pytest.raises(ValidationError):
            component_factory(offering.class_offering_id, "exams", weight=weight, max_score=max_score)

    def test_forbidden_for_unassigned_teacher(
        self,
        db_session: Session,
        offering: ClassOffering,
        user_factory: t.Callable[..., User],
    ) -> None:
        outsider = user_factory(role=UserRole.Teacher)
        with pytest.raises(Forbidden):
            registry.create_component(
                offering.class_offering_id,
                actor=outsider,
                name="exams",
                weight=D("0.5"),
                max_score=D(100),
                session=db_session,
            )

    def test_admin_manages_any_offering(self, db_session: Session, offering: ClassOffering, admin: User) -> None:
        component = registry.create_component(
            offering.class_offering_id, actor=admin, name="exams", weight=D("0.5"), max_score=D(100), session=db_session
        )
        assert component.class_offering_id == offering.class_offering_id

    def test_forbidden_before_not_found(self, db_session: Session, user_factory: t.Callable[..., User]) -> None:
        """A student learns nothing about whether the offering exists."""
        student = user_factory()
        with pytest.raises(Forbidden):
            registry.create_component(
                ClassOfferingID(),
                actor=student,
                name="exams",
                weight=D("0.5"),
                max_score=D(100),
                session=db_session,
            )

    def test_admin_on_missing_offering(self, db_session: Session, admin: User) -> None:
        with pytest.raises(NotFoundError):
            registry.create_component(
                ClassOfferingID(),
                actor=admin,
                name="exams",
                weight=D("0.5"),
                max_score=D(100),
                session=db_session,
            )


class TestUpdateComponent(object):
    """Tests for registry.update_component()."""

    def test_update_weight(
        self,
        db_session: Session,
        offering: ClassOffering,
        component_factory: t.Callable[..., GradingComponent],
        teacher: User,
    ) -> None:
        component = component_factory(offering.class_offering_id, "exams", weight="0.5")
        updated = registry.update_component(
            component.component_id, actor=teacher, weight=D("0.6"), label="Exams", session=db_session
        )
        assert updated.weight == D("0.6")
        assert updated.label == "Exams"
        assert updated.name == "exams"

    def test_update_checks_weight_sum(
        self,
        db_session: Session,
        offering: ClassOffering,
        component_factory: t.Callable[..., GradingComponent],
        teacher: User,
    ) -> None:
        component_factory(offering.class_offering_id, "exams", weight="0.6")
        homework = component_factory(offering.class_offering_id, "homework", weight="0.4")
        with pytest.raises(WeightConfigurationError):
            registry.update_component(homework.component_id, actor=teacher, weight=D("0.5"), session=db_session)

    def test_rename_referenced_component(
        self, db_session: Session, graded_offering: GradedOffering, teacher: User
    ) -> None:
        exams = graded_offering.components["exams"]
        with pytest.raises(ComponentInUse):
            registry.update_component(exams.component_id, actor=teacher, name="tests", session=db_session)

    def test_deactivate_referenced_component(
        self, db_session: Session, graded_offering: GradedOffering, teacher: User
    ) -> None:
        homework = graded_offering.components["homework"]
        with pytest.raises(ComponentInUse):
            registry.update_component(homework.component_id, actor=teacher, is_active=False, session=db_session)

    def test_reweight_referenced_component(
        self, db_session: Session, graded_offering: GradedOffering, teacher: User
    ) -> None:
        """Weights and labels of a referenced component may still change."""
        homework = graded_offering.components["homework"]
        updated = registry.update_component(homework.component_id, actor=teacher, weight=D("0.3"), session=db_session)
        assert updated.weight == D("0.3")

    def test_missing_component(self, db_session: Session, teacher: User) -> None:
        with pytest.raises(NotFoundError):
            registry.update_component(ComponentID(), actor=teacher, weight=D("0.1"), session=db_session)


class TestDeleteComponent(object):
    """Tests for registry.delete_component()."""

    def test_soft_delete(
        self,
        db_session: Session,
        offering: ClassOffering,
        component_factory: t.Callable[..., GradingComponent],
        teacher: User,
    ) -> None:
        component = component_factory(offering.class_offering_id, "quizzes", weight="0.2")
        registry.delete_component(component.component_id, actor=teacher, session=db_session)

        assert registry.list_components(offering.class_offering_id, session=db_session) == ()
        archived = registry.list_components(offering.class_offering_id, include_inactive=True, session=db_session)
        assert [c.component_id for c in archived] == [component.component_id]
        assert archived[0].deleted_at is not None
        assert not archived[0].is_active

        # the name is free again once the component is gone
        component_factory(offering.class_offering_id, "quizzes", weight="0.2")

    def test_deleted_component_is_not_found(
        self,
        db_session: Session,
        offering: ClassOffering,
        component_factory: t.Callable[..., GradingComponent],
        teacher: User,
    ) -> None:
        component = component_factory(offering.class_offering_id, "quizzes", weight="0.2")
        registry.delete_component(component.component_id, actor=teacher, session=db_session)
        with pytest.raises(NotFoundError):
            registry.delete_component(component.component_id, actor=teacher, session=db_session)

    def test_referenced_component(self, db_session: Session, graded_offering: GradedOffering, teacher: User) -> None:
        exams = graded_offering.components["exams"]
        with pytest.raises(ComponentInUse):
            registry.delete_component(exams.component_id, actor=teacher, session=db_session)


class TestCheckWeights(object):
    """Tests for registry.check_weights()."""

    def test_complete(self, db_session: Session, graded_offering: GradedOffering) -> None:
        total = registry.check_weights(graded_offering.offering.class_offering_id, session=db_session)
        assert total == D("1.0")

    def test_incomplete(
        self, db_session: Session, offering: ClassOffering, component_factory: t.Callable[..., GradingComponent]
    ) -> None:
        component_factory(offering.class_offering_id, "exams", weight="0.6")
        with pytest.raises(WeightConfigurationError, match="expected"):
            registry.check_weights(offering.class_offering_id, session=db_session)
        assert registry.check_weights(offering.class_offering_id, complete=False, session=db_session) == D("0.6")
