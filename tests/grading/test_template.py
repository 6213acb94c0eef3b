"""Tests for the formula template functions of gradebook.grading.catalog."""

from __future__ import annotations

import decimal
import typing as t

import pytest
from sqlalchemy.orm import Session

from gradebook.errors import DivisionByZeroRisk, Forbidden, FormulaSyntaxError, NotFoundError, UnknownReference, \
    ValidationError
from gradebook.grading import catalog
from gradebook.model import FormulaTemplate, FormulaTemplateID, RoundingRule, TemplateCategory, User, UserRole
from gradebook.storage import audit as audit_storage

if t.TYPE_CHECKING:
    from conftest import GradedOffering

D = decimal.Decimal


@pytest.fixture
def template_factory(db_session: Session, teacher: User) -> t.Callable[..., FormulaTemplate]:
    def create_template(
        name: str = "Exams and homework",
        expression: str = "exams * 0.6 + homework * 0.4",
        actor: User | None = None,
        **kwargs: t.Any,
    ) -> FormulaTemplate:
        return catalog.create_template(
            actor=actor or teacher, name=name, expression=expression, session=db_session, **kwargs
        )

    return create_template


class TestCreateTemplate(object):
    """Tests for catalog.create_template()."""

    def test_defaults(self, template_factory: t.Callable[..., FormulaTemplate], teacher: User) -> None:
        """Fields left unset take the configured formula defaults."""
        template = template_factory()

        assert template.category is TemplateCategory.Custom
        assert template.output_scale == D(100)
        assert template.rounding_rule is RoundingRule.HalfUp
        assert template.decimal_places == 2
        assert [b.letter for b in template.grade_boundaries] == ["A", "B", "C", "D", "F"]
        assert template.created_by == teacher.user_id

    def test_component_names_not_resolved(self, template_factory: t.Callable[..., FormulaTemplate]) -> None:
        """A template may name components that no offering has yet."""
        template = template_factory(expression="quizzes * 0.2 + project * 0.8")
        assert template.expression == "quizzes * 0.2 + project * 0.8"

    @pytest.mark.parametrize(
        "expression, error",
        [
            ("exams *", FormulaSyntaxError),
            ("exams / 0", DivisionByZeroRisk),
        ],
    )
    def test_expression_checked(
        self,
        template_factory: t.Callable[..., FormulaTemplate],
        expression: str,
        error: type[Exception],
    ) -> None:
        with pytest.raises(error):
            template_factory(expression=expression)

    def test_name_required(self, template_factory: t.Callable[..., FormulaTemplate]) -> None:
        with pytest.raises(ValidationError) as exc_info:
            template_factory(name="   ")
        assert exc_info.value.field == "name"

    def test_students_may_not_create(
        self, template_factory: t.Callable[..., FormulaTemplate], user_factory: t.Callable[..., User]
    ) -> None:
        with pytest.raises(Forbidden):
            template_factory(actor=user_factory())

    def test_audited(
        self, db_session: Session, template_factory: t.Callable[..., FormulaTemplate], teacher: User
    ) -> None:
        template = template_factory()
        with db_session.begin():
            events = audit_storage.find(target=template.template_id, session=db_session)
        assert [(e.event, e.actor_id) for e in events] == [("template.created", teacher.user_id)]


class TestTemplateLookup(object):
    """Tests for catalog.get_template() and list_templates()."""

    def test_get(self, db_session: Session, template_factory: t.Callable[..., FormulaTemplate]) -> None:
        template = template_factory()
        assert catalog.get_template(template.template_id, session=db_session) == template

    def test_get_missing(self, db_session: Session) -> None:
        with pytest.raises(NotFoundError):
            catalog.get_template(FormulaTemplateID(), session=db_session)

    def test_list_by_category(
        self, db_session: Session, template_factory: t.Callable[..., FormulaTemplate]
    ) -> None:
        template_factory(name="Weighted", category=TemplateCategory.Basic)
        template_factory(name="Average", expression="(exams + homework) / 2", category=TemplateCategory.Basic)
        template_factory(name="Best of", category=TemplateCategory.Advanced)

        basic = catalog.list_templates(category=TemplateCategory.Basic, session=db_session)
        everything = catalog.list_templates(session=db_session)

        assert [template.name for template in basic] == ["Average", "Weighted"]
        assert len(everything) == 3


class TestDeleteTemplate(object):
    """Tests for catalog.delete_template()."""

    def test_author_deletes(
        self, db_session: Session, template_factory: t.Callable[..., FormulaTemplate], teacher: User
    ) -> None:
        template = template_factory()
        catalog.delete_template(template.template_id, actor=teacher, session=db_session)
        with pytest.raises(NotFoundError):
            catalog.get_template(template.template_id, session=db_session)

    def test_other_teacher_forbidden(
        self,
        db_session: Session,
        template_factory: t.Callable[..., FormulaTemplate],
        user_factory: t.Callable[..., User],
    ) -> None:
        template = template_factory()
        other = user_factory(role=UserRole.Teacher)
        with pytest.raises(Forbidden):
            catalog.delete_template(template.template_id, actor=other, session=db_session)
        assert catalog.get_template(template.template_id, session=db_session) == template

    def test_admin_deletes(
        self, db_session: Session, template_factory: t.Callable[..., FormulaTemplate], admin: User
    ) -> None:
        template = template_factory()
        catalog.delete_template(template.template_id, actor=admin, session=db_session)
        assert catalog.list_templates(session=db_session) == ()

    def test_applied_formulas_survive(
        self,
        db_session: Session,
        graded_offering: GradedOffering,
        template_factory: t.Callable[..., FormulaTemplate],
        teacher: User,
    ) -> None:
        template = template_factory()
        offering_id = graded_offering.offering.class_offering_id
        formula = catalog.apply_template(template.template_id, offering_id, actor=teacher, session=db_session)

        catalog.delete_template(template.template_id, actor=teacher, session=db_session)

        assert catalog.get_formula(formula.formula_id, session=db_session) == formula


class TestDuplicateTemplate(object):
    """Tests for catalog.duplicate_template()."""

    def test_default_name(
        self,
        db_session: Session,
        template_factory: t.Callable[..., FormulaTemplate],
        user_factory: t.Callable[..., User],
    ) -> None:
        """The copy belongs to whoever made it and is always a custom template."""
        source = template_factory(
            name="Weighted",
            category=TemplateCategory.Basic,
            rounding_rule=RoundingRule.Floor,
            decimal_places=0,
            pass_threshold=D(65),
        )
        other = user_factory(role=UserRole.Teacher)

        copy = catalog.duplicate_template(source.template_id, actor=other, session=db_session)

        assert copy.template_id != source.template_id
        assert copy.name == "Weighted (copy)"
        assert copy.category is TemplateCategory.Custom
        assert copy.created_by == other.user_id
        assert copy.expression == source.expression
        assert copy.grade_boundaries == source.grade_boundaries
        assert (copy.rounding_rule, copy.decimal_places, copy.pass_threshold) == (RoundingRule.Floor, 0, D(65))

    def test_named(
        self, db_session: Session, template_factory: t.Callable[..., FormulaTemplate], teacher: User
    ) -> None:
        source = template_factory()
        copy = catalog.duplicate_template(source.template_id, actor=teacher, name="Fall variant", session=db_session)
        assert copy.name == "Fall variant"
        assert len(catalog.list_templates(session=db_session)) == 2

    def test_missing(self, db_session: Session, teacher: User) -> None:
        with pytest.raises(NotFoundError):
            catalog.duplicate_template(FormulaTemplateID(), actor=teacher, session=db_session)


class TestApplyTemplate(object):
    """Tests for catalog.apply_template()."""

    def test_creates_next_version(
        self,
        db_session: Session,
        graded_offering: GradedOffering,
        template_factory: t.Callable[..., FormulaTemplate],
        teacher: User,
    ) -> None:
        offering_id = graded_offering.offering.class_offering_id
        template = template_factory(
            name="Even split",
            expression="exams * 0.5 + homework * 0.5",
            rounding_rule=RoundingRule.Floor,
            decimal_places=0,
            pass_threshold=D(50),
        )

        formula = catalog.apply_template(
            template.template_id, offering_id, actor=teacher, activate=True, session=db_session
        )

        assert formula.class_offering_id == offering_id
        assert formula.version == graded_offering.formula.version + 1
        assert formula.is_active
        assert formula.expression == "exams * 0.5 + homework * 0.5"
        assert formula.rounding_rule is RoundingRule.Floor
        assert formula.decimal_places == 0
        assert formula.pass_threshold == D(50)
        assert formula.grade_boundaries == template.grade_boundaries
        assert formula.description == "Even split"
        assert catalog.get_active_formula(offering_id, session=db_session) == formula

    def test_inactive_by_default(
        self,
        db_session: Session,
        graded_offering: GradedOffering,
        template_factory: t.Callable[..., FormulaTemplate],
        teacher: User,
    ) -> None:
        offering_id = graded_offering.offering.class_offering_id
        formula = catalog.apply_template(template_factory().template_id, offering_id, actor=teacher, session=db_session)

        assert not formula.is_active
        active = catalog.get_active_formula(offering_id, session=db_session)
        assert active.formula_id == graded_offering.formula.formula_id

    def test_unknown_component(
        self,
        db_session: Session,
        graded_offering: GradedOffering,
        template_factory: t.Callable[..., FormulaTemplate],
        teacher: User,
    ) -> None:
        """Component names are resolved against the target offering, and a failure creates nothing."""
        offering_id = graded_offering.offering.class_offering_id
        template = template_factory(expression="quizzes * 0.2 + exams * 0.8")

        with pytest.raises(UnknownReference):
            catalog.apply_template(template.template_id, offering_id, actor=teacher, session=db_session)
        assert len(catalog.list_formulas(offering_id, session=db_session)) == 1

    def test_not_teacher_of_offering(
        self,
        db_session: Session,
        graded_offering: GradedOffering,
        template_factory: t.Callable[..., FormulaTemplate],
        user_factory: t.Callable[..., User],
    ) -> None:
        template = template_factory()
        outsider = user_factory(role=UserRole.Teacher)
        with pytest.raises(Forbidden):
            catalog.apply_template(
                template.template_id, graded_offering.offering.class_offering_id, actor=outsider, session=db_session
            )

    def test_missing_template(self, db_session: Session, graded_offering: GradedOffering, teacher: User) -> None:
        with pytest.raises(NotFoundError):
            catalog.apply_template(
                FormulaTemplateID(), graded_offering.offering.class_offering_id, actor=teacher, session=db_session
            )
