import datetime
import decimal
import typing as t

from sqlalchemy import ForeignKey, func, Index, MetaData, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, MappedAsDataclass
from sqlalchemy.types import Date, DateTime, JSON, Numeric, Text

from gradebook.lib.sql import EnumValuesType
from gradebook.model import AcademicPeriodID, AuditEventID, ClassOfferingID, ComponentID, ComputationID, \
    ComputationStatus, FinalGradeID, FinalGradeStatus, FormulaID, FormulaTemplateID, RoundingRule, TemplateCategory, \
    UserID, UserRole, Weighting

from .type import ShortUUIDKeyType

metadata = MetaData()


class base(MappedAsDataclass, DeclarativeBase):
    metadata = metadata
    type_annotation_map = {
        UserID: ShortUUIDKeyType(UserID),
        AcademicPeriodID: ShortUUIDKeyType(AcademicPeriodID),
        ClassOfferingID: ShortUUIDKeyType(ClassOfferingID),
        ComponentID: ShortUUIDKeyType(ComponentID),
        FormulaID: ShortUUIDKeyType(FormulaID),
        ComputationID: ShortUUIDKeyType(ComputationID),
        FinalGradeID: ShortUUIDKeyType(FinalGradeID),
        AuditEventID: ShortUUIDKeyType(AuditEventID),
        FormulaTemplateID: ShortUUIDKeyType(FormulaTemplateID),
        datetime.datetime: DateTime(timezone=True),
        datetime.date: Date,
        decimal.Decimal: Numeric(12, 4),
        dict[str, t.Any]: JSON,
        list[dict[str, t.Any]]: JSON,
    }


# Users & offerings


class users(base):
    __tablename__ = "users"

    user_id: Mapped[UserID] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(unique=True)
    name: Mapped[str]
    role: Mapped[UserRole] = mapped_column(EnumValuesType(UserRole), default=UserRole.Student)
    create_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now())
    update_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now(), onupdate=func.now())


class academic_periods(base):
    __tablename__ = "academic_periods"

    academic_period_id: Mapped[AcademicPeriodID] = mapped_column(primary_key=True)
    name: Mapped[str]
    starts_on: Mapped[datetime.date | None] = mapped_column(default=None)
    ends_on: Mapped[datetime.date | None] = mapped_column(default=None)
    create_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now())
    update_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now(), onupdate=func.now())


class class_offerings(base):
    __tablename__ = "class_offerings"

    class_offering_id: Mapped[ClassOfferingID] = mapped_column(primary_key=True)
    name: Mapped[str]
    academic_period_id: Mapped[AcademicPeriodID | None] = mapped_column(
        ForeignKey("academic_periods.academic_period_id"), default=None
    )
    # no foreign keys on these two: formulas and computations reference offerings
    active_formula_id: Mapped[FormulaID | None] = mapped_column(default=None)
    running_computation_id: Mapped[ComputationID | None] = mapped_column(default=None)
    create_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now())
    update_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now(), onupdate=func.now())


class offering_teachers(base):
    __tablename__ = "offering_teachers"

    class_offering_id: Mapped[ClassOfferingID] = mapped_column(
        ForeignKey("class_offerings.class_offering_id"), primary_key=True
    )
    user_id: Mapped[UserID] = mapped_column(ForeignKey("users.user_id"), primary_key=True)


class enrollments(base):
    __tablename__ = "enrollments"

    class_offering_id: Mapped[ClassOfferingID] = mapped_column(
        ForeignKey("class_offerings.class_offering_id"), primary_key=True
    )
    student_id: Mapped[UserID] = mapped_column(ForeignKey("users.user_id"), primary_key=True)
    position: Mapped[int] = mapped_column(default=0)
    is_active: Mapped[bool] = mapped_column(default=True)


# Components & formulas


class grading_components(base):
    __tablename__ = "grading_components"
    __table_args__ = (Index("ix_grading_components_offering", "class_offering_id"),)

    component_id: Mapped[ComponentID] = mapped_column(primary_key=True)
    class_offering_id: Mapped[ClassOfferingID] = mapped_column(ForeignKey("class_offerings.class_offering_id"))
    name: Mapped[str]
    weight: Mapped[decimal.Decimal]
    max_score: Mapped[decimal.Decimal]
    weighting: Mapped[Weighting] = mapped_column(EnumValuesType(Weighting), default=Weighting.Weight)
    label: Mapped[str | None] = mapped_column(default=None)
    is_active: Mapped[bool] = mapped_column(default=True)
    deleted_at: Mapped[datetime.datetime | None] = mapped_column(default=None)
    create_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now())
    update_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now(), onupdate=func.now())


class grading_formulas(base):
    __tablename__ = "grading_formulas"
    __table_args__ = (Index("ix_grading_formulas_offering", "class_offering_id"),)

    formula_id: Mapped[FormulaID] = mapped_column(primary_key=True)
    class_offering_id: Mapped[ClassOfferingID] = mapped_column(ForeignKey("class_offerings.class_offering_id"))
    created_by: Mapped[UserID] = mapped_column(ForeignKey("users.user_id"))
    expression: Mapped[str] = mapped_column(Text)
    output_scale: Mapped[decimal.Decimal]
    grade_boundaries: Mapped[list[dict[str, t.Any]]]
    rounding_rule: Mapped[RoundingRule] = mapped_column(EnumValuesType(RoundingRule), default=RoundingRule.HalfUp)
    decimal_places: Mapped[int] = mapped_column(default=2)
    pass_threshold: Mapped[decimal.Decimal | None] = mapped_column(default=None)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    version: Mapped[int] = mapped_column(default=1)
    is_active: Mapped[bool] = mapped_column(default=False)
    create_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now())
    update_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now(), onupdate=func.now())


class formula_templates(base):
    __tablename__ = "formula_templates"
    __table_args__ = (Index("ix_formula_templates_category", "category"),)

    template_id: Mapped[FormulaTemplateID] = mapped_column(primary_key=True)
    created_by: Mapped[UserID] = mapped_column(ForeignKey("users.user_id"))
    name: Mapped[str]
    expression: Mapped[str] = mapped_column(Text)
    output_scale: Mapped[decimal.Decimal]
    grade_boundaries: Mapped[list[dict[str, t.Any]]]
    category: Mapped[TemplateCategory] = mapped_column(
        EnumValuesType(TemplateCategory), default=TemplateCategory.Custom
    )
    rounding_rule: Mapped[RoundingRule] = mapped_column(EnumValuesType(RoundingRule), default=RoundingRule.HalfUp)
    decimal_places: Mapped[int] = mapped_column(default=2)
    pass_threshold: Mapped[decimal.Decimal | None] = mapped_column(default=None)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    create_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now())
    update_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now(), onupdate=func.now())


# Assessment input, owned by the assessment subsystem


class assessment_grades(base):
    __tablename__ = "assessment_grades"

    student_id: Mapped[UserID] = mapped_column(ForeignKey("users.user_id"), primary_key=True)
    component_id: Mapped[ComponentID] = mapped_column(ForeignKey("grading_components.component_id"), primary_key=True)
    score: Mapped[decimal.Decimal | None] = mapped_column(default=None)


# Computations & final grades


class grade_computations(base):
    __tablename__ = "grade_computations"
    __table_args__ = (Index("ix_grade_computations_offering", "class_offering_id"),)

    computation_id: Mapped[ComputationID] = mapped_column(primary_key=True)
    class_offering_id: Mapped[ClassOfferingID] = mapped_column(ForeignKey("class_offerings.class_offering_id"))
    formula_id: Mapped[FormulaID] = mapped_column(ForeignKey("grading_formulas.formula_id"))
    triggered_by: Mapped[UserID] = mapped_column(ForeignKey("users.user_id"))
    started_at: Mapped[datetime.datetime]
    status: Mapped[ComputationStatus] = mapped_column(
        EnumValuesType(ComputationStatus), default=ComputationStatus.Running
    )
    completed_at: Mapped[datetime.datetime | None] = mapped_column(default=None)
    student_count: Mapped[int] = mapped_column(default=0)
    succeeded_count: Mapped[int] = mapped_column(default=0)
    failed_count: Mapped[int] = mapped_column(default=0)
    results: Mapped[list[dict[str, t.Any]]] = mapped_column(default_factory=list)
    error_message: Mapped[str | None] = mapped_column(Text, default=None)


class final_grades(base):
    __tablename__ = "final_grades"
    __table_args__ = (UniqueConstraint("student_id", "class_offering_id"),)

    final_grade_id: Mapped[FinalGradeID] = mapped_column(primary_key=True)
    student_id: Mapped[UserID] = mapped_column(ForeignKey("users.user_id"))
    class_offering_id: Mapped[ClassOfferingID] = mapped_column(ForeignKey("class_offerings.class_offering_id"))
    computation_id: Mapped[ComputationID] = mapped_column(ForeignKey("grade_computations.computation_id"))
    formula_id: Mapped[FormulaID] = mapped_column(ForeignKey("grading_formulas.formula_id"))
    raw_score: Mapped[decimal.Decimal]
    letter: Mapped[str]
    is_passing: Mapped[bool | None] = mapped_column(default=None)
    component_breakdown: Mapped[dict[str, t.Any]] = mapped_column(default_factory=dict)
    status: Mapped[FinalGradeStatus] = mapped_column(EnumValuesType(FinalGradeStatus), default=FinalGradeStatus.Draft)
    override: Mapped[dict[str, t.Any] | None] = mapped_column(JSON(none_as_null=True), default=None)
    published_at: Mapped[datetime.datetime | None] = mapped_column(default=None)
    published_by: Mapped[UserID | None] = mapped_column(ForeignKey("users.user_id"), default=None)
    locked_at: Mapped[datetime.datetime | None] = mapped_column(default=None)
    locked_by: Mapped[UserID | None] = mapped_column(ForeignKey("users.user_id"), default=None)
    revision: Mapped[int] = mapped_column(default=1)
    create_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now())
    update_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now(), onupdate=func.now())


# Audit


class audit_events(base):
    __tablename__ = "audit_events"
    __table_args__ = (Index("ix_audit_events_target", "target"),)

    event_id: Mapped[AuditEventID] = mapped_column(primary_key=True)
    event: Mapped[str]
    actor_id: Mapped[UserID] = mapped_column(ForeignKey("users.user_id"))
    target: Mapped[str]
    details: Mapped[dict[str, t.Any]] = mapped_column(default_factory=dict)
    create_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now())
