import decimal
import enum

import annotated_types as ant
import typing as t

from .base import BaseModel, Score, Weight, WithTimestamps
from .formula import GradeBoundary, RoundingRule
from .id import FormulaTemplateID, UserID


class TemplateCategory(enum.Enum):
    Basic = "basic"
    Advanced = "advanced"
    Custom = "custom"


class FormulaTemplate(WithTimestamps, BaseModel):
    """A reusable formula definition, not bound to any offering.

    Its expression is only checked for syntax; component names are resolved
    when the template is applied to an offering.
    """

    template_id: FormulaTemplateID

    name: t.Annotated[str, ant.MinLen(1), ant.MaxLen(100)]
    description: str | None = None
    category: TemplateCategory = TemplateCategory.Custom

    expression: str
    output_scale: Weight = decimal.Decimal(100)
    grade_boundaries: list[GradeBoundary]
    rounding_rule: RoundingRule = RoundingRule.HalfUp
    decimal_places: t.Annotated[int, ant.Ge(0), ant.Le(4)] = 2
    pass_threshold: Score | None = None

    created_by: UserID
