import decimal
import enum

import annotated_types as ant
import typing as t

from .base import BaseModel, Score, Weight, WithTimestamps
from .id import ClassOfferingID, FormulaID, UserID


class RoundingRule(enum.Enum):
    NoRounding = "none"
    HalfUp = "half_up"
    HalfDown = "half_down"
    Bankers = "bankers"
    Floor = "floor"
    Ceil = "ceil"


class GradeBoundary(BaseModel):
    min_score: Score
    letter: t.Annotated[str, ant.MinLen(1), ant.MaxLen(5)]


class GradingFormula(WithTimestamps, BaseModel):
    formula_id: FormulaID
    class_offering_id: ClassOfferingID

    expression: str
    output_scale: Weight = decimal.Decimal(100)
    # ordered by min_score, descending
    grade_boundaries: list[GradeBoundary]
    rounding_rule: RoundingRule = RoundingRule.HalfUp
    decimal_places: t.Annotated[int, ant.Ge(0), ant.Le(4)] = 2
    pass_threshold: Score | None = None

    description: str | None = None
    version: int = 1
    is_active: bool = False
    created_by: UserID
