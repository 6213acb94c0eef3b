"""View models for grading formulas."""

from __future__ import annotations

import datetime
import decimal
import typing as t

import pydantic as p

from gradebook.model import ClassOfferingID, FormulaID, GradeBoundary, RoundingRule, UserID


class FormulaCreateRequest(p.BaseModel):
    """Fields left unset take the configured defaults."""

    class_offering_id: ClassOfferingID
    expression: str
    grade_boundaries: list[GradeBoundary] | None = None
    output_scale: decimal.Decimal | None = None
    rounding_rule: RoundingRule | None = None
    decimal_places: int | None = None
    pass_threshold: decimal.Decimal | None = None
    description: str | None = None
    activate: bool = False


class FormulaUpdateRequest(p.BaseModel):
    expression: str | None = None
    grade_boundaries: list[GradeBoundary] | None = None
    output_scale: decimal.Decimal | None = None
    rounding_rule: RoundingRule | None = None
    decimal_places: int | None = None
    pass_threshold: decimal.Decimal | None = None
    description: str | None = None


class FormulaResponse(p.BaseModel):
    model_config = p.ConfigDict(from_attributes=True)

    formula_id: FormulaID
    class_offering_id: ClassOfferingID
    expression: str
    output_scale: decimal.Decimal
    grade_boundaries: list[GradeBoundary]
    rounding_rule: RoundingRule
    decimal_places: int
    pass_threshold: decimal.Decimal | None = None
    description: str | None = None
    version: int
    is_active: bool
    created_by: UserID
    create_time: datetime.datetime
    update_time: datetime.datetime


class FormulaListResponse(p.BaseModel):
    formulas: list[FormulaResponse]
    active_formula_id: FormulaID | None = None


class FormulaValidateRequest(p.BaseModel):
    class_offering_id: ClassOfferingID
    expression: str


class FormulaValidateResponse(p.BaseModel):
    valid: bool
    expression: str
    canonical: str | None = None
    references: list[str] = []


class FormulaTestRequest(p.BaseModel):
    """Sample scores keyed by component name; ``expression`` replaces the stored one."""

    sample_scores: dict[str, decimal.Decimal]
    expression: str | None = None


class FormulaTestResponse(p.BaseModel):
    raw_score: decimal.Decimal
    letter: str
    is_passing: bool | None = None
    breakdown: dict[str, t.Any]
