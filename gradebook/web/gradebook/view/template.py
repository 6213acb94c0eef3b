"""View models for formula templates."""

from __future__ import annotations

import datetime
import decimal

import pydantic as p

from gradebook.model import ClassOfferingID, FormulaTemplateID, GradeBoundary, RoundingRule, TemplateCategory, UserID


class TemplateCreateRequest(p.BaseModel):
    """Fields left unset take the configured formula defaults."""

    name: str
    expression: str
    category: TemplateCategory = TemplateCategory.Custom
    grade_boundaries: list[GradeBoundary] | None = None
    output_scale: decimal.Decimal | None = None
    rounding_rule: RoundingRule | None = None
    decimal_places: int | None = None
    pass_threshold: decimal.Decimal | None = None
    description: str | None = None


class TemplateDuplicateRequest(p.BaseModel):
    name: str | None = None


class TemplateApplyRequest(p.BaseModel):
    class_offering_id: ClassOfferingID
    activate: bool = False


class TemplateResponse(p.BaseModel):
    model_config = p.ConfigDict(from_attributes=True)

    template_id: FormulaTemplateID
    name: str
    description: str | None = None
    category: TemplateCategory
    expression: str
    output_scale: decimal.Decimal
    grade_boundaries: list[GradeBoundary]
    rounding_rule: RoundingRule
    decimal_places: int
    pass_threshold: decimal.Decimal | None = None
    created_by: UserID
    create_time: datetime.datetime
    update_time: datetime.datetime


class TemplateListResponse(p.BaseModel):
    templates: list[TemplateResponse]
