"""View models for grade computations and previews."""

from __future__ import annotations

import datetime
import decimal
import typing as t

import pydantic as p

from gradebook.model import ClassOfferingID, ComputationID, ComputationStatus, FormulaID, StudentResult, UserID


class ComputeRequest(p.BaseModel):
    class_offering_id: ClassOfferingID
    formula_id: FormulaID | None = None
    student_ids: list[UserID] | None = None


class ComputationResponse(p.BaseModel):
    model_config = p.ConfigDict(from_attributes=True)

    computation_id: ComputationID
    class_offering_id: ClassOfferingID
    formula_id: FormulaID
    triggered_by: UserID
    status: ComputationStatus
    started_at: datetime.datetime
    completed_at: datetime.datetime | None = None
    student_count: int
    succeeded_count: int
    failed_count: int
    results: list[StudentResult]
    error_message: str | None = None


class ComputationListResponse(p.BaseModel):
    computations: list[ComputationResponse]


class PreviewRequest(p.BaseModel):
    class_offering_id: ClassOfferingID
    student_id: UserID
    formula_override: str | None = None
    component_overrides: dict[str, decimal.Decimal] | None = None


class PreviewResponse(p.BaseModel):
    model_config = p.ConfigDict(from_attributes=True)

    student_id: UserID
    class_offering_id: ClassOfferingID
    formula_id: FormulaID | None = None
    expression: str
    raw_score: decimal.Decimal
    letter: str
    is_passing: bool | None = None
    component_breakdown: dict[str, t.Any]
