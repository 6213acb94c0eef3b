"""View models for final grades and their lifecycle."""

from __future__ import annotations

import datetime
import decimal
import typing as t

import pydantic as p

from gradebook.model import ClassOfferingID, ComputationID, FinalGrade, FinalGradeID, FinalGradeStatus, FormulaID, \
    GradeOverride, UserID


class FinalGradeResponse(p.BaseModel):
    final_grade_id: FinalGradeID
    student_id: UserID
    class_offering_id: ClassOfferingID
    computation_id: ComputationID
    formula_id: FormulaID
    raw_score: decimal.Decimal
    letter: str
    display_score: decimal.Decimal
    display_letter: str
    is_passing: bool | None = None
    component_breakdown: dict[str, t.Any]
    status: FinalGradeStatus
    override: GradeOverride | None = None
    published_at: datetime.datetime | None = None
    published_by: UserID | None = None
    locked_at: datetime.datetime | None = None
    locked_by: UserID | None = None
    revision: int
    update_time: datetime.datetime

    @classmethod
    def from_model(cls, grade: FinalGrade) -> t.Self:
        return cls(
            **grade.model_dump(exclude={"create_time"}),
            display_score=grade.display_score,
            display_letter=grade.display_letter,
        )


class FinalGradeListResponse(p.BaseModel):
    final_grades: list[FinalGradeResponse]


class TransitionRequest(p.BaseModel):
    """A batch transition over an offering, or over ``student_ids`` within it."""

    class_offering_id: ClassOfferingID
    student_ids: list[UserID] | None = None


class UnlockRequest(TransitionRequest):
    reason: str


class OverrideRequest(p.BaseModel):
    reason: str
    score: decimal.Decimal | None = None
    letter: str | None = None
    expected_revision: int | None = None


class RemoveOverrideRequest(p.BaseModel):
    reason: str | None = None
    expected_revision: int | None = None
