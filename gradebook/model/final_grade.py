import decimal
import enum
import typing as t

import pydantic as p

from .base import BaseModel, Score, Timestamp, WithTimestamps
from .id import ClassOfferingID, ComputationID, FinalGradeID, FormulaID, UserID


class FinalGradeStatus(enum.Enum):
    Draft = "draft"
    Published = "published"
    Locked = "locked"


class GradeOverride(BaseModel):
    reason: str
    score: Score | None = None
    letter: str | None = None
    applied_by: UserID
    applied_at: Timestamp

    @p.model_validator(mode="after")
    def check_value(self) -> t.Self:
        if self.score is None and self.letter is None:
            raise ValueError("an override must set a score or a letter")
        return self


class FinalGrade(WithTimestamps, BaseModel):
    final_grade_id: FinalGradeID
    student_id: UserID
    class_offering_id: ClassOfferingID
    computation_id: ComputationID
    formula_id: FormulaID

    raw_score: decimal.Decimal
    letter: str
    is_passing: bool | None = None
    component_breakdown: dict[str, t.Any] = {}

    status: FinalGradeStatus = FinalGradeStatus.Draft
    override: GradeOverride | None = None

    published_at: Timestamp | None = None
    published_by: UserID | None = None
    locked_at: Timestamp | None = None
    locked_by: UserID | None = None

    revision: int = 1

    @property
    def display_score(self) -> decimal.Decimal:
        if self.override is not None and self.override.score is not None:
            return self.override.score
        return self.raw_score

    @property
    def display_letter(self) -> str:
        if self.override is not None and self.override.letter is not None:
            return self.override.letter
        return self.letter

    @property
    def is_authoritative(self) -> bool:
        return self.status in (FinalGradeStatus.Published, FinalGradeStatus.Locked)
