import decimal
import typing as t

from .base import BaseModel
from .final_grade import FinalGradeStatus
from .id import AcademicPeriodID, ClassOfferingID, FinalGradeID, FormulaID, UserID


class ClassGradingSummary(BaseModel):
    """Statistics over the authoritative (published or locked) grades of an offering."""

    class_offering_id: ClassOfferingID
    count: int
    mean: decimal.Decimal | None = None
    median: decimal.Decimal | None = None
    min: decimal.Decimal | None = None
    max: decimal.Decimal | None = None
    passing_count: int | None = None
    draft_count: int = 0
    published_count: int = 0
    locked_count: int = 0


class DistributionBucket(BaseModel):
    letter: str
    count: int


class GradeDistribution(BaseModel):
    class_offering_id: ClassOfferingID
    total: int
    buckets: list[DistributionBucket]


class TranscriptEntry(BaseModel):
    final_grade_id: FinalGradeID
    class_offering_id: ClassOfferingID
    class_offering_name: str
    academic_period_id: AcademicPeriodID | None = None
    score: decimal.Decimal
    letter: str
    is_passing: bool | None = None
    status: FinalGradeStatus
    has_override: bool = False

    @property
    def is_final(self) -> bool:
        return self.status is not FinalGradeStatus.Draft


class StudentTranscript(BaseModel):
    student_id: UserID
    entries: list[TranscriptEntry]


class RowFailure(BaseModel):
    student_id: UserID
    error: str
    message: str


class TransitionReport(BaseModel):
    """Per-row outcome of a batch lifecycle transition."""

    class_offering_id: ClassOfferingID
    affected: list[UserID] = []
    skipped: list[UserID] = []
    failed: list[RowFailure] = []

    @property
    def affected_count(self) -> int:
        return len(self.affected)


class GradePreview(BaseModel):
    """A student's would-be grade, computed without writing anything."""

    student_id: UserID
    class_offering_id: ClassOfferingID
    formula_id: FormulaID | None = None
    expression: str
    raw_score: decimal.Decimal
    letter: str
    is_passing: bool | None = None
    component_breakdown: dict[str, t.Any] = {}
