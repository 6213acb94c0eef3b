import decimal
import enum

from .base import BaseModel, Timestamp
from .id import ClassOfferingID, ComputationID, FormulaID, UserID


class ComputationStatus(enum.Enum):
    Running = "running"
    Completed = "completed"
    Failed = "failed"


class StudentOutcome(enum.Enum):
    Succeeded = "succeeded"
    Failed = "failed"


class StudentResult(BaseModel):
    """Outcome of evaluating one student within a computation."""

    student_id: UserID
    outcome: StudentOutcome
    raw_score: decimal.Decimal | None = None
    letter: str | None = None
    error: str | None = None
    message: str | None = None


class GradeComputation(BaseModel):
    computation_id: ComputationID
    class_offering_id: ClassOfferingID
    formula_id: FormulaID
    triggered_by: UserID

    status: ComputationStatus = ComputationStatus.Running
    started_at: Timestamp
    completed_at: Timestamp | None = None

    student_count: int = 0
    succeeded_count: int = 0
    failed_count: int = 0
    results: list[StudentResult] = []
    error_message: str | None = None

    @property
    def failures(self) -> list[StudentResult]:
        return [r for r in self.results if r.outcome is StudentOutcome.Failed]
