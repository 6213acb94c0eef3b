import datetime

from .base import BaseModel, WithTimestamps
from .id import AcademicPeriodID, ClassOfferingID, ComputationID, FormulaID, UserID


class AcademicPeriod(WithTimestamps, BaseModel):
    academic_period_id: AcademicPeriodID
    name: str
    starts_on: datetime.date | None = None
    ends_on: datetime.date | None = None


class ClassOffering(WithTimestamps, BaseModel):
    class_offering_id: ClassOfferingID
    name: str
    academic_period_id: AcademicPeriodID | None = None

    # the single pointer to the formula currently used for computation
    active_formula_id: FormulaID | None = None
    # set while a computation holds the offering
    running_computation_id: ComputationID | None = None


class Enrollment(BaseModel):
    class_offering_id: ClassOfferingID
    student_id: UserID
    position: int = 0
    is_active: bool = True
