__all__ = [
    # Base
    "BaseModel",
    "Score",
    "Timestamp",
    "Weight",
    "WithCtime",
    "WithMtime",
    "WithTimestamps",
    # Enums
    "DeploymentEnvironment",
    # ID Types
    "AcademicPeriodID",
    "AuditEventID",
    "ClassOfferingID",
    "ComponentID",
    "ComputationID",
    "FinalGradeID",
    "FormulaID",
    "FormulaTemplateID",
    "UserID",
    # Users & offerings
    "User",
    "UserRole",
    "AcademicPeriod",
    "ClassOffering",
    "Enrollment",
    # Components
    "GradingComponent",
    "Weighting",
    # Formulas
    "GradingFormula",
    "GradeBoundary",
    "RoundingRule",
    # Templates
    "FormulaTemplate",
    "TemplateCategory",
    # Computations
    "GradeComputation",
    "ComputationStatus",
    "StudentOutcome",
    "StudentResult",
    # Final grades
    "FinalGrade",
    "FinalGradeStatus",
    "GradeOverride",
    # Audit
    "AuditEvent",
    # Reports
    "ClassGradingSummary",
    "DistributionBucket",
    "GradeDistribution",
    "GradePreview",
    "RowFailure",
    "StudentTranscript",
    "TranscriptEntry",
    "TransitionReport",
]

from .audit import AuditEvent
from .base import BaseModel, Score, Timestamp, Weight, WithCtime, WithMtime, WithTimestamps
from .component import GradingComponent, Weighting
from .computation import ComputationStatus, GradeComputation, StudentOutcome, StudentResult
from .enum import DeploymentEnvironment
from .final_grade import FinalGrade, FinalGradeStatus, GradeOverride
from .formula import GradeBoundary, GradingFormula, RoundingRule
from .id import AcademicPeriodID, AuditEventID, ClassOfferingID, ComponentID, ComputationID, FinalGradeID, \
    FormulaID, FormulaTemplateID, UserID
from .offering import AcademicPeriod, ClassOffering, Enrollment
from .report import ClassGradingSummary, DistributionBucket, GradeDistribution, GradePreview, RowFailure, \
    StudentTranscript, TranscriptEntry, TransitionReport
from .template import FormulaTemplate, TemplateCategory
from .user import User, UserRole
