"""View models for the grading API."""

__all__ = [
    # Component views
    "ComponentCreateRequest",
    "ComponentListResponse",
    "ComponentResponse",
    "ComponentUpdateRequest",
    # Formula views
    "FormulaCreateRequest",
    "FormulaListResponse",
    "FormulaResponse",
    "FormulaTestRequest",
    "FormulaTestResponse",
    "FormulaUpdateRequest",
    "FormulaValidateRequest",
    "FormulaValidateResponse",
    # Template views
    "TemplateApplyRequest",
    "TemplateCreateRequest",
    "TemplateDuplicateRequest",
    "TemplateListResponse",
    "TemplateResponse",
    # Computation views
    "ComputationListResponse",
    "ComputationResponse",
    "ComputeRequest",
    "PreviewRequest",
    "PreviewResponse",
    # Final grade views
    "FinalGradeListResponse",
    "FinalGradeResponse",
    "OverrideRequest",
    "RemoveOverrideRequest",
    "TransitionRequest",
    "UnlockRequest",
    # Errors
    "ErrorResponse",
    "FieldErrorDetail",
]

from .component import ComponentCreateRequest, ComponentListResponse, ComponentResponse, ComponentUpdateRequest
from .computation import ComputationListResponse, ComputationResponse, ComputeRequest, PreviewRequest, \
    PreviewResponse
from .error import ErrorResponse, FieldErrorDetail
from .final_grade import FinalGradeListResponse, FinalGradeResponse, OverrideRequest, RemoveOverrideRequest, \
    TransitionRequest, UnlockRequest
from .formula import FormulaCreateRequest, FormulaListResponse, FormulaResponse, FormulaTestRequest, \
    FormulaTestResponse, FormulaUpdateRequest, FormulaValidateRequest, FormulaValidateResponse
from .template import TemplateApplyRequest, TemplateCreateRequest, TemplateDuplicateRequest, TemplateListResponse, \
    TemplateResponse
