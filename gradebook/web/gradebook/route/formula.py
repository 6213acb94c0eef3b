"""Grading formula routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from gradebook.auth import AuthContext, require_staff
from gradebook.core import di
from gradebook.errors import ValidationError
from gradebook.grading import catalog
from gradebook.model import ClassOfferingID, FormulaID

from ..dependencies import check_access
from ..view.formula import FormulaCreateRequest, FormulaListResponse, FormulaResponse, FormulaTestRequest, \
    FormulaTestResponse, FormulaUpdateRequest, FormulaValidateRequest, FormulaValidateResponse

router = APIRouter(prefix="/formulas", tags=["formulas"])

_nullable = {"pass_threshold", "description"}


@router.get("", operation_id="list_formulas")
@di.inject
def list_formulas(
    class_offering_id: ClassOfferingID,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> FormulaListResponse:
    check_access(auth.user, class_offering_id, session=session)
    formulas = catalog.list_formulas(class_offering_id, session=session)
    active = next((f.formula_id for f in formulas if f.is_active), None)
    return FormulaListResponse(formulas=[FormulaResponse.model_validate(f) for f in formulas], active_formula_id=active)


@router.post("", operation_id="create_formula", status_code=status.HTTP_201_CREATED)
@di.inject
def create_formula(
    request: FormulaCreateRequest,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> FormulaResponse:
    formula = catalog.create_formula(
        request.class_offering_id,
        actor=auth.user,
        expression=request.expression,
        grade_boundaries=request.grade_boundaries,
        output_scale=request.output_scale,
        rounding_rule=request.rounding_rule,
        decimal_places=request.decimal_places,
        pass_threshold=request.pass_threshold,
        description=request.description,
        activate=request.activate,
        session=session,
    )
    return FormulaResponse.model_validate(formula)


# registered ahead of /{formula_id} routes so "validate" is never taken for an id
@router.post("/validate", operation_id="validate_formula")
@di.inject
def validate_formula(
    request: FormulaValidateRequest,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> FormulaValidateResponse:
    """Check an expression against the offering's components; invalid expressions answer 422."""
    check_access(auth.user, request.class_offering_id, session=session)
    result = catalog.validate_formula(request.class_offering_id, request.expression, session=session)
    return FormulaValidateResponse(
        valid=True,
        expression=result.expression,
        canonical=result.canonical,
        references=sorted(result.references),
    )


@router.get("/{formula_id}", operation_id="get_formula")
@di.inject
def get_formula(
    formula_id: FormulaID,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> FormulaResponse:
    formula = catalog.get_formula(formula_id, session=session)
    check_access(auth.user, formula.class_offering_id, session=session)
    return FormulaResponse.model_validate(formula)


@router.patch("/{formula_id}", operation_id="update_formula")
@di.inject
def update_formula(
    formula_id: FormulaID,
    request: FormulaUpdateRequest,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> FormulaResponse:
    changes = request.model_dump(exclude_unset=True)
    changes = {k: v for k, v in changes.items() if v is not None or k in _nullable}
    if "grade_boundaries" in changes:
        changes["grade_boundaries"] = request.grade_boundaries
    formula = catalog.update_formula(formula_id, actor=auth.user, session=session, **changes)
    return FormulaResponse.model_validate(formula)


@router.delete("/{formula_id}", operation_id="delete_formula", status_code=status.HTTP_204_NO_CONTENT)
@di.inject
def delete_formula(
    formula_id: FormulaID,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> None:
    catalog.delete_formula(formula_id, actor=auth.user, session=session)


@router.post("/{formula_id}/activate", operation_id="activate_formula")
@di.inject
def activate_formula(
    formula_id: FormulaID,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> FormulaResponse:
    formula = catalog.activate_formula(formula_id, actor=auth.user, session=session)
    return FormulaResponse.model_validate(formula)


@router.post("/{formula_id}/test", operation_id="test_formula")
@di.inject
def test_formula(
    formula_id: FormulaID,
    request: FormulaTestRequest,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> FormulaTestResponse:
    """Evaluate the formula, or ``request.expression`` under its grading scheme, over sample scores."""
    formula = catalog.get_formula(formula_id, session=session)
    check_access(auth.user, formula.class_offering_id, session=session)
    expression = request.expression if request.expression is not None else formula.expression
    if not expression.strip():
        raise ValidationError("expression may not be empty", field="expression")
    result = catalog.preview_formula(
        formula.class_offering_id,
        expression,
        request.sample_scores,
        grade_boundaries=formula.grade_boundaries,
        output_scale=formula.output_scale,
        rounding_rule=formula.rounding_rule,
        decimal_places=formula.decimal_places,
        pass_threshold=formula.pass_threshold,
        session=session,
    )
    return FormulaTestResponse(
        raw_score=result.raw_score,
        letter=result.letter,
        is_passing=result.is_passing,
        breakdown=result.breakdown(expression),
    )
