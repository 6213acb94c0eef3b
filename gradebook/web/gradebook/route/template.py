"""Formula template routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from gradebook.auth import AuthContext, require_staff
from gradebook.core import di
from gradebook.grading import catalog
from gradebook.model import FormulaTemplateID, TemplateCategory

from ..view.formula import FormulaResponse
from ..view.template import TemplateApplyRequest, TemplateCreateRequest, TemplateDuplicateRequest, \
    TemplateListResponse, TemplateResponse

router = APIRouter(prefix="/templates", tags=["templates"])


@router.get("", operation_id="list_templates")
@di.inject
def list_templates(
    category: TemplateCategory | None = None,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> TemplateListResponse:
    templates = catalog.list_templates(category=category, session=session)
    return TemplateListResponse(templates=[TemplateResponse.model_validate(t) for t in templates])


@router.post("", operation_id="create_template", status_code=status.HTTP_201_CREATED)
@di.inject
def create_template(
    request: TemplateCreateRequest,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> TemplateResponse:
    template = catalog.create_template(
        actor=auth.user,
        name=request.name,
        expression=request.expression,
        category=request.category,
        grade_boundaries=request.grade_boundaries,
        output_scale=request.output_scale,
        rounding_rule=request.rounding_rule,
        decimal_places=request.decimal_places,
        pass_threshold=request.pass_threshold,
        description=request.description,
        session=session,
    )
    return TemplateResponse.model_validate(template)


@router.get("/{template_id}", operation_id="get_template")
@di.inject
def get_template(
    template_id: FormulaTemplateID,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> TemplateResponse:
    return TemplateResponse.model_validate(catalog.get_template(template_id, session=session))


@router.delete("/{template_id}", operation_id="delete_template", status_code=status.HTTP_204_NO_CONTENT)
@di.inject
def delete_template(
    template_id: FormulaTemplateID,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> None:
    catalog.delete_template(template_id, actor=auth.user, session=session)


@router.post("/{template_id}/duplicate", operation_id="duplicate_template", status_code=status.HTTP_201_CREATED)
@di.inject
def duplicate_template(
    template_id: FormulaTemplateID,
    request: TemplateDuplicateRequest,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> TemplateResponse:
    template = catalog.duplicate_template(template_id, actor=auth.user, name=request.name, session=session)
    return TemplateResponse.model_validate(template)


@router.post("/{template_id}/apply", operation_id="apply_template", status_code=status.HTTP_201_CREATED)
@di.inject
def apply_template(
    template_id: FormulaTemplateID,
    request: TemplateApplyRequest,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> FormulaResponse:
    """Create the offering's next formula version from the template."""
    formula = catalog.apply_template(
        template_id, request.class_offering_id, actor=auth.user, activate=request.activate, session=session
    )
    return FormulaResponse.model_validate(formula)
