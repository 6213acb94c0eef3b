"""Grading component routes."""

from __future__ import annotations

import decimal

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from gradebook.auth import AuthContext, require_staff
from gradebook.core import di
from gradebook.grading import registry
from gradebook.model import ClassOfferingID, ComponentID, Weighting

from ..dependencies import check_access
from ..view.component import ComponentCreateRequest, ComponentListResponse, ComponentResponse, ComponentUpdateRequest

router = APIRouter(prefix="/components", tags=["components"])


@router.get("", operation_id="list_components")
@di.inject
def list_components(
    class_offering_id: ClassOfferingID,
    include_inactive: bool = False,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> ComponentListResponse:
    check_access(auth.user, class_offering_id, session=session)
    components = registry.list_components(class_offering_id, include_inactive=include_inactive, session=session)
    return ComponentListResponse(
        components=[ComponentResponse.model_validate(c) for c in components],
        total_weight=sum(
            (c.weight for c in components if c.is_active and c.weighting is Weighting.Weight), decimal.Decimal(0)
        ),
    )


@router.post("", operation_id="create_component", status_code=status.HTTP_201_CREATED)
@di.inject
def create_component(
    request: ComponentCreateRequest,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> ComponentResponse:
    component = registry.create_component(
        request.class_offering_id,
        actor=auth.user,
        name=request.name,
        label=request.label,
        weighting=request.weighting,
        weight=request.weight,
        max_score=request.max_score,
        session=session,
    )
    return ComponentResponse.model_validate(component)


@router.get("/{component_id}", operation_id="get_component")
@di.inject
def get_component(
    component_id: ComponentID,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> ComponentResponse:
    component = registry.get_component(component_id, session=session)
    check_access(auth.user, component.class_offering_id, session=session)
    return ComponentResponse.model_validate(component)


@router.patch("/{component_id}", operation_id="update_component")
@di.inject
def update_component(
    component_id: ComponentID,
    request: ComponentUpdateRequest,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> ComponentResponse:
    """Update the fields present in the request body; an explicit null clears the label."""
    changes = request.model_dump(exclude_unset=True)
    changes = {k: v for k, v in changes.items() if v is not None or k == "label"}
    component = registry.update_component(component_id, actor=auth.user, session=session, **changes)
    return ComponentResponse.model_validate(component)


@router.delete("/{component_id}", operation_id="delete_component", status_code=status.HTTP_204_NO_CONTENT)
@di.inject
def delete_component(
    component_id: ComponentID,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> None:
    registry.delete_component(component_id, actor=auth.user, session=session)
