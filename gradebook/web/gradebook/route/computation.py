"""Grade computation and preview routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from gradebook.auth import AuthContext, require_staff
from gradebook.core import di
from gradebook.grading import orchestrator
from gradebook.model import ClassOfferingID, ComputationID, ComputationStatus

from ..dependencies import check_access
from ..view.computation import ComputationListResponse, ComputationResponse, ComputeRequest, PreviewRequest, \
    PreviewResponse

router = APIRouter(tags=["computations"])


@router.post("/compute", operation_id="compute_grades", status_code=status.HTTP_201_CREATED)
@di.inject
def compute_grades(
    request: ComputeRequest,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> ComputationResponse:
    """Compute draft final grades for the offering's roster, or for ``student_ids``.

    Per-student failures are reported in the computation's results; the
    request itself only fails when the whole run cannot start.
    """
    computation = orchestrator.compute_grades(
        request.class_offering_id,
        actor=auth.user,
        formula_id=request.formula_id,
        student_ids=request.student_ids,
        session=session,
    )
    return ComputationResponse.model_validate(computation)


@router.post("/preview", operation_id="preview_grade")
@di.inject
def preview_grade(
    request: PreviewRequest,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> PreviewResponse:
    preview = orchestrator.preview_grade(
        request.class_offering_id,
        request.student_id,
        actor=auth.user,
        formula_override=request.formula_override,
        component_overrides=request.component_overrides,
        session=session,
    )
    return PreviewResponse.model_validate(preview)


@router.get("/computations", operation_id="list_computations")
@di.inject
def list_computations(
    class_offering_id: ClassOfferingID,
    computation_status: ComputationStatus | None = Query(None, alias="status"),
    limit: int | None = Query(None, ge=1),
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> ComputationListResponse:
    check_access(auth.user, class_offering_id, session=session)
    computations = orchestrator.list_computations(
        class_offering_id, status=computation_status, limit=limit, session=session
    )
    return ComputationListResponse(computations=[ComputationResponse.model_validate(c) for c in computations])


@router.get("/computations/{computation_id}", operation_id="get_computation")
@di.inject
def get_computation(
    computation_id: ComputationID,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> ComputationResponse:
    computation = orchestrator.get_computation(computation_id, session=session)
    check_access(auth.user, computation.class_offering_id, session=session)
    return ComputationResponse.model_validate(computation)
