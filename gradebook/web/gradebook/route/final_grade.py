"""Final grade routes: reads, overrides and lifecycle transitions."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from gradebook.auth import AuthContext, get_current_user, require_staff
from gradebook.core import di
from gradebook.errors import Forbidden, NotFoundError
from gradebook.grading import lifecycle, reporting
from gradebook.model import ClassOfferingID, FinalGradeStatus, TransitionReport, UserID, UserRole

from ..dependencies import check_access
from ..view.final_grade import FinalGradeListResponse, FinalGradeResponse, OverrideRequest, RemoveOverrideRequest, \
    TransitionRequest, UnlockRequest

router = APIRouter(prefix="/final-grades", tags=["final-grades"])


@router.get("", operation_id="list_final_grades")
@di.inject
def list_final_grades(
    class_offering_id: ClassOfferingID,
    grade_status: FinalGradeStatus | None = None,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> FinalGradeListResponse:
    check_access(auth.user, class_offering_id, session=session)
    grades = reporting.list_final_grades(
        class_offering_id=class_offering_id,
        statuses=None if grade_status is None else [grade_status],
        session=session,
    )
    return FinalGradeListResponse(final_grades=[FinalGradeResponse.from_model(g) for g in grades])


@router.get("/{student_id}/{class_offering_id}", operation_id="get_final_grade")
@di.inject
def get_final_grade(
    student_id: UserID,
    class_offering_id: ClassOfferingID,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> FinalGradeResponse:
    """Students may read their own grade once it is published; staff read any grade they manage."""
    if auth.role is UserRole.Student:
        if auth.user.user_id != student_id:
            raise Forbidden()
        grade = reporting.get_final_grade(student_id, class_offering_id, session=session)
        # a draft is not visible to the student it belongs to
        if not grade.is_authoritative:
            raise NotFoundError(f"no final grade for {student_id} in {class_offering_id}")
        return FinalGradeResponse.from_model(grade)

    check_access(auth.user, class_offering_id, session=session)
    grade = reporting.get_final_grade(student_id, class_offering_id, session=session)
    return FinalGradeResponse.from_model(grade)


@router.post("/{student_id}/{class_offering_id}/override", operation_id="override_final_grade")
@di.inject
def override_final_grade(
    student_id: UserID,
    class_offering_id: ClassOfferingID,
    request: OverrideRequest,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> FinalGradeResponse:
    check_access(auth.user, class_offering_id, session=session)
    grade = reporting.get_final_grade(student_id, class_offering_id, session=session)
    result = lifecycle.override_final_grade(
        grade.final_grade_id,
        actor=auth.user,
        reason=request.reason,
        score=request.score,
        letter=request.letter,
        expected_revision=request.expected_revision,
        session=session,
    )
    return FinalGradeResponse.from_model(result)


@router.delete("/{student_id}/{class_offering_id}/override", operation_id="remove_grade_override")
@di.inject
def remove_grade_override(
    student_id: UserID,
    class_offering_id: ClassOfferingID,
    request: RemoveOverrideRequest | None = None,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> FinalGradeResponse:
    request = request or RemoveOverrideRequest()
    check_access(auth.user, class_offering_id, session=session)
    grade = reporting.get_final_grade(student_id, class_offering_id, session=session)
    result = lifecycle.remove_grade_override(
        grade.final_grade_id,
        actor=auth.user,
        reason=request.reason,
        expected_revision=request.expected_revision,
        session=session,
    )
    return FinalGradeResponse.from_model(result)


@router.post("/publish", operation_id="publish_final_grades")
@di.inject
def publish(
    request: TransitionRequest,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> TransitionReport:
    return lifecycle.publish(
        request.class_offering_id, actor=auth.user, student_ids=request.student_ids, session=session
    )


@router.post("/unpublish", operation_id="unpublish_final_grades")
@di.inject
def unpublish(
    request: TransitionRequest,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> TransitionReport:
    return lifecycle.unpublish(
        request.class_offering_id, actor=auth.user, student_ids=request.student_ids, session=session
    )


@router.post("/lock", operation_id="lock_final_grades")
@di.inject
def lock(
    request: TransitionRequest,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> TransitionReport:
    return lifecycle.lock(request.class_offering_id, actor=auth.user, student_ids=request.student_ids, session=session)


@router.post("/unlock", operation_id="unlock_final_grades")
@di.inject
def unlock(
    request: UnlockRequest,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> TransitionReport:
    return lifecycle.unlock(
        request.class_offering_id,
        actor=auth.user,
        reason=request.reason,
        student_ids=request.student_ids,
        session=session,
    )
