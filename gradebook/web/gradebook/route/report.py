"""Reporting routes over committed final grades."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from gradebook.auth import AuthContext, get_current_user, require_staff
from gradebook.core import di
from gradebook.errors import Forbidden
from gradebook.grading import reporting
from gradebook.model import AcademicPeriodID, ClassGradingSummary, ClassOfferingID, GradeDistribution, \
    StudentTranscript, UserID, UserRole

from ..dependencies import check_access

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/class-summary/{class_offering_id}", operation_id="get_class_summary")
@di.inject
def get_class_summary(
    class_offering_id: ClassOfferingID,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> ClassGradingSummary:
    check_access(auth.user, class_offering_id, session=session)
    return reporting.get_class_summary(class_offering_id, session=session)


@router.get("/grade-distribution/{class_offering_id}", operation_id="get_grade_distribution")
@di.inject
def get_grade_distribution(
    class_offering_id: ClassOfferingID,
    auth: AuthContext = Depends(require_staff),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> GradeDistribution:
    check_access(auth.user, class_offering_id, session=session)
    return reporting.get_grade_distribution(class_offering_id, session=session)


@router.get("/student-transcript/{student_id}", operation_id="get_student_transcript")
@di.inject
def get_student_transcript(
    student_id: UserID,
    academic_period_id: list[AcademicPeriodID] | None = Query(None),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
) -> StudentTranscript:
    """Students read their own transcript, published and locked grades only.

    Staff also see draft grades, marked with their status.
    """
    if auth.role is UserRole.Student and auth.user.user_id != student_id:
        raise Forbidden()
    return reporting.get_student_transcript(
        student_id,
        academic_period_ids=academic_period_id,
        include_drafts=auth.role is not UserRole.Student,
        session=session,
    )
