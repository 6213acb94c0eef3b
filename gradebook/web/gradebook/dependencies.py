"""FastAPI dependency helpers for the grading API."""

from __future__ import annotations

from sqlalchemy.orm import Session

from gradebook.core import di
from gradebook.errors import Forbidden
from gradebook.grading import AccessPolicy
from gradebook.model import ClassOfferingID, User


@di.inject
def check_access(
    user: User,
    class_offering_id: ClassOfferingID,
    *,
    session: Session,
    access: AccessPolicy = di.Provide["grading.access"],
) -> None:
    """Read-side counterpart of the capability check the grading services run on writes."""
    with session.begin():
        allowed = access.can_manage_grades(user, class_offering_id, session=session)
    if not allowed:
        raise Forbidden()
