from __future__ import annotations

import logging

from gradebook.errors import Forbidden, NotFoundError
from gradebook.model import ClassOffering, ClassOfferingID, User
from gradebook.storage import offering as offering_storage
from gradebook.storage import Session

from .provider import AccessPolicy

logger = logging.getLogger(__name__)


def authorize(
    actor: User,
    class_offering_id: ClassOfferingID,
    *,
    access: AccessPolicy,
    session: Session,
) -> ClassOffering:
    """Check that ``actor`` may manage grades for the offering, and load it.

    The capability check runs before the lookup so a caller without access
    learns nothing about which offerings exist.

    Raises:
        Forbidden: the actor may not manage grades for the offering
        NotFoundError: the offering does not exist
    """
    if not access.can_manage_grades(actor, class_offering_id, session=session):
        logger.info("access denied", extra={"actor_id": actor.user_id, "class_offering_id": class_offering_id})
        raise Forbidden()
    offering = offering_storage.get(class_offering_id, session=session)
    if offering is None:
        raise NotFoundError(f"class offering {class_offering_id} not found", class_offering_id=class_offering_id)
    return offering
