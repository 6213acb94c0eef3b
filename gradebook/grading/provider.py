"""Collaborators the grading services depend on.

Each is a Protocol so a deployment can substitute its own assessment store,
roster, access policy or audit trail. The SQL-backed defaults read the
tables in ``gradebook.storage.table`` and are what the container provides.

Every call receives the caller's ``session`` so that collaborator reads and
writes happen inside the same transaction as the operation that made them.
"""

from __future__ import annotations

import decimal
import logging
import typing as t

import sqlalchemy.exc

from gradebook.model import ClassOfferingID, ComponentID, User, UserID, UserRole
from gradebook.storage import assessment as assessment_storage
from gradebook.storage import audit as audit_storage
from gradebook.storage import offering as offering_storage
from gradebook.storage import roster as roster_storage
from gradebook.storage import Session

logger = logging.getLogger(__name__)


class AssessmentStore(t.Protocol):
    def get_component_scores(
        self,
        student_id: UserID,
        class_offering_id: ClassOfferingID,
        component_ids: t.Sequence[ComponentID],
        *,
        session: Session,
    ) -> dict[ComponentID, decimal.Decimal | None]: ...


class RosterProvider(t.Protocol):
    def get_students_for_offering(
        self, class_offering_id: ClassOfferingID, *, session: Session
    ) -> tuple[UserID, ...]: ...


class AccessPolicy(t.Protocol):
    def can_manage_grades(self, user: User, class_offering_id: ClassOfferingID, *, session: Session) -> bool: ...


class AuditSink(t.Protocol):
    def record(
        self, event: str, actor: User, target: str, metadata: dict[str, t.Any], *, session: Session
    ) -> None: ...


class SQLAssessmentStore(object):
    def get_component_scores(
        self,
        student_id: UserID,
        class_offering_id: ClassOfferingID,
        component_ids: t.Sequence[ComponentID],
        *,
        session: Session,
    ) -> dict[ComponentID, decimal.Decimal | None]:
        return assessment_storage.get_scores(student_id, component_ids, session=session)


class SQLRosterProvider(object):
    def get_students_for_offering(self, class_offering_id: ClassOfferingID, *, session: Session) -> tuple[UserID, ...]:
        return tuple(e.student_id for e in roster_storage.find(class_offering_id, session=session))


class SQLAccessPolicy(object):
    """Admins manage every offering; teachers manage the offerings they are assigned to."""

    def can_manage_grades(self, user: User, class_offering_id: ClassOfferingID, *, session: Session) -> bool:
        match user.role:
            case UserRole.Admin:
                return True
            case UserRole.Teacher:
                return offering_storage.is_teacher(class_offering_id, user.user_id, session=session)
            case _:
                return False


class SQLAuditSink(object):
    """Writes audit events in a savepoint of the caller's transaction.

    A failed write rolls back the savepoint only and is logged as a warning,
    so the operation being audited still commits.
    """

    def record(self, event: str, actor: User, target: str, metadata: dict[str, t.Any], *, session: Session) -> None:
        try:
            with session.begin_nested():
                audit_storage.create(
                    event=event, actor_id=actor.user_id, target=target, details=metadata, session=session
                )
        except sqlalchemy.exc.SQLAlchemyError:
            logger.warning(
                "failed to record audit event",
                exc_info=True,
                extra={"event": event, "actor_id": actor.user_id, "target": target},
            )


class LogAuditSink(object):
    """Audit trail as structured log records on the ``gradebook.audit`` logger."""

    def record(self, event: str, actor: User, target: str, metadata: dict[str, t.Any], *, session: Session) -> None:
        logging.getLogger("gradebook.audit").info(
            event, extra={"actor_id": actor.user_id, "target": target, "details": metadata}
        )
