from __future__ import annotations

import typing as t

import sqlalchemy as sqla

from gradebook.core import di
from gradebook.model import AuditEvent, AuditEventID, UserID

from . import Session
from .table import audit_events


def create(
    *,
    event: str,
    actor_id: UserID,
    target: str,
    details: dict[str, t.Any],
    session: Session = di.Provide["storage.persistent.session"],
) -> AuditEventID:
    event_id = AuditEventID()
    stmt = sqla.insert(audit_events).values(
        event_id=event_id, event=event, actor_id=actor_id, target=target, details=details
    )
    session.execute(stmt)
    session.flush()
    return event_id


def find(
    *,
    target: str | None = None,
    event: str | None = None,
    actor_id: UserID | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[AuditEvent, ...]:
    """Audit events, oldest first."""
    stmt = sqla.select(audit_events.__table__).order_by(audit_events.create_time, audit_events.event_id)
    if target is not None:
        stmt = stmt.where(audit_events.target == target)
    if event is not None:
        stmt = stmt.where(audit_events.event == event)
    if actor_id is not None:
        stmt = stmt.where(audit_events.actor_id == actor_id)
    rows = session.execute(stmt).mappings().all()
    return tuple(AuditEvent(**row) for row in rows)
