import typing as t

from .base import BaseModel, WithCtime
from .id import AuditEventID, UserID


class AuditEvent(WithCtime, BaseModel):
    event_id: AuditEventID
    event: str
    actor_id: UserID
    target: str
    details: dict[str, t.Any] = {}
