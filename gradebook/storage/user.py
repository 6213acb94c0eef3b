from __future__ import annotations

import typing as t

import sqlalchemy as sqla

from gradebook.core import di
from gradebook.model import User, UserID, UserRole

from . import Session
from .table import users


def get(
    user_id: UserID,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> User | None:
    stmt = sqla.select(users.__table__).where(users.user_id == user_id)
    row = session.execute(stmt).mappings().one_or_none()
    return User(**row) if row else None


def find(
    *,
    user_ids: t.Iterable[UserID] | None = None,
    role: UserRole | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[User, ...]:
    stmt = sqla.select(users.__table__).order_by(users.name)
    if user_ids is not None:
        stmt = stmt.where(users.user_id.in_(list(user_ids)))
    if role is not None:
        stmt = stmt.where(users.role == role)
    rows = session.execute(stmt).mappings().all()
    return tuple(User(**row) for row in rows)


def create(
    *,
    email: str,
    name: str,
    role: UserRole = UserRole.Student,
    session: Session = di.Provide["storage.persistent.session"],
) -> User:
    user_id = UserID()
    stmt = sqla.insert(users).values(user_id=user_id, email=email, name=name, role=role)
    session.execute(stmt)
    session.flush()
    result = get(user_id, session=session)
    assert result is not None
    return result
