"""CLI commands for managing users and issuing API tokens."""

from __future__ import annotations

import datetime

from sqlalchemy.orm import Session

import gradebook.lib.cli as click
from gradebook.auth import JWTManager
from gradebook.core import di
from gradebook.model import UserID, UserRole
from gradebook.storage import user as user_storage


@click.group("user")
def user():
    """Manage users and their API tokens."""
    ...


@user.command("create")
@click.argument("email")
@click.argument("name")
@click.option("--role", "-r", type=click.EnumType(UserRole), default=UserRole.Student, help="User role")
@di.inject
def user_create(
    email: str,
    name: str,
    role: UserRole,
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """Create a new user.

    EMAIL is the user's email address.
    NAME is the user's display name.
    """
    with session.begin():
        existing = [u for u in user_storage.find(session=session) if u.email == email]
        if existing:
            click.echo(f"Error: User with email '{email}' already exists.", err=True)
            raise SystemExit(1)
        new_user = user_storage.create(email=email, name=name, role=role, session=session)

    click.echo(f"Created {new_user.role.value} {new_user.name} <{new_user.email}>: {new_user.user_id}")


@user.command("list")
@click.option("--role", "-r", type=click.EnumType(UserRole), default=None, help="Only users with this role")
@di.inject
def user_list(
    role: UserRole | None,
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """List users."""
    with session.begin():
        users = user_storage.find(role=role, session=session)

    if not users:
        click.echo("No users found.")
        return
    for u in users:
        click.echo(f"{u.user_id}  {u.role.value:<8} {u.name} <{u.email}>")


@user.command("token")
@click.argument("user_id", type=click.KeyParamType(UserID))
@click.option("--minutes", type=click.IntRange(min=2), default=None, help="Lifetime, defaults to the configured one")
@di.inject
def user_token(
    user_id: UserID,
    minutes: int | None,
    session: Session = di.Provide["storage.persistent.session"],
    jwt_manager: JWTManager = di.Provide["auth.jwt_manager"],
) -> None:
    """Issue a bearer token for USER_ID."""
    with session.begin():
        found = user_storage.get(user_id, session=session)
    if found is None:
        click.echo(f"Error: User '{user_id}' not found.", err=True)
        raise SystemExit(1)

    expires = datetime.timedelta(minutes=minutes) if minutes else None
    click.echo(jwt_manager.create_access_token(found.user_id, found.role, expires_delta=expires))
