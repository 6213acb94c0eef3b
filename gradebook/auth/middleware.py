"""Authentication dependencies for FastAPI routes."""

from __future__ import annotations

import typing as t

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from gradebook.core import di
from gradebook.model import User, UserRole
from gradebook.storage import user as user_storage

from .jwt import JWTManager, TokenData

bearer_scheme = HTTPBearer(auto_error=False)


class AuthContext(t.NamedTuple):
    user: User
    token_data: TokenData

    @property
    def role(self) -> UserRole:
        return self.user.role


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


@di.inject
def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(di.Manage["storage.persistent.session"]),
    jwt_manager: JWTManager = Depends(di.Provide["auth.jwt_manager"]),
) -> AuthContext:
    """Dependency to get the current authenticated user.

    Raises:
        HTTPException 401: no bearer token, an invalid or expired token, or an unknown user
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")

    token_data = jwt_manager.decode_token(credentials.credentials)
    if token_data is None:
        raise _unauthorized("Invalid or expired token")

    with session.begin():
        user = user_storage.get(token_data.user_id, session=session)
    if user is None:
        raise _unauthorized("User not found")

    # the stored role wins over the one in the token
    return AuthContext(user=user, token_data=token_data)


def require_role(*allowed_roles: UserRole) -> t.Callable[..., AuthContext]:
    """Dependency factory to require specific roles.

    Usage:
        @router.get("/summary")
        def summary(auth: AuthContext = Depends(require_role(UserRole.Admin, UserRole.Teacher))):
            ...
    """

    def check_role(auth: AuthContext = Depends(get_current_user)) -> AuthContext:
        if auth.role not in allowed_roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="access denied")
        return auth

    return check_role


require_staff = require_role(UserRole.Admin, UserRole.Teacher)
