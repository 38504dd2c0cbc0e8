from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from sitejo.core.exceptions import AuthenticationError
from sitejo.users.models import Role, User

from .services import UserServiceDep

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


async def get_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
) -> str:
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=401,
            detail="Unauthenticated.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


async def get_current_user(
    token: Annotated[str, Depends(get_bearer_token)],
    request: Request,
    users: UserServiceDep,
) -> User:
    """Resolve the bearer token to a user, once per request."""

    cached = getattr(request.state, "user", None)
    if isinstance(cached, User):
        return cached

    try:
        user = await users.authenticate(token)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=401,
            detail=exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    request.state.user = user
    return user


def role_required(*roles: Role) -> Callable[..., User]:
    """Dependency factory ensuring the current user holds one of ``roles``."""

    allowed = frozenset(roles)

    async def dependency(user: Annotated[User, Depends(get_current_user)]) -> User:
        if user.role not in allowed:
            logger.warning("Role check failed user_id=%s role=%s", user.id, user.role.value)
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return dependency


require_student = role_required(Role.STUDENT)
require_lecturer = role_required(Role.LECTURER)
require_admin = role_required(Role.ADMIN)
require_reviewer = role_required(Role.LECTURER, Role.ADMIN)

BearerToken = Annotated[str, Depends(get_bearer_token)]
CurrentUser = Annotated[User, Depends(get_current_user)]
StudentUser = Annotated[User, Depends(require_student)]
LecturerUser = Annotated[User, Depends(require_lecturer)]
AdminUser = Annotated[User, Depends(require_admin)]
ReviewerUser = Annotated[User, Depends(require_reviewer)]
