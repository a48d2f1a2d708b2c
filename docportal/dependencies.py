"""
DocPortal — Request Dependencies
==================================

What:  FastAPI dependencies resolving the signed-in user from the session cookie.
How:   SessionMiddleware decodes the signed cookie into request.session; the
       user id stored at login is re-loaded from the database on each request.

    get_current_user → User | None   (pages decide what to do with anonymous)
    require_user     → User          (401 when anonymous)
    require_admin    → User          (401 when anonymous, 403 when not admin)
"""

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from docportal.database import get_db_session
from docportal.exceptions import AuthenticationError, PermissionDeniedError
from docportal.models.user import User
from docportal.services.auth_service import auth_service

SESSION_USER_KEY = "user_id"


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> Optional[User]:
    user_id = request.session.get(SESSION_USER_KEY)
    user = await auth_service.get_user(db, user_id)
    if user_id and user is None:
        # Account removed since the cookie was issued
        request.session.pop(SESSION_USER_KEY, None)
    return user


async def require_user(user: Optional[User] = Depends(get_current_user)) -> User:
    if user is None:
        raise AuthenticationError()
    return user


async def require_admin(user: User = Depends(require_user)) -> User:
    if not user.is_admin:
        raise PermissionDeniedError(message="Administrator access required")
    return user
