"""
DocPortal — Authentication Routes
===================================

What:  POST /api/auth/login, POST /api/auth/logout, GET /api/auth/me
How:   Login checks the credentials and stores the user id in the signed
       session cookie; logout clears the session.

Session fixation:
    The session is cleared before the new user id is written, so a cookie
    planted before sign-in never carries over into the signed-in session.
"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from docportal.database import get_db_session
from docportal.dependencies import SESSION_USER_KEY, require_user
from docportal.models.user import User
from docportal.schemas.auth import LoginRequest, UserResponse
from docportal.schemas.common import ErrorResponse, SuccessResponse
from docportal.services.auth_service import auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/login",
    response_model=UserResponse,
    responses={401: {"description": "Invalid credentials", "model": ErrorResponse}},
    summary="Sign in with email and password",
)
async def login(
    body: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    user = await auth_service.authenticate(db, body.email, body.password)
    request.session.clear()
    request.session[SESSION_USER_KEY] = str(user.id)
    return UserResponse.model_validate(user)


@router.post("/logout", response_model=SuccessResponse, summary="Sign out")
async def logout(request: Request) -> SuccessResponse:
    request.session.clear()
    return SuccessResponse(message="Signed out")


@router.get(
    "/me",
    response_model=UserResponse,
    responses={401: {"description": "Not signed in", "model": ErrorResponse}},
    summary="Current user",
)
async def me(user: User = Depends(require_user)) -> UserResponse:
    return UserResponse.model_validate(user)
