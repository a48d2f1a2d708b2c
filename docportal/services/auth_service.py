"""
DocPortal — Authentication Service
====================================

What:  Password hashing, credential checks and user management.
Why:   Keeps bcrypt and user lookups out of the routes and the CLI.
How:   bcrypt hashes with a per-password salt; emails are normalized to lower
       case so sign-in is case-insensitive.
Who:   /api/auth routes, the login page, the session dependencies and the CLI
       (create-user / create-admin).

Session model:
    After a successful login the route stores the user id in the signed session
    cookie (Starlette SessionMiddleware). Every request re-loads the user, so a
    deleted account or a changed role takes effect immediately.
"""

import logging
import uuid
from typing import Optional

import bcrypt
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from docportal.exceptions import AuthenticationError, DatabaseError, ValidationError
from docportal.models.user import ROLE_USER, ROLES, User

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        logger.warning("Stored password hash could not be parsed")
        return False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class AuthService:
    """
    Responsibilities:
        - authenticate(): email + password → User, or AuthenticationError
        - get_user(): session user id → User or None
        - upsert_user(): create or update an account (CLI)
    """

    async def get_user(self, db: AsyncSession, user_id: Optional[str]) -> Optional[User]:
        if not user_id:
            return None
        try:
            uid = uuid.UUID(str(user_id))
        except ValueError:
            return None
        return await db.get(User, uid)

    async def get_user_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == normalize_email(email)))
        return result.scalar_one_or_none()

    async def authenticate(self, db: AsyncSession, email: str, password: str) -> User:
        """
        Check credentials.

        Raises:
            AuthenticationError with the same message for an unknown email and a
            wrong password, so the response does not reveal which accounts exist.
        """
        user = await self.get_user_by_email(db, email)
        if user is None or not verify_password(password, user.password_hash):
            logger.info("Failed sign-in attempt for %s", normalize_email(email))
            raise AuthenticationError(message="Invalid email or password")
        logger.info("User signed in: %s", user.email)
        return user

    async def upsert_user(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        name: Optional[str] = None,
        role: str = ROLE_USER,
    ) -> User:
        """
        Create an account, or reset the password/role of an existing one.
        """
        email = normalize_email(email)
        if "@" not in email:
            raise ValidationError(message="A valid email address is required", field="email")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                message=f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
                field="password",
            )
        if role not in ROLES:
            raise ValidationError(
                message=f"Role must be one of: {', '.join(ROLES)}",
                field="role",
            )

        try:
            user = await self.get_user_by_email(db, email)
            if user is None:
                user = User(email=email, name=name, role=role, password_hash=hash_password(password))
                db.add(user)
                logger.info("Created %s account: %s", role, email)
            else:
                user.password_hash = hash_password(password)
                user.role = role
                if name:
                    user.name = name
                logger.info("Updated %s account: %s", role, email)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to save user %s: %s", email, e)
            raise DatabaseError(context={"operation": "upsert_user"})
        return user


auth_service = AuthService()
