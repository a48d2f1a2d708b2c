"""
DocPortal — User SQLAlchemy Model
===================================

What:  ORM model for the `users` table: the people who can sign in.
How:   Password hashes come from bcrypt (see services/auth_service.py);
       the role column is either 'admin' or 'user'.
Who:   AuthService for login, the auth dependencies for role checks, and
       Document for publisher/updater attribution.

Table Design Rationale:
    - UUID primary key: non-sequential, not guessable from the session cookie
    - email: unique, stored lower-cased so lookups are case-insensitive
    - role: short enum-like value; every authenticated user can read all docs,
      only admins reach the /admin surface
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from docportal.database import Base

ROLE_ADMIN = "admin"
ROLE_USER = "user"
ROLES = (ROLE_ADMIN, ROLE_USER)


class User(Base):
    """A person who can sign in to the portal."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
    )

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # bcrypt hash, never the raw password
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ROLE_USER,
        server_default=text("'user'"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def display_name(self) -> str:
        return self.name or self.email

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
