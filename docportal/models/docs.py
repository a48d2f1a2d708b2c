"""
DocPortal — Documentation Tree SQLAlchemy Models
==================================================

What:  ORM models for the four levels of the documentation hierarchy:
       Version → Module → Chapter → Document.
Why:   The database mirrors the markdown tree on disk so the reader can build
       sidebars, breadcrumbs and prev/next links without walking the file system.
How:   Each level references its parent with ON DELETE CASCADE and is unique
       by name within that parent. The `name` columns double as directory
       names under DOCS_ROOT; `display_name` is what readers see.

Disk mirror:
    <DOCS_ROOT>/<version.name>/<module.name>/<chapter.name>/<document.filename>

Query Patterns:
    - Reader tree: one Version with modules → chapters → documents, eager-loaded
      with selectinload (lazy loading is not available under AsyncSession)
    - Ordered siblings: every level carries an integer `order`; ties fall back
      to name so listings stay deterministic
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docportal.database import Base
from docportal.models.user import User


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Version(Base):
    """A top-level release of the documentation, e.g. 'v1.0'."""

    __tablename__ = "versions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Inactive versions stay in the admin tree but disappear from the reader
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    modules: Mapped[List["Module"]] = relationship(
        back_populates="version",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=lambda: (Module.order, Module.name),
    )

    def __repr__(self) -> str:
        return f"<Version(name='{self.name}', order={self.order}, active={self.is_active})>"


class Module(Base):
    """A top-level section inside a version, e.g. 'getting-started'."""

    __tablename__ = "modules"
    __table_args__ = (UniqueConstraint("version_id", "name", name="uq_modules_version_name"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    version_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("versions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    version: Mapped[Version] = relationship(back_populates="modules")
    chapters: Mapped[List["Chapter"]] = relationship(
        back_populates="module",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=lambda: (Chapter.order, Chapter.name),
    )

    def __repr__(self) -> str:
        return f"<Module(name='{self.name}', order={self.order})>"


class Chapter(Base):
    """A group of documents inside a module, e.g. 'introduction'."""

    __tablename__ = "chapters"
    __table_args__ = (UniqueConstraint("module_id", "name", name="uq_chapters_module_name"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    module_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("modules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    module: Mapped[Module] = relationship(back_populates="chapters")
    documents: Mapped[List["Document"]] = relationship(
        back_populates="chapter",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=lambda: (Document.order, Document.filename),
    )

    def __repr__(self) -> str:
        return f"<Chapter(name='{self.name}', order={self.order})>"


class Document(Base):
    """
    One markdown page.

    Columns:
        filename:     '<slug>.md', unique within the chapter; the slug is the URL segment
        raw_content:  the file as written on disk (frontmatter + markdown)
        content:      rendered HTML served to readers
        excerpt:      plain-text summary (≤ 200 chars) for listings and search
    """

    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint("chapter_id", "filename", name="uq_documents_chapter_filename"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    chapter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("chapters.id", ondelete="CASCADE"), nullable=False, index=True
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    raw_content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    excerpt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    published_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    updated_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    chapter: Mapped[Chapter] = relationship(back_populates="documents")
    published_by: Mapped[Optional[User]] = relationship(foreign_keys=[published_by_id])
    updated_by: Mapped[Optional[User]] = relationship(foreign_keys=[updated_by_id])

    @property
    def slug(self) -> str:
        return self.filename[:-3] if self.filename.endswith(".md") else self.filename

    def __repr__(self) -> str:
        return f"<Document(filename='{self.filename}', title='{self.title}')>"
