"""
DocPortal — Documentation Tree Service
========================================

What:  Business logic for versions, modules and chapters: the three directory
       levels of the documentation tree.
Why:   Every structural change must land in two places at once, the database
       rows and the directories under DOCS_ROOT, with the same rules applied
       whichever route or command triggers it.
How:   The database write happens first (duplicate names surface as a
       ConflictError before anything touches the disk), then the directory is
       created, renamed or removed. The request's session rolls back if a
       later step raises.
Who:   /api/versions, /api/admin/{versions,modules,chapters}, the reader pages,
       DocumentService and the CLI.

Ordering rules:
    - New items go last: order = highest sibling order + 1, or 0 when first
    - Listings sort by (order, name) so equal orders stay deterministic
    - Versions can be re-sorted by their numeric parts ("v1.10" after "v1.2")

Deletion rules:
    Modules and chapters can only be deleted once no document exists beneath
    them; the admin must delete documents explicitly first.
"""

import logging
import re
import uuid
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from docportal.exceptions import ConflictError, DatabaseError, NotFoundError, ValidationError
from docportal.models.docs import Chapter, Document, Module, Version
from docportal.schemas.docs import (
    ChapterCreate,
    ChapterUpdate,
    ModuleCreate,
    ModuleUpdate,
    VersionCreate,
    VersionSummary,
    VersionUpdate,
)
from docportal.services.search_service import SearchService, build_index_record, search_service
from docportal.services.storage_service import StorageService, storage_service

logger = logging.getLogger(__name__)


# ── Loader options (AsyncSession cannot lazy-load) ────────────────────────

def document_authors():
    return (selectinload(Document.published_by), selectinload(Document.updated_by))


def version_tree_options():
    return (
        selectinload(Version.modules)
        .selectinload(Module.chapters)
        .selectinload(Chapter.documents)
        .options(*document_authors()),
    )


def document_chain():
    """Document → chapter → module → version, for URLs and index records."""
    return (
        selectinload(Document.chapter)
        .selectinload(Chapter.module)
        .selectinload(Module.version),
        *document_authors(),
    )


def semantic_version_key(name: str) -> Tuple:
    """Sort key comparing the numeric parts of a version name numerically."""
    numbers = tuple(int(part) for part in re.findall(r"\d+", name))
    if numbers:
        return (0, numbers, name)
    return (1, (), name)


async def flush_session(db: AsyncSession, operation: str) -> None:
    try:
        await db.flush()
    except SQLAlchemyError as e:
        logger.error("Database error during %s: %s", operation, e)
        raise DatabaseError(context={"operation": operation})


class TreeService:
    """
    Responsibilities:
        - Reader queries: active versions, one version's full tree
        - Version CRUD + semantic reordering
        - Module / chapter CRUD mirrored on disk
    """

    def __init__(
        self,
        storage: Optional[StorageService] = None,
        search: Optional[SearchService] = None,
    ):
        self.storage = storage or storage_service
        self.search = search or search_service

    # ══════════════════════════════════════════════════════════════════════
    # Versions
    # ══════════════════════════════════════════════════════════════════════

    async def list_active_versions(self, db: AsyncSession) -> List[Version]:
        result = await db.execute(
            select(Version)
            .where(Version.is_active.is_(True))
            .order_by(Version.order, Version.name)
        )
        return list(result.scalars().all())

    async def list_versions(self, db: AsyncSession) -> List[VersionSummary]:
        """All versions (active or not) with their module counts, for the admin."""
        module_counts = (
            select(Module.version_id, func.count(Module.id).label("module_count"))
            .group_by(Module.version_id)
            .subquery()
        )
        result = await db.execute(
            select(Version, func.coalesce(module_counts.c.module_count, 0))
            .outerjoin(module_counts, module_counts.c.version_id == Version.id)
            .order_by(Version.order, Version.name)
        )
        summaries = []
        for version, count in result.all():
            summary = VersionSummary.model_validate(version)
            summary.module_count = count
            summaries.append(summary)
        return summaries

    async def get_version(self, db: AsyncSession, version_id: uuid.UUID) -> Version:
        version = await db.get(Version, version_id)
        if version is None:
            raise NotFoundError(resource="version", resource_id=str(version_id))
        return version

    async def get_version_tree(
        self,
        db: AsyncSession,
        name: str,
        active_only: bool = True,
    ) -> Version:
        """
        One version with modules → chapters → documents, each level ordered.

        Raises:
            NotFoundError for unknown names (and inactive ones when active_only).
        """
        stmt = select(Version).where(Version.name == name).options(*version_tree_options())
        if active_only:
            stmt = stmt.where(Version.is_active.is_(True))
        version = (await db.execute(stmt)).scalar_one_or_none()
        if version is None:
            raise NotFoundError(resource="version", resource_id=name)
        return version

    async def get_version_tree_by_id(self, db: AsyncSession, version_id: uuid.UUID) -> Version:
        stmt = select(Version).where(Version.id == version_id).options(*version_tree_options())
        version = (await db.execute(stmt)).scalar_one_or_none()
        if version is None:
            raise NotFoundError(resource="version", resource_id=str(version_id))
        return version

    async def create_version(self, db: AsyncSession, data: VersionCreate) -> Version:
        existing = await db.execute(select(Version.id).where(Version.name == data.name))
        if existing.first() is not None:
            raise ConflictError(resource="version", name=data.name)

        last_order = await db.scalar(select(func.max(Version.order)))
        version = Version(
            name=data.name,
            display_name=data.display_name or data.name,
            order=0 if last_order is None else last_order + 1,
            is_active=True,
            modules=[],
        )
        db.add(version)
        await flush_session(db, "create_version")

        self.storage.make_dir(version.name)
        logger.info("Version created: %s (order=%d)", version.name, version.order)
        return version

    async def update_version(
        self,
        db: AsyncSession,
        version_id: uuid.UUID,
        data: VersionUpdate,
    ) -> Version:
        version = await self.get_version(db, version_id)
        if data.display_name is not None:
            version.display_name = data.display_name
        if data.is_active is not None:
            version.is_active = data.is_active
        if data.order is not None:
            version.order = data.order
        await flush_session(db, "update_version")
        logger.info("Version updated: %s", version.name)
        return version

    async def reorder_versions_semantically(self, db: AsyncSession) -> List[Version]:
        """
        Re-number every version's order by comparing names numerically
        (v1.2 < v1.10 < v2.0). Names without digits go last, alphabetically.
        """
        result = await db.execute(select(Version))
        versions = sorted(result.scalars().all(), key=lambda v: semantic_version_key(v.name))
        for position, version in enumerate(versions):
            if version.order != position:
                logger.info("Version %s: order %d → %d", version.name, version.order, position)
                version.order = position
        await flush_session(db, "reorder_versions")
        return versions

    # ══════════════════════════════════════════════════════════════════════
    # Modules
    # ══════════════════════════════════════════════════════════════════════

    async def get_module(self, db: AsyncSession, module_id: uuid.UUID) -> Module:
        stmt = (
            select(Module)
            .where(Module.id == module_id)
            .options(
                selectinload(Module.version),
                selectinload(Module.chapters)
                .selectinload(Chapter.documents)
                .options(*document_authors()),
            )
        )
        module = (await db.execute(stmt)).scalar_one_or_none()
        if module is None:
            raise NotFoundError(resource="module", resource_id=str(module_id))
        return module

    async def create_module(self, db: AsyncSession, data: ModuleCreate) -> Module:
        version = await db.get(Version, data.version_id)
        if version is None:
            raise NotFoundError(resource="version", resource_id=str(data.version_id))

        await self._ensure_module_name_free(db, version.id, data.name)

        order = data.order
        if order is None:
            last_order = await db.scalar(
                select(func.max(Module.order)).where(Module.version_id == version.id)
            )
            order = 0 if last_order is None else last_order + 1

        module = Module(
            version=version,
            name=data.name,
            display_name=data.display_name or data.name,
            order=order,
            chapters=[],
        )
        db.add(module)
        await flush_session(db, "create_module")

        self.storage.make_dir(version.name, module.name)
        logger.info("Module created: %s/%s", version.name, module.name)
        return module

    async def update_module(
        self,
        db: AsyncSession,
        module_id: uuid.UUID,
        data: ModuleUpdate,
    ) -> Module:
        module = await self.get_module(db, module_id)
        old_name = module.name

        if data.name is not None and data.name != old_name:
            await self._ensure_module_name_free(db, module.version_id, data.name)
            module.name = data.name
        if data.display_name is not None:
            module.display_name = data.display_name
        if data.order is not None:
            module.order = data.order
        await flush_session(db, "update_module")

        if module.name != old_name:
            self.storage.rename_dir(
                [module.version.name, old_name],
                [module.version.name, module.name],
            )
        if module.name != old_name or data.display_name is not None:
            await self._reindex_documents(db, Chapter.module_id == module.id)

        logger.info("Module updated: %s/%s", module.version.name, module.name)
        return module

    async def delete_module(self, db: AsyncSession, module_id: uuid.UUID) -> None:
        module = await self.get_module(db, module_id)
        count = await db.scalar(
            select(func.count(Document.id))
            .join(Chapter, Document.chapter_id == Chapter.id)
            .where(Chapter.module_id == module.id)
        )
        if count:
            raise ValidationError(
                message="Cannot delete module with existing documents. Delete all documents first.",
                context={"document_count": count},
            )

        version_name, module_name = module.version.name, module.name
        await db.delete(module)
        await flush_session(db, "delete_module")
        self.storage.remove_dir(version_name, module_name)
        logger.info("Module deleted: %s/%s", version_name, module_name)

    async def _ensure_module_name_free(
        self, db: AsyncSession, version_id: uuid.UUID, name: str
    ) -> None:
        existing = await db.execute(
            select(Module.id).where(Module.version_id == version_id, Module.name == name)
        )
        if existing.first() is not None:
            raise ConflictError(resource="module", name=name, parent="version")

    # ══════════════════════════════════════════════════════════════════════
    # Chapters
    # ══════════════════════════════════════════════════════════════════════

    async def get_chapter(self, db: AsyncSession, chapter_id: uuid.UUID) -> Chapter:
        stmt = (
            select(Chapter)
            .where(Chapter.id == chapter_id)
            .options(
                selectinload(Chapter.module).selectinload(Module.version),
                selectinload(Chapter.documents).options(*document_authors()),
            )
        )
        chapter = (await db.execute(stmt)).scalar_one_or_none()
        if chapter is None:
            raise NotFoundError(resource="chapter", resource_id=str(chapter_id))
        return chapter

    async def create_chapter(self, db: AsyncSession, data: ChapterCreate) -> Chapter:
        module = (
            await db.execute(
                select(Module)
                .where(Module.id == data.module_id)
                .options(selectinload(Module.version))
            )
        ).scalar_one_or_none()
        if module is None:
            raise NotFoundError(resource="module", resource_id=str(data.module_id))

        await self._ensure_chapter_name_free(db, module.id, data.name)

        order = data.order
        if order is None:
            last_order = await db.scalar(
                select(func.max(Chapter.order)).where(Chapter.module_id == module.id)
            )
            order = 0 if last_order is None else last_order + 1

        chapter = Chapter(
            module=module,
            name=data.name,
            display_name=data.display_name or data.name,
            order=order,
            documents=[],
        )
        db.add(chapter)
        await flush_session(db, "create_chapter")

        self.storage.make_dir(module.version.name, module.name, chapter.name)
        logger.info("Chapter created: %s/%s/%s", module.version.name, module.name, chapter.name)
        return chapter

    async def update_chapter(
        self,
        db: AsyncSession,
        chapter_id: uuid.UUID,
        data: ChapterUpdate,
    ) -> Chapter:
        chapter = await self.get_chapter(db, chapter_id)
        old_name = chapter.name

        if data.name is not None and data.name != old_name:
            await self._ensure_chapter_name_free(db, chapter.module_id, data.name)
            chapter.name = data.name
        if data.display_name is not None:
            chapter.display_name = data.display_name
        if data.order is not None:
            chapter.order = data.order
        await flush_session(db, "update_chapter")

        module = chapter.module
        if chapter.name != old_name:
            self.storage.rename_dir(
                [module.version.name, module.name, old_name],
                [module.version.name, module.name, chapter.name],
            )
        if chapter.name != old_name or data.display_name is not None:
            await self._reindex_documents(db, Document.chapter_id == chapter.id)

        logger.info("Chapter updated: %s/%s/%s", module.version.name, module.name, chapter.name)
        return chapter

    async def delete_chapter(self, db: AsyncSession, chapter_id: uuid.UUID) -> None:
        chapter = await self.get_chapter(db, chapter_id)
        if chapter.documents:
            raise ValidationError(
                message="Cannot delete chapter with existing documents. Delete all documents first.",
                context={"document_count": len(chapter.documents)},
            )

        module = chapter.module
        parts = (module.version.name, module.name, chapter.name)
        await db.delete(chapter)
        await flush_session(db, "delete_chapter")
        self.storage.remove_dir(*parts)
        logger.info("Chapter deleted: %s", "/".join(parts))

    async def _ensure_chapter_name_free(
        self, db: AsyncSession, module_id: uuid.UUID, name: str
    ) -> None:
        existing = await db.execute(
            select(Chapter.id).where(Chapter.module_id == module_id, Chapter.name == name)
        )
        if existing.first() is not None:
            raise ConflictError(resource="chapter", name=name, parent="module")

    # ── Search index upkeep ───────────────────────────────────────────────

    async def _reindex_documents(self, db: AsyncSession, condition) -> None:
        """Refresh the index records (URLs, display names) of documents below a renamed node."""
        result = await db.execute(
            select(Document)
            .join(Chapter, Document.chapter_id == Chapter.id)
            .where(condition)
            .options(*document_chain())
        )
        records = [build_index_record(doc) for doc in result.scalars().all()]
        if records:
            await self.search.upsert_documents(records)


tree_service = TreeService()
