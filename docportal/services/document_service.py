"""
DocPortal — Document Service (Business Logic Orchestrator)
============================================================

What:  Creates, updates, deletes and serves documents, keeping the markdown
       file, the database row and the search record in step.
Why:   A document exists three times (file on disk, row, index record); every
       write path must update all three the same way.
How:   Composes StorageService (file), markdown_service (conversions) and
       SearchService (index), with the request's AsyncSession for the row.

Orchestration Flow (create / update):
    ┌──────────┐   ┌──────────────┐   ┌────────────┐   ┌──────────┐   ┌──────────┐
    │ Validate │──▶│ Build body + │──▶│ Write .md  │──▶│ Save row │──▶│  Index   │
    │  input   │   │ frontmatter  │   │  (disk)    │   │  (DB)    │   │ (search) │
    └──────────┘   └──────────────┘   └────────────┘   └──────────┘   └──────────┘

    The index step is best-effort: a search engine outage never fails an edit.

Body resolution (first match wins):
    create: raw markdown → markdown converted from editor HTML → "# <title>" stub
    update: raw markdown (frontmatter stripped) → editor HTML → existing body
"""

import html
import logging
import re
import uuid
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from docportal.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
)
from docportal.models.docs import Chapter, Document, Module, Version
from docportal.models.user import User
from docportal.schemas.docs import (
    AuthorSummary,
    DocumentCreate,
    DocumentDetail,
    DocumentLink,
    DocumentPage,
    DocumentStructure,
    DocumentUpdate,
    NodeRef,
    TocEntry,
    VersionTree,
)
from docportal.services import markdown_service as md
from docportal.services.search_service import (
    SearchService,
    build_index_record,
    document_url,
    search_service,
)
from docportal.services.storage_service import StorageService, storage_service
from docportal.services.tree_service import (
    TreeService,
    document_chain,
    flush_session,
    tree_service,
)

logger = logging.getLogger(__name__)

_FILENAME_STEM = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def _author(user: Optional[User]) -> Optional[AuthorSummary]:
    return AuthorSummary.model_validate(user) if user is not None else None


def _file_parts(document: Document) -> List[str]:
    chapter = document.chapter
    module = chapter.module
    return [module.version.name, module.name, chapter.name, document.filename]


def build_document_detail(document: Document, content: Optional[str] = None) -> DocumentDetail:
    """DocumentDetail for a Document whose chapter → module → version chain is loaded."""
    chapter = document.chapter
    module = chapter.module
    version = module.version
    return DocumentDetail(
        id=document.id,
        chapter_id=document.chapter_id,
        filename=document.filename,
        slug=document.slug,
        title=document.title,
        content=document.content if content is None else content,
        raw_content=document.raw_content,
        excerpt=document.excerpt,
        order=document.order,
        url=document_url(version.name, module.name, chapter.name, document.filename),
        created_at=document.created_at,
        updated_at=document.updated_at,
        published_by=_author(document.published_by),
        updated_by=_author(document.updated_by),
        version=NodeRef.model_validate(version),
        module=NodeRef.model_validate(module),
        chapter=NodeRef.model_validate(chapter),
    )


class DocumentService:
    """
    Responsibilities:
        - list_structure(): admin overview (all versions, or one version's tree)
        - get_document_by_id(): admin editor load, with ancestors
        - create_document() / update_document() / delete_document()
        - get_document(): reader view with TOC and previous/next links
    """

    def __init__(
        self,
        storage: Optional[StorageService] = None,
        search: Optional[SearchService] = None,
        tree: Optional[TreeService] = None,
    ):
        self.storage = storage or storage_service
        self.search = search or search_service
        self.tree = tree or tree_service

    # ── Admin queries ─────────────────────────────────────────────────────

    async def list_structure(
        self,
        db: AsyncSession,
        version_id: Optional[uuid.UUID] = None,
    ) -> DocumentStructure:
        if version_id is not None:
            version = await self.tree.get_version_tree_by_id(db, version_id)
            return DocumentStructure(version=VersionTree.model_validate(version))
        return DocumentStructure(versions=await self.tree.list_versions(db))

    async def _load(self, db: AsyncSession, document_id: uuid.UUID) -> Document:
        result = await db.execute(
            select(Document).where(Document.id == document_id).options(*document_chain())
        )
        document = result.scalar_one_or_none()
        if document is None:
            raise NotFoundError(resource="document", resource_id=str(document_id))
        return document

    async def get_document_by_id(self, db: AsyncSession, document_id: uuid.UUID) -> DocumentDetail:
        return build_document_detail(await self._load(db, document_id))

    # ── Create ────────────────────────────────────────────────────────────

    def _clean_filename(self, filename: str) -> str:
        name = filename.strip()
        if not name.endswith(".md"):
            name = f"{name}.md"
        if not _FILENAME_STEM.match(name[:-3]):
            raise ValidationError(
                message="Filename may only contain letters, digits, '.', '_' and '-'",
                field="filename",
            )
        return name

    async def create_document(
        self,
        db: AsyncSession,
        data: DocumentCreate,
        user: Optional[User] = None,
    ) -> DocumentDetail:
        """
        Create a document file and row.

        Raises:
            ValidationError: title, chapter_id or filename missing / invalid
            NotFoundError:   chapter does not exist
            ConflictError:   filename already used in the chapter
        """
        title = (data.title or "").strip()
        if not title or data.chapter_id is None or not (data.filename or "").strip():
            raise ValidationError(message="Title, chapter ID, and filename are required")
        filename = self._clean_filename(data.filename)

        chapter = (
            await db.execute(
                select(Chapter)
                .where(Chapter.id == data.chapter_id)
                .options(selectinload(Chapter.module).selectinload(Module.version))
            )
        ).scalar_one_or_none()
        if chapter is None:
            raise NotFoundError(resource="chapter", resource_id=str(data.chapter_id))

        existing = await db.execute(
            select(Document.id).where(
                Document.chapter_id == chapter.id, Document.filename == filename
            )
        )
        if existing.first() is not None:
            raise ConflictError(resource="document", name=filename, parent="chapter")

        meta = {}
        editor_html = md.sanitize_html(data.content) if data.content else None
        if data.raw_content:
            meta, body = md.split_frontmatter(data.raw_content)
            content = editor_html or md.render_markdown(body).html
        elif editor_html:
            body = md.html_to_markdown(editor_html)
            content = editor_html
        else:
            body = f"# {title}\n\n{md.DEFAULT_BODY}"
            content = f"<h1>{html.escape(title)}</h1><p>{md.DEFAULT_BODY}</p>"

        description = md.make_excerpt(editor_html) if editor_html else ""
        meta.update({"title": title, "description": description, "order": 1})
        raw_content = md.compose_document(body, meta)

        module = chapter.module
        await self.storage.write_text(
            [module.version.name, module.name, chapter.name, filename], raw_content
        )

        last_order = await db.scalar(
            select(func.max(Document.order)).where(Document.chapter_id == chapter.id)
        )
        document = Document(
            chapter=chapter,
            filename=filename,
            title=title,
            content=content,
            raw_content=raw_content,
            excerpt=md.make_excerpt(content),
            order=1 if last_order is None else last_order + 1,
            published_by=user,
            updated_by=None,
        )
        db.add(document)
        await flush_session(db, "create_document")
        logger.info("Document created: %s", "/".join(_file_parts(document)))

        await self.search.upsert_documents([build_index_record(document)])
        return build_document_detail(document)

    # ── Update ────────────────────────────────────────────────────────────

    async def update_document(
        self,
        db: AsyncSession,
        document_id: uuid.UUID,
        data: DocumentUpdate,
        user: Optional[User] = None,
    ) -> DocumentDetail:
        """
        Rewrite a document, keeping any frontmatter keys the editor does not manage.
        """
        document = await self._load(db, document_id)
        title = (data.title or document.title).strip()

        try:
            meta, existing_body = md.split_frontmatter(document.raw_content)
        except ValidationError:
            logger.warning("Stored frontmatter of %s is invalid; replacing it", document.filename)
            meta, existing_body = {}, document.raw_content

        editor_html = md.sanitize_html(data.content) if data.content is not None else None
        if data.raw_content is not None:
            submitted_meta, body = md.split_frontmatter(data.raw_content)
            meta.update(submitted_meta)
        elif editor_html is not None:
            body = md.html_to_markdown(editor_html)
        else:
            body = existing_body

        content = editor_html if editor_html is not None else md.render_markdown(body).html
        meta["title"] = title
        raw_content = md.compose_document(body, meta)

        await self.storage.write_text(_file_parts(document), raw_content)

        document.title = title
        document.content = content
        document.raw_content = raw_content
        document.excerpt = md.make_excerpt(content)
        if user is not None:
            document.updated_by = user
        await flush_session(db, "update_document")
        logger.info("Document updated: %s", "/".join(_file_parts(document)))

        await self.search.upsert_documents([build_index_record(document)])
        return build_document_detail(document)

    # ── Delete ────────────────────────────────────────────────────────────

    async def delete_document(self, db: AsyncSession, document_id: uuid.UUID) -> None:
        document = await self._load(db, document_id)
        parts = _file_parts(document)
        doc_id = str(document.id)

        # File and index entry go only once the row delete is accepted
        await db.delete(document)
        await flush_session(db, "delete_document")
        await self.storage.delete_file(parts)
        await self.search.delete_document(doc_id)
        logger.info("Document deleted: %s", "/".join(parts))

    # ── Reader ────────────────────────────────────────────────────────────

    async def get_document(
        self,
        db: AsyncSession,
        version_name: str,
        module_name: str,
        chapter_name: str,
        slug: str,
        version: Optional[Version] = None,
    ) -> DocumentPage:
        """
        Reader view of one document.

        Args:
            version: The already-loaded version tree (pages load it for the
                     sidebar); loaded here when omitted.

        Returns:
            DocumentPage with heading ids applied to the HTML, the TOC and the
            previous/next documents in the version's reading order.
        """
        if version is None:
            version = await self.tree.get_version_tree(db, version_name)

        filename = f"{slug}.md"
        ordered: List[Document] = [
            doc
            for module in version.modules
            for chapter in module.chapters
            for doc in chapter.documents
        ]
        position = next(
            (
                index
                for index, doc in enumerate(ordered)
                if doc.filename == filename
                and doc.chapter.name == chapter_name
                and doc.chapter.module.name == module_name
            ),
            None,
        )
        if position is None:
            raise NotFoundError(
                resource="document",
                resource_id=f"{version_name}/{module_name}/{chapter_name}/{slug}",
            )

        document = ordered[position]
        content, headings = md.extract_headings(document.content)

        def link(doc: Document) -> DocumentLink:
            chapter = doc.chapter
            return DocumentLink(
                title=doc.title,
                url=document_url(version.name, chapter.module.name, chapter.name, doc.filename),
            )

        return DocumentPage(
            document=build_document_detail(document, content=content),
            toc=[TocEntry.model_validate(item) for item in headings],
            previous=link(ordered[position - 1]) if position > 0 else None,
            next=link(ordered[position + 1]) if position + 1 < len(ordered) else None,
        )


document_service = DocumentService()
