"""
DocPortal — Documentation Tree Request/Response Schemas
=========================================================

What:  Pydantic models for versions, modules, chapters and documents.
Why:   The API contract changes independently of the ORM models: responses
       add computed fields (slug, url, module counts, author summaries) and
       never expose password hashes through the author relationships.
How:   Create/update bodies validate names against NAME_PATTERN, because names
       become directory names under DOCS_ROOT. Business rules that need the
       database (duplicates, parents existing) are enforced in the services.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

# Names become directory names on disk: no separators, no leading dot
NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._-]*$"


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class VersionCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100, pattern=NAME_PATTERN)
    display_name: Optional[str] = Field(default=None, max_length=255)


class VersionUpdate(BaseModel):
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    is_active: Optional[bool] = None
    order: Optional[int] = Field(default=None, ge=0)


class ModuleCreate(BaseModel):
    version_id: uuid.UUID
    name: str = Field(min_length=1, max_length=100, pattern=NAME_PATTERN)
    display_name: Optional[str] = Field(default=None, max_length=255)
    order: Optional[int] = Field(default=None, ge=0)


class ModuleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100, pattern=NAME_PATTERN)
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    order: Optional[int] = Field(default=None, ge=0)


class ChapterCreate(BaseModel):
    module_id: uuid.UUID
    name: str = Field(min_length=1, max_length=100, pattern=NAME_PATTERN)
    display_name: Optional[str] = Field(default=None, max_length=255)
    order: Optional[int] = Field(default=None, ge=0)


class ChapterUpdate(ModuleUpdate):
    pass


class DocumentCreate(BaseModel):
    """
    Body of POST /api/admin/documents/create.

    title, chapter_id and filename are checked by DocumentService so a missing
    one is reported as a 400 with a single readable message.
    """
    title: Optional[str] = None
    chapter_id: Optional[uuid.UUID] = None
    filename: Optional[str] = None
    content: Optional[str] = Field(default=None, description="Editor HTML")
    raw_content: Optional[str] = Field(default=None, description="Markdown body")


class DocumentUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    content: Optional[str] = Field(default=None, description="Editor HTML")
    raw_content: Optional[str] = Field(default=None, description="Markdown body or full file")


class MarkdownProcessRequest(BaseModel):
    content: str


class MarkdownConvertRequest(BaseModel):
    html: str
    preserve_frontmatter: bool = False
    title: Optional[str] = None
    description: Optional[str] = None
    order: Optional[int] = None


class MarkdownValidateRequest(BaseModel):
    content: str


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class AuthorSummary(BaseModel):
    id: uuid.UUID
    name: Optional[str] = None
    email: str

    model_config = {"from_attributes": True}


class NodeRef(BaseModel):
    """Minimal reference to an ancestor in the tree (breadcrumbs, editor header)."""
    id: uuid.UUID
    name: str
    display_name: str

    model_config = {"from_attributes": True}


class DocumentSummary(BaseModel):
    id: uuid.UUID
    filename: str
    slug: str
    title: str
    excerpt: Optional[str] = None
    order: int
    updated_at: datetime
    published_by: Optional[AuthorSummary] = None
    updated_by: Optional[AuthorSummary] = None

    model_config = {"from_attributes": True}


class ChapterNode(BaseModel):
    id: uuid.UUID
    name: str
    display_name: str
    order: int
    documents: List[DocumentSummary] = []

    model_config = {"from_attributes": True}


class ModuleNode(BaseModel):
    id: uuid.UUID
    name: str
    display_name: str
    order: int
    chapters: List[ChapterNode] = []

    model_config = {"from_attributes": True}


class VersionSummary(BaseModel):
    id: uuid.UUID
    name: str
    display_name: str
    order: int
    is_active: bool
    created_at: datetime
    updated_at: datetime
    module_count: Optional[int] = None

    model_config = {"from_attributes": True}


class VersionTree(VersionSummary):
    modules: List[ModuleNode] = []


class ModuleDetail(ModuleNode):
    version_id: uuid.UUID
    version: NodeRef


class ChapterDetail(ChapterNode):
    module_id: uuid.UUID
    module: NodeRef
    version: NodeRef


class DocumentDetail(BaseModel):
    id: uuid.UUID
    chapter_id: uuid.UUID
    filename: str
    slug: str
    title: str
    content: str
    raw_content: str
    excerpt: Optional[str] = None
    order: int
    url: str
    created_at: datetime
    updated_at: datetime
    published_by: Optional[AuthorSummary] = None
    updated_by: Optional[AuthorSummary] = None
    version: NodeRef
    module: NodeRef
    chapter: NodeRef


class TocEntry(BaseModel):
    id: str
    title: str
    level: int

    model_config = {"from_attributes": True}


class DocumentLink(BaseModel):
    title: str
    url: str


class DocumentPage(BaseModel):
    """Everything the reader page needs for one document."""
    document: DocumentDetail
    toc: List[TocEntry]
    previous: Optional[DocumentLink] = None
    next: Optional[DocumentLink] = None


class DocumentStructure(BaseModel):
    """
    GET /api/admin/documents: every version with module counts, or, when a
    version is selected, that version's full tree.
    """
    versions: List[VersionSummary] = []
    version: Optional[VersionTree] = None


class SyncStats(BaseModel):
    versions: int = 0
    modules: int = 0
    chapters: int = 0
    documents: int = 0
    indexed: Optional[int] = None


class ReindexResponse(BaseModel):
    indexed: int


class MarkdownProcessResponse(BaseModel):
    html: str
    data: Dict[str, Any]


class MarkdownConvertResponse(BaseModel):
    markdown: str


class MarkdownValidateResponse(BaseModel):
    is_valid: bool
    errors: List[str]
