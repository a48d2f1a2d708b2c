"""
DocPortal — Docs Tree Storage Service
=======================================

What:  All file system access to the documentation tree under DOCS_ROOT:
       version/module/chapter directories, markdown files and the media library.
Why:   Centralizes path handling so every caller gets the same containment check,
       and every OS failure surfaces as a FileStorageError.
How:   Paths are resolved against DOCS_ROOT and must stay inside it. Markdown and
       media bytes are written with aiofiles so the event loop is not blocked.
Who:   TreeService (directories), DocumentService (markdown files), SyncService
       (scanning), the media library and /docs-media routes.

Security Model:
    1. Containment:   Every user-supplied path is resolved and must remain under
                      DOCS_ROOT ("../" and absolute paths are rejected with 403)
    2. Type allow-list: Declared MIME type must be on ALLOWED_MEDIA_TYPES
    3. Content check:  python-magic reads the header bytes and must agree with the
                      declared type family (a renamed .exe is not an image)
    4. Size check:     Uploads above MAX_MEDIA_SIZE are refused before writing
    5. No overwrite:   Name collisions get _1, _2… suffixes
    6. Markdown files are never listed, uploaded over or deleted as media
"""

import logging
import os
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

import aiofiles

from docportal.config import settings
from docportal.exceptions import (
    FileStorageError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# ── Allowed Upload Types ──────────────────────────────────────────────────
ALLOWED_MEDIA_TYPES = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/svg+xml",
    "video/mp4",
    "video/webm",
    "video/ogg",
    "video/quicktime",
    "application/pdf",
    "text/plain",
    "text/csv",
    "application/json",
}

# What: Content-Type sent when serving a file, keyed by extension
CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".ogg": "video/ogg",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".csv": "text/csv",
    ".json": "application/json",
    ".xml": "application/xml",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg"}
VIDEO_EXTENSIONS = {".mp4", ".webm", ".ogg", ".mov", ".avi"}
DOCUMENT_EXTENSIONS = {".pdf", ".txt", ".csv", ".json", ".xml", ".doc", ".docx"}
MEDIA_CATEGORIES = ("image", "video", "document", "other")

# libmagic reports these for text-like uploads (csv, json, svg all sniff as text)
_TEXTUAL_SNIFFS = {"application/json", "application/xml", "image/svg+xml", "application/csv"}


@dataclass
class MediaFile:
    name: str
    path: str
    type: str
    size: int
    last_modified: datetime
    url: str


def media_category(filename: str) -> str:
    """Classify a file as image, video, document or other by its extension."""
    ext = Path(filename).suffix.lower()
    if ext in IMAGE_EXTENSIONS:
        return "image"
    if ext in VIDEO_EXTENSIONS:
        return "video"
    if ext in DOCUMENT_EXTENSIONS:
        return "document"
    return "other"


def content_type_for(path: Union[str, Path]) -> str:
    return CONTENT_TYPES.get(Path(path).suffix.lower(), DEFAULT_CONTENT_TYPE)


def _content_matches(declared: str, sniffed: str) -> bool:
    if sniffed == declared:
        return True
    if declared in ("text/plain", "text/csv", "application/json", "image/svg+xml"):
        return sniffed.startswith("text/") or sniffed in _TEXTUAL_SNIFFS or sniffed == "application/x-empty"
    if declared.startswith("video/"):
        return sniffed.startswith("video/") or sniffed in ("application/ogg", "audio/ogg")
    if declared.startswith("image/"):
        return sniffed.startswith("image/")
    return False


class StorageService:
    """
    File system gateway for one docs root.

    Directory Structure:
        docs/
        ├── shared/                      ← shared assets, never synced as a version
        └── v1.0/
            └── getting-started/
                └── introduction/
                    ├── overview.md
                    └── diagram.png      ← media next to the document using it
    """

    def __init__(self, docs_root: Optional[Union[str, Path]] = None):
        """
        Args:
            docs_root: Override the configured DOCS_ROOT (used in tests).
        """
        self.root = Path(docs_root or settings.docs_root).resolve()
        logger.debug("StorageService initialized with docs_root=%s", self.root)

    # ── Paths ─────────────────────────────────────────────────────────────

    def resolve(self, *parts: str) -> Path:
        """
        Resolve path segments under the docs root.

        Raises:
            PermissionDeniedError if the result escapes the docs root.
        """
        candidate = self.root.joinpath(*[p for p in parts if p]).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            logger.warning("Rejected path outside docs root: %s", "/".join(parts))
            raise PermissionDeniedError(
                message="Access denied",
                context={"path": "/".join(parts)},
            )
        return candidate

    def relative(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def exists(self) -> bool:
        return self.root.is_dir()

    def ensure_root(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileStorageError(
                message="Could not create the documentation directory",
                context={"path": str(self.root), "os_error": str(e)},
            )

    def list_dirs(self, *parts: str) -> List[str]:
        """Sorted names of the sub-directories of a docs tree directory."""
        base = self.resolve(*parts)
        if not base.is_dir():
            return []
        return sorted(entry.name for entry in base.iterdir() if entry.is_dir())

    def list_markdown(self, *parts: str) -> List[str]:
        """Sorted markdown file names inside a docs tree directory."""
        base = self.resolve(*parts)
        if not base.is_dir():
            return []
        return sorted(
            entry.name for entry in base.iterdir() if entry.is_file() and entry.name.endswith(".md")
        )

    # ── Directories ───────────────────────────────────────────────────────

    def make_dir(self, *parts: str) -> Path:
        path = self.resolve(*parts)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Failed to create directory %s: %s", path, e)
            raise FileStorageError(
                message="Failed to create directory",
                context={"path": self.relative(path), "os_error": str(e)},
            )
        return path

    def rename_dir(self, old_parts: List[str], new_parts: List[str]) -> bool:
        """
        Rename a docs tree directory.

        Best-effort: the database is the source of truth for names, so a failed
        rename is logged and reported as False rather than raised.
        """
        source = self.resolve(*old_parts)
        target = self.resolve(*new_parts)
        if source == target:
            return True
        try:
            if source.exists():
                target.parent.mkdir(parents=True, exist_ok=True)
                source.rename(target)
            else:
                target.mkdir(parents=True, exist_ok=True)
            return True
        except OSError as e:
            logger.warning("Could not rename directory %s → %s: %s", source, target, e)
            return False

    def remove_dir(self, *parts: str) -> bool:
        """Remove a docs tree directory and its contents (best-effort)."""
        path = self.resolve(*parts)
        if path == self.root:
            raise PermissionDeniedError(message="Refusing to remove the documentation root")
        try:
            if path.exists():
                shutil.rmtree(path)
            return True
        except OSError as e:
            logger.warning("Could not remove directory %s: %s", path, e)
            return False

    # ── Markdown Files ────────────────────────────────────────────────────

    async def write_text(self, parts: List[str], content: str) -> Path:
        path = self.resolve(*parts)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "w", encoding="utf-8") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to write %s: %s", path, e)
            raise FileStorageError(
                message="Failed to save the document file. Please try again.",
                context={"path": self.relative(path), "os_error": str(e)},
            )
        logger.info("File written: %s (%d chars)", self.relative(path), len(content))
        return path

    async def read_text(self, parts: List[str]) -> str:
        path = self.resolve(*parts)
        if not path.is_file():
            raise NotFoundError(resource="file", resource_id="/".join(parts))
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                return await f.read()
        except OSError as e:
            raise FileStorageError(
                message="Failed to read the document file",
                context={"path": self.relative(path), "os_error": str(e)},
            )

    async def delete_file(self, parts: List[str]) -> bool:
        """
        Remove a file if it exists.

        Missing files are not an error: the database row is what the caller
        is really deleting.
        """
        path = self.resolve(*parts)
        try:
            if path.is_file():
                os.remove(path)
                logger.info("Deleted file: %s", self.relative(path))
                return True
            logger.debug("Delete: file already gone: %s", path.name)
            return False
        except OSError as e:
            logger.warning("Failed to delete file %s: %s", path, e)
            return False

    # ── Media Library ─────────────────────────────────────────────────────

    def list_media(self, sub_path: str = "", file_type: Optional[str] = None) -> List[MediaFile]:
        """
        List every non-markdown file below an optional sub-path, newest first.
        """
        if file_type and file_type not in MEDIA_CATEGORIES:
            raise ValidationError(
                message=f"Unknown media type '{file_type}'",
                field="type",
                context={"allowed": list(MEDIA_CATEGORIES)},
            )
        base = self.resolve(sub_path)
        if not base.is_dir():
            return []

        files: List[MediaFile] = []
        for path in base.rglob("*"):
            if not path.is_file() or path.name.endswith(".md"):
                continue
            category = media_category(path.name)
            if file_type and category != file_type:
                continue
            stat = path.stat()
            relative = self.relative(path)
            files.append(
                MediaFile(
                    name=path.name,
                    path=relative,
                    type=category,
                    size=stat.st_size,
                    last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    url=f"/docs-media/{relative}",
                )
            )
        files.sort(key=lambda f: f.last_modified, reverse=True)
        return files

    def validate_size(self, size: int) -> None:
        max_mb = settings.max_media_size / (1024 * 1024)
        if size > settings.max_media_size:
            raise ValidationError(
                message=f"File too large. Maximum size is {max_mb:.0f}MB",
                field="file",
                context={"max_size_mb": max_mb, "actual_size": size},
            )

    def validate_media_type(self, content: bytes, filename: str, declared: Optional[str]) -> str:
        """
        Check the declared type against the allow-list and the file's magic bytes.

        Returns:
            The accepted MIME type.
        """
        mime_type = (declared or "").split(";")[0].strip().lower()
        if not mime_type or mime_type == DEFAULT_CONTENT_TYPE:
            mime_type = content_type_for(filename)

        if mime_type not in ALLOWED_MEDIA_TYPES:
            raise ValidationError(
                message=f"File type {mime_type} not allowed",
                field="file",
                context={"declared_mime": mime_type, "allowed": sorted(ALLOWED_MEDIA_TYPES)},
            )

        try:
            import magic
            sniffed = magic.from_buffer(content[:2048], mime=True)
        except ImportError:
            # libmagic missing (e.g. CI image): trust the extension map instead
            logger.warning(
                "python-magic not available; falling back to extension-based type detection. "
                "Install libmagic for production security."
            )
            sniffed = content_type_for(filename)
        except Exception as e:
            logger.error("MIME type detection failed: %s", str(e))
            raise FileStorageError(
                message="Could not verify file type. Please try again.",
                context={"error": str(e)},
            )

        if not _content_matches(mime_type, sniffed):
            raise ValidationError(
                message=f"File content ({sniffed}) does not match its declared type {mime_type}",
                field="file",
                context={"declared_mime": mime_type, "detected_mime": sniffed},
            )
        return mime_type

    def _unique_target(self, directory: Path, filename: str) -> Path:
        stem, suffix = Path(filename).stem, Path(filename).suffix
        candidate = directory / filename
        counter = 1
        while candidate.exists():
            candidate = directory / f"{stem}_{counter}{suffix}"
            counter += 1
        return candidate

    async def save_media(
        self,
        filename: str,
        content: bytes,
        target_path: str = "",
        declared_type: Optional[str] = None,
    ) -> MediaFile:
        """
        Validate and store an uploaded media file.

        Validation order (cheapest first):
            1. Filename present and not markdown
            2. Size
            3. Declared type allow-list + magic bytes
            4. Containment of the target directory
        """
        name = Path(filename or "").name
        if not name:
            raise ValidationError(message="No file provided", field="file")
        if name.lower().endswith(".md"):
            raise ValidationError(
                message="Markdown files cannot be uploaded as media",
                field="file",
            )
        self.validate_size(len(content))
        self.validate_media_type(content, name, declared_type)

        directory = self.resolve(target_path)
        target = self._unique_target(directory, name)
        try:
            directory.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(target, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store media at %s: %s", target, e)
            raise FileStorageError(
                message="Failed to upload file",
                context={"path": str(target), "os_error": str(e)},
            )

        stat = target.stat()
        relative = self.relative(target)
        logger.info("Media stored: %s (%d bytes)", relative, stat.st_size)
        return MediaFile(
            name=target.name,
            path=relative,
            type=media_category(target.name),
            size=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            url=f"/docs-media/{relative}",
        )

    def delete_media(self, path: Optional[str]) -> None:
        if not path:
            raise ValidationError(message="File path required", field="path")
        target = self.resolve(path)
        if not target.is_file():
            raise NotFoundError(resource="file", resource_id=path)
        if target.name.endswith(".md"):
            raise ValidationError(
                message="Cannot delete markdown files through this endpoint",
                field="path",
            )
        try:
            os.remove(target)
        except OSError as e:
            raise FileStorageError(
                message="Failed to delete file",
                context={"path": path, "os_error": str(e)},
            )
        logger.info("Media deleted: %s", path)

    def media_file(self, path: str) -> Path:
        """
        Resolve a file for serving at /docs-media/.

        Raises:
            NotFoundError for missing files and directories, and for markdown
            (documents are served rendered, never raw).
        """
        target = self.resolve(path)
        if not target.is_file() or target.name.endswith(".md"):
            raise NotFoundError(resource="file", resource_id=path)
        return target


# ── Singleton Instance ────────────────────────────────────────────────────
storage_service = StorageService()
