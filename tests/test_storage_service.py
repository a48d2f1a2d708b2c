"""
DocPortal — Storage Service Unit Tests
========================================

What:  Tests for path containment, markdown file I/O and the media library.
Why:   The storage layer is the security boundary between HTTP paths and the
       file system.
How:   Each test gets a StorageService bound to a fresh temporary docs root.

Test Strategy:
    ✅ "../" and absolute paths are rejected
    ✅ Directory listing, renaming and removal
    ✅ Upload validation: markdown refused, type allow-list, size limit
    ✅ Name collisions get numbered suffixes
    ❌ Magic-byte mismatch requires python-magic (skipped if unavailable)
"""

import pytest

from docportal.config import settings
from docportal.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from docportal.services.storage_service import content_type_for, media_category


class TestPaths:

    def test_resolve_inside_root(self, storage):
        assert storage.resolve("v1.0", "setup") == storage.root / "v1.0" / "setup"

    def test_parent_traversal_rejected(self, storage):
        with pytest.raises(PermissionDeniedError):
            storage.resolve("..", "etc", "passwd")

    def test_absolute_path_rejected(self, storage):
        with pytest.raises(PermissionDeniedError):
            storage.resolve("/etc/passwd")

    def test_root_cannot_be_removed(self, storage):
        with pytest.raises(PermissionDeniedError):
            storage.remove_dir("")


class TestDirectories:

    def test_list_dirs_sorted(self, storage):
        for name in ("v2.0", "v1.0", "shared"):
            storage.make_dir(name)
        (storage.root / "README.txt").write_text("not a dir")
        assert storage.list_dirs() == ["shared", "v1.0", "v2.0"]

    def test_list_markdown_only_md_files(self, storage, docs_root):
        chapter = docs_root / "v1" / "m" / "c"
        chapter.mkdir(parents=True)
        (chapter / "b.md").write_text("# B")
        (chapter / "a.md").write_text("# A")
        (chapter / "image.png").write_bytes(b"png")
        assert storage.list_markdown("v1", "m", "c") == ["a.md", "b.md"]

    def test_missing_directory_lists_nothing(self, storage):
        assert storage.list_dirs("nope") == []
        assert storage.list_markdown("nope") == []

    def test_rename_dir_moves_contents(self, storage, docs_root):
        (docs_root / "v1" / "old").mkdir(parents=True)
        (docs_root / "v1" / "old" / "keep.md").write_text("x")
        assert storage.rename_dir(["v1", "old"], ["v1", "new"]) is True
        assert (docs_root / "v1" / "new" / "keep.md").is_file()
        assert not (docs_root / "v1" / "old").exists()

    def test_remove_dir(self, storage, docs_root):
        (docs_root / "v1" / "m").mkdir(parents=True)
        assert storage.remove_dir("v1", "m") is True
        assert not (docs_root / "v1" / "m").exists()


class TestMarkdownFiles:

    async def test_write_then_read(self, storage):
        await storage.write_text(["v1", "m", "c", "doc.md"], "# Hello")
        assert await storage.read_text(["v1", "m", "c", "doc.md"]) == "# Hello"

    async def test_read_missing_file(self, storage):
        with pytest.raises(NotFoundError):
            await storage.read_text(["v1", "missing.md"])

    async def test_delete_missing_file_is_not_an_error(self, storage):
        assert await storage.delete_file(["v1", "gone.md"]) is False


class TestMediaUpload:

    async def test_save_text_file(self, storage):
        saved = await storage.save_media("notes.txt", b"hello world\n", "v1.0/assets", "text/plain")
        assert saved.path == "v1.0/assets/notes.txt"
        assert saved.url == "/docs-media/v1.0/assets/notes.txt"
        assert saved.type == "document"
        assert (storage.root / "v1.0" / "assets" / "notes.txt").read_bytes() == b"hello world\n"

    async def test_collision_gets_suffix(self, storage):
        await storage.save_media("notes.txt", b"first\n", "", "text/plain")
        second = await storage.save_media("notes.txt", b"second\n", "", "text/plain")
        assert second.name == "notes_1.txt"

    async def test_markdown_upload_refused(self, storage):
        with pytest.raises(ValidationError, match="Markdown"):
            await storage.save_media("page.md", b"# x", "", "text/markdown")

    async def test_disallowed_type_refused(self, storage):
        with pytest.raises(ValidationError, match="not allowed"):
            await storage.save_media("tool.exe", b"MZ\x90\x00", "", "application/x-msdownload")

    async def test_empty_filename_refused(self, storage):
        with pytest.raises(ValidationError, match="No file"):
            await storage.save_media("", b"data", "", "text/plain")

    async def test_upload_outside_root_refused(self, storage):
        with pytest.raises(PermissionDeniedError):
            await storage.save_media("notes.txt", b"hi\n", "../elsewhere", "text/plain")

    def test_size_limit(self, storage):
        with pytest.raises(ValidationError, match="too large"):
            storage.validate_size(settings.max_media_size + 1)

    async def test_content_must_match_declared_type(self, storage):
        pytest.importorskip("magic")
        with pytest.raises(ValidationError, match="does not match"):
            await storage.save_media("photo.png", b"just some text, not a picture\n", "", "image/png")


class TestMediaLibrary:

    @pytest.fixture
    def library(self, docs_root):
        (docs_root / "v1" / "c").mkdir(parents=True)
        (docs_root / "v1" / "c" / "page.md").write_text("# Page")
        (docs_root / "v1" / "c" / "shot.png").write_bytes(b"\x89PNG")
        (docs_root / "v1" / "c" / "demo.mp4").write_bytes(b"\x00\x00")
        (docs_root / "shared").mkdir()
        (docs_root / "shared" / "guide.pdf").write_bytes(b"%PDF")
        return docs_root

    def test_lists_everything_but_markdown(self, storage, library):
        names = sorted(f.name for f in storage.list_media())
        assert names == ["demo.mp4", "guide.pdf", "shot.png"]

    def test_filter_by_type(self, storage, library):
        assert [f.name for f in storage.list_media(file_type="image")] == ["shot.png"]

    def test_filter_by_sub_path(self, storage, library):
        assert [f.path for f in storage.list_media("shared")] == ["shared/guide.pdf"]

    def test_unknown_type_rejected(self, storage, library):
        with pytest.raises(ValidationError):
            storage.list_media(file_type="spreadsheet")

    def test_delete_media(self, storage, library):
        storage.delete_media("v1/c/shot.png")
        assert not (library / "v1" / "c" / "shot.png").exists()

    def test_delete_markdown_refused(self, storage, library):
        with pytest.raises(ValidationError, match="markdown"):
            storage.delete_media("v1/c/page.md")

    def test_delete_missing(self, storage, library):
        with pytest.raises(NotFoundError):
            storage.delete_media("v1/c/none.png")

    def test_delete_requires_path(self, storage):
        with pytest.raises(ValidationError, match="path required"):
            storage.delete_media("")

    def test_media_file_never_serves_markdown(self, storage, library):
        assert storage.media_file("v1/c/shot.png").name == "shot.png"
        with pytest.raises(NotFoundError):
            storage.media_file("v1/c/page.md")


class TestContentTypes:

    def test_content_type_by_extension(self):
        assert content_type_for("a/b/photo.JPG") == "image/jpeg"
        assert content_type_for("clip.webm") == "video/webm"
        assert content_type_for("blob.bin") == "application/octet-stream"

    def test_media_category(self):
        assert media_category("x.svg") == "image"
        assert media_category("x.mov") == "video"
        assert media_category("x.pdf") == "document"
        assert media_category("x.zip") == "other"
