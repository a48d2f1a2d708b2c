"""
DocPortal — HTTP Route Tests
==============================

What:  End-to-end tests through the FastAPI app: JSON API, media serving and
       the server-rendered pages.
How:   HTTPX AsyncClient on ASGITransport. The app shares the test database,
       docs root and search stub with the service fixtures, so rows created by
       sample_tree are visible to the routes.

Test Strategy:
    ✅ Error envelope {error, message, request_id} and role checks (401 / 403)
    ✅ Admin tree and document CRUD over the API
    ✅ Markdown helpers, media library, sync / reindex, search
    ✅ Reader pages, redirects for missing content and admin screens
"""

import httpx
import pytest

from docportal.exceptions import SearchServiceError
from docportal.schemas.search import SearchResult
from docportal.services.search_service import SearchService, search_service

DOC_URL = "/docs/v1.0/getting-started/introduction/overview"


# ══════════════════════════════════════════════════════════════════════════
# Health and access control
# ══════════════════════════════════════════════════════════════════════════

class TestHealth:

    async def test_health_reports_components(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["database"] == "connected"
        assert body["search"] == "available"
        assert body["docs_root"] == "present"
        assert body["status"] == "healthy"

    async def test_request_id_header(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "trace-123"})
        assert response.headers["X-Request-ID"] == "trace-123"


class TestAccessControl:

    async def test_reader_cannot_use_admin_api(self, user_client):
        response = await user_client.get("/api/admin/versions")
        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "forbidden"
        assert body["request_id"]

    async def test_reader_cannot_sync(self, user_client):
        assert (await user_client.post("/api/docs/sync")).status_code == 403

    async def test_anonymous_media_refused(self, client, docs_root):
        (docs_root / "logo.txt").write_text("logo", encoding="utf-8")
        assert (await client.get("/docs-media/logo.txt")).status_code == 401


# ══════════════════════════════════════════════════════════════════════════
# Reader API
# ══════════════════════════════════════════════════════════════════════════

class TestVersionsApi:

    async def test_list_and_tree(self, user_client, sample_tree):
        versions = (await user_client.get("/api/versions")).json()
        assert [v["name"] for v in versions] == ["v1.0"]

        tree = (await user_client.get("/api/versions/v1.0")).json()
        chapter = tree["modules"][0]["chapters"][0]
        assert tree["modules"][0]["display_name"] == "Getting Started"
        assert [d["slug"] for d in chapter["documents"]] == ["overview"]

    async def test_unknown_version(self, user_client):
        response = await user_client.get("/api/versions/v9")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


class TestSearchApi:

    async def test_results_from_engine(self, user_client, search):
        search.search.return_value = [
            SearchResult(
                id="doc-1",
                title="Install",
                excerpt="<mark>Install</mark> it",
                version_id="ver-1",
                version_name="v1.0",
                module_id="mod-1",
                module_name="Getting Started",
                chapter_id="ch-1",
                chapter_name="Introduction",
                url="/docs/v1.0/getting-started/introduction/install",
            )
        ]

        response = await user_client.get("/api/search", params={"q": "install"})

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 1
        assert body["results"][0]["module_name"] == "Getting Started"
        search.search.assert_awaited_once_with("install", version_id=None, limit=50)

    async def test_engine_down(self, user_client, search):
        search.search.side_effect = SearchServiceError(message="Search is temporarily unavailable")
        response = await user_client.get("/api/search", params={"q": "install"})
        assert response.status_code == 503
        assert response.json()["error"] == "search_unavailable"

    async def test_invalid_version_filter(self, user_client):
        response = await user_client.get("/api/search", params={"q": "x", "version": "not-a-uuid"})
        assert response.status_code == 422

    async def test_suggestions(self, user_client, search):
        search.suggest.return_value = ["Install"]
        body = (await user_client.get("/api/search/suggestions", params={"q": "ins"})).json()
        assert body == {"query": "ins", "suggestions": ["Install"]}


# ══════════════════════════════════════════════════════════════════════════
# Admin API
# ══════════════════════════════════════════════════════════════════════════

class TestAdminTreeApi:

    async def test_build_tree(self, admin_client, docs_root):
        version = await admin_client.post(
            "/api/admin/versions", json={"name": "v2.0", "display_name": "Version 2"}
        )
        assert version.status_code == 201
        version_id = version.json()["id"]

        module = await admin_client.post(
            "/api/admin/modules", json={"version_id": version_id, "name": "setup"}
        )
        assert module.status_code == 201
        assert module.json()["version"]["name"] == "v2.0"

        chapter = await admin_client.post(
            "/api/admin/chapters", json={"module_id": module.json()["id"], "name": "install"}
        )
        assert chapter.status_code == 201
        assert chapter.json()["module"]["name"] == "setup"
        assert (docs_root / "v2.0" / "setup" / "install").is_dir()

    async def test_duplicate_version(self, admin_client, sample_tree):
        response = await admin_client.post("/api/admin/versions", json={"name": "v1.0"})
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    async def test_invalid_name_rejected(self, admin_client):
        response = await admin_client.post("/api/admin/versions", json={"name": "../up"})
        assert response.status_code == 422

    async def test_deactivate_version(self, admin_client, sample_tree):
        version_id = str(sample_tree["version"].id)
        response = await admin_client.put(f"/api/admin/versions/{version_id}", json={"is_active": False})
        assert response.json()["is_active"] is False
        assert (await admin_client.get("/api/versions")).json() == []

    async def test_delete_module_with_documents(self, admin_client, sample_tree):
        response = await admin_client.delete(f"/api/admin/modules/{sample_tree['module'].id}")
        assert response.status_code == 400
        assert "Delete all documents first" in response.json()["message"]


class TestAdminDocumentsApi:

    async def test_structure(self, admin_client, sample_tree):
        body = (await admin_client.get("/api/admin/documents")).json()
        assert [v["name"] for v in body["versions"]] == ["v1.0"]
        assert body["version"] is None

        version_id = str(sample_tree["version"].id)
        body = (await admin_client.get("/api/admin/documents", params={"version_id": version_id})).json()
        assert body["version"]["modules"][0]["chapters"][0]["documents"][0]["title"] == "Overview"

    async def test_create_update_delete(self, admin_client, sample_tree, docs_root, search):
        created = await admin_client.post(
            "/api/admin/documents/create",
            json={
                "title": "Install",
                "chapter_id": str(sample_tree["chapter"].id),
                "filename": "install",
                "raw_content": "# Install\n\nUse pip.",
            },
        )
        assert created.status_code == 201
        document_id = created.json()["id"]
        assert created.json()["published_by"]["email"] == "admin@example.com"
        path = docs_root / "v1.0" / "getting-started" / "introduction" / "install.md"
        assert path.is_file()

        updated = await admin_client.put(
            f"/api/admin/documents/{document_id}", json={"raw_content": "# Install\n\nUse uv."}
        )
        assert updated.status_code == 200
        assert "<p>Use uv.</p>" in updated.json()["content"]
        assert "Use uv." in path.read_text(encoding="utf-8")

        fetched = await admin_client.get(f"/api/admin/documents/{document_id}")
        assert fetched.json()["updated_by"]["email"] == "admin@example.com"

        deleted = await admin_client.delete(f"/api/admin/documents/{document_id}")
        assert deleted.json()["success"] is True
        assert not path.exists()
        search.delete_document.assert_awaited_with(document_id)
        assert (await admin_client.get(f"/api/admin/documents/{document_id}")).status_code == 404

    async def test_create_requires_fields(self, admin_client, sample_tree):
        response = await admin_client.post(
            "/api/admin/documents/create", json={"chapter_id": str(sample_tree["chapter"].id)}
        )
        assert response.status_code == 400


class TestMarkdownApi:

    async def test_process(self, admin_client):
        response = await admin_client.post(
            "/api/admin/markdown/process", json={"content": "---\ntitle: Hi\n---\n\n# Hi"}
        )
        body = response.json()
        assert body["data"] == {"title": "Hi"}
        assert '<h1 id="hi">Hi</h1>' in body["html"]

    async def test_process_requires_content(self, admin_client):
        response = await admin_client.post("/api/admin/markdown/process", json={"content": ""})
        assert response.status_code == 400

    async def test_convert_with_frontmatter(self, admin_client):
        response = await admin_client.post(
            "/api/admin/markdown/convert",
            json={"html": "<p>Run <strong>it</strong></p>", "preserve_frontmatter": True, "title": "Run"},
        )
        markdown = response.json()["markdown"]
        assert markdown.startswith("---\n")
        assert "title: Run" in markdown
        assert markdown.rstrip().endswith("Run **it**")

    async def test_validate(self, admin_client):
        response = await admin_client.post(
            "/api/admin/markdown/validate", json={"content": "see [docs](https://x.io"}
        )
        body = response.json()
        assert body == {"is_valid": False, "errors": ["Unclosed link detected"]}


class TestMediaApi:

    async def test_upload_list_serve_delete(self, admin_client, docs_root):
        uploaded = await admin_client.post(
            "/api/admin/media/upload",
            files={"file": ("notes.txt", b"hello world\n", "text/plain")},
            data={"path": "v1.0/assets"},
        )
        assert uploaded.status_code == 201
        stored = uploaded.json()["file"]
        assert stored["url"] == "/docs-media/v1.0/assets/notes.txt"

        listing = (await admin_client.get("/api/admin/media", params={"type": "document"})).json()
        assert listing["count"] == 1
        assert listing["total_size"] == len(b"hello world\n")

        served = await admin_client.get(stored["url"])
        assert served.status_code == 200
        assert served.content == b"hello world\n"
        assert "immutable" in served.headers["cache-control"]

        deleted = await admin_client.delete("/api/admin/media/delete", params={"path": stored["path"]})
        assert deleted.status_code == 200
        assert not (docs_root / "v1.0" / "assets" / "notes.txt").exists()

    async def test_markdown_not_served_raw(self, admin_client, sample_tree):
        response = await admin_client.get("/docs-media/v1.0/getting-started/introduction/overview.md")
        assert response.status_code == 404

    async def test_path_escape_refused(self, admin_client):
        response = await admin_client.get("/api/admin/media", params={"path": "../../etc"})
        assert response.status_code in (400, 403)

    async def test_unknown_type_filter(self, admin_client):
        response = await admin_client.get("/api/admin/media", params={"type": "spreadsheet"})
        assert response.status_code == 400


class TestSyncApi:

    async def test_sync_and_reindex(self, admin_client, docs_root, search):
        guide = docs_root / "v3" / "setup" / "install" / "guide.md"
        guide.parent.mkdir(parents=True)
        guide.write_text("---\ntitle: Guide\n---\n\nSteps", encoding="utf-8")

        stats = (await admin_client.post("/api/docs/sync", params={"reindex": "true"})).json()
        assert stats == {"versions": 1, "modules": 1, "chapters": 1, "documents": 1, "indexed": 1}
        assert search.indexed[0]["title"] == "Guide"

        assert (await admin_client.post("/api/docs/reindex")).json() == {"indexed": 1}


# ══════════════════════════════════════════════════════════════════════════
# Pages
# ══════════════════════════════════════════════════════════════════════════

class TestReaderPages:

    async def test_docs_redirects_to_latest_version(self, user_client, sample_tree):
        response = await user_client.get("/docs")
        assert response.status_code == 303
        assert response.headers["location"] == "/docs/v1.0"

    async def test_no_docs_page(self, user_client):
        response = await user_client.get("/docs")
        assert response.status_code == 200
        assert "No documentation" in response.text

    async def test_version_module_chapter_pages(self, user_client, sample_tree):
        for path in ("/docs/v1.0", "/docs/v1.0/getting-started", "/docs/v1.0/getting-started/introduction"):
            response = await user_client.get(path)
            assert response.status_code == 200, path
            assert "Getting Started" in response.text

    async def test_document_page(self, user_client, sample_tree):
        response = await user_client.get(DOC_URL)
        assert response.status_code == 200
        assert "Welcome aboard." in response.text
        assert 'href="#install"' in response.text

    @pytest.mark.parametrize(
        "path, location",
        [
            ("/docs/v9", "/docs"),
            ("/docs/v1.0/nowhere", "/docs/v1.0"),
            ("/docs/v1.0/getting-started/introduction/missing", "/docs"),
        ],
    )
    async def test_missing_content_redirects(self, user_client, sample_tree, path, location):
        response = await user_client.get(path)
        assert response.status_code == 303
        assert response.headers["location"] == location

    async def test_search_page(self, user_client, sample_tree, search):
        search.search.side_effect = SearchServiceError(message="Search is temporarily unavailable")
        response = await user_client.get("/search", params={"q": "install"})
        assert response.status_code == 200
        assert "Search is temporarily unavailable" in response.text

    async def test_search_page_escapes_indexed_html(self, user_client, sample_tree, monkeypatch):
        content = "Embed <script>alert(1)</script> or <img src=x onerror=alert(1)> here"
        hit = {
            "id": "doc-1",
            "title": "Embeds",
            "content": content,
            "url": "/docs/v1.0/getting-started/introduction/embeds",
            "_formatted": {"content": content.replace("here", "\u0002here\u0003")},
        }
        engine = SearchService(
            host="http://search.test",
            api_key="",
            index_name="docs",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"hits": [hit]})),
        )
        monkeypatch.setattr(search_service, "search", engine.search)

        response = await user_client.get("/search", params={"q": "here"})
        await engine.close()

        assert response.status_code == 200
        assert "<script>alert(1)</script>" not in response.text
        assert "<img src=x" not in response.text
        assert "&lt;script&gt;alert(1)&lt;/script&gt;" in response.text
        assert "<mark>here</mark>" in response.text


class TestAdminPages:

    async def test_dashboard(self, admin_client, sample_tree):
        response = await admin_client.get("/admin")
        assert response.status_code == 200
        assert "Getting Started" in response.text
        assert "/api/docs/reindex" in response.text

    async def test_dashboard_forbidden_for_readers(self, user_client):
        response = await user_client.get("/admin")
        assert response.status_code == 403
        assert "Administrator access required" in response.text

    async def test_editor(self, admin_client, sample_tree):
        document_id = sample_tree["document"].id
        response = await admin_client.get(f"/admin/editor/{document_id}")
        assert response.status_code == 200
        assert "# Overview" in response.text
        assert f"/api/admin/documents/{document_id}" in response.text

    async def test_media_library(self, admin_client, docs_root):
        (docs_root / "diagram.png").write_bytes(b"\x89PNG\r\n\x1a\n")
        response = await admin_client.get("/admin/media")
        assert response.status_code == 200
        assert "/docs-media/diagram.png" in response.text
