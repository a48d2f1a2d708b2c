"""
DocPortal — Search Engine Service (Meilisearch)
=================================================

What:  Client for the external full-text search engine holding one record per
       document.
Why:   Readers search across every document of every version; a dedicated
       engine gives typo tolerance, highlighting and ranking the database lacks.
How:   Talks to Meilisearch's REST API with httpx. Every call goes through a
       circuit breaker, and transport errors / 5xx responses are retried by
       tenacity with exponential backoff and jitter.
Who:   DocumentService and TreeService keep the index current; SyncService
       rebuilds it; the /api/search routes query it.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter for transient failures
    2. Circuit breaker to stop hammering the engine while it is down
    3. Index writes made while editing are best-effort: a failed write is
       logged and the edit still succeeds (a later reindex repairs the index)
    4. Queries surface failures as SearchServiceError / CircuitBreakerOpenError
       so the reader sees "search unavailable" rather than "no results"

Index record:
    {id, title, content (plain text), versionId, versionName, moduleId,
     moduleName, chapterId, chapterName, url, updatedAt}
"""

import logging
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional

import httpx
from markupsafe import escape
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from docportal.config import settings
from docportal.exceptions import (
    CircuitBreakerOpenError,
    DocPortalError,
    SearchServiceError,
)
from docportal.schemas.search import SearchResult
from docportal.services.markdown_service import EXCERPT_LENGTH, html_to_plain_text

logger = logging.getLogger(__name__)

INDEX_SETTINGS: Dict[str, Any] = {
    "filterableAttributes": ["versionId", "moduleId", "chapterId"],
    "searchableAttributes": ["title", "content", "versionName", "moduleName", "chapterName"],
    "displayedAttributes": [
        "id", "title", "content", "versionId", "versionName", "moduleId",
        "moduleName", "chapterId", "chapterName", "url", "updatedAt",
    ],
    "rankingRules": ["words", "typo", "proximity", "attribute", "sort", "exactness"],
    "stopWords": [
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    ],
    "synonyms": {
        "payment": ["pay", "transaction", "billing"],
        "api": ["endpoint", "interface"],
        "auth": ["authentication", "login", "credentials"],
    },
}

REINDEX_BATCH_SIZE = 500

# Index content is plain text that may spell out HTML; highlights come back
# between these markers and become <mark> only after escaping
HIGHLIGHT_PRE = "\u0002"
HIGHLIGHT_POST = "\u0003"


def render_excerpt(text: str) -> str:
    """Escape an engine excerpt and turn its highlight markers into <mark> tags."""
    return (
        str(escape(text))
        .replace(HIGHLIGHT_PRE, "<mark>")
        .replace(HIGHLIGHT_POST, "</mark>")
    )


class _TransientSearchError(Exception):
    """5xx from the engine; retried like a transport error."""


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Implements the circuit breaker pattern to prevent cascade failures.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow ONE request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Thread Safety:
        Not thread-safe (simple counters). uvicorn async workers share one
        process per worker, so each worker keeps its own breaker.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 30):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Check if a request is allowed through the circuit breaker.

        Raises:
            CircuitBreakerOpenError if circuit is OPEN and recovery timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Index records
# ══════════════════════════════════════════════════════════════════════════

def document_url(version_name: str, module_name: str, chapter_name: str, filename: str) -> str:
    slug = filename[:-3] if filename.endswith(".md") else filename
    return f"/docs/{version_name}/{module_name}/{chapter_name}/{slug}"


def build_index_record(document) -> Dict[str, Any]:
    """
    Build the search record for a Document whose chapter → module → version
    chain is loaded.
    """
    chapter = document.chapter
    module = chapter.module
    version = module.version
    content = html_to_plain_text(document.content) or document.title
    return {
        "id": str(document.id),
        "title": document.title,
        "content": content,
        "versionId": str(version.id),
        "versionName": version.name,
        "moduleId": str(module.id),
        "moduleName": module.display_name,
        "chapterId": str(chapter.id),
        "chapterName": chapter.display_name,
        "url": document_url(version.name, module.name, chapter.name, document.filename),
        "updatedAt": document.updated_at.isoformat() if document.updated_at else None,
    }


# ══════════════════════════════════════════════════════════════════════════
# Search Service
# ══════════════════════════════════════════════════════════════════════════

class SearchService:
    """
    Meilisearch REST client with retries and a circuit breaker.

    Error Handling Chain:
        Request fails (transport error or 5xx) → tenacity retries
        → All retries fail → record circuit breaker failure → SearchServiceError
        → Threshold reached → later calls rejected instantly (CircuitBreakerOpenError)
        → Recovery timeout → one test call (HALF_OPEN) → success closes the circuit
        4xx responses are not retried and do not trip the breaker.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
        index_name: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            transport: Custom httpx transport (tests pass httpx.MockTransport).
        """
        self.host = (host or settings.meilisearch_host).rstrip("/")
        self.api_key = settings.meilisearch_api_key if api_key is None else api_key
        self.index_name = index_name or settings.search_index
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._index_ready = False
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )
        logger.info(
            "SearchService initialized with host=%s index=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            self.host,
            self.index_name,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.host,
                headers=headers,
                timeout=settings.search_timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ── Transport ─────────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Perform one API call behind the circuit breaker.

        Returns:
            Decoded JSON body, or None for 404 and empty bodies.
        """
        request_id = str(uuid.uuid4())[:8]
        self.circuit_breaker.can_execute()

        try:
            result = await self._request_with_retry(method, path, json, params, request_id)
        except SearchServiceError:
            # 4xx: the engine answered, so it is up
            self.circuit_breaker.record_success()
            raise
        except (httpx.HTTPError, _TransientSearchError) as e:
            self.circuit_breaker.record_failure()
            logger.error("[%s] Search request %s %s failed: %s", request_id, method, path, e)
            raise SearchServiceError(
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"request_id": request_id, "attempts": settings.retry_max_attempts},
            )

        self.circuit_breaker.record_success()
        return result

    @retry(
        retry=retry_if_exception_type((httpx.TransportError, _TransientSearchError)),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _request_with_retry(
        self,
        method: str,
        path: str,
        json: Any,
        params: Optional[Dict[str, Any]],
        request_id: str,
    ) -> Any:
        start_time = time.time()
        response = await self.client.request(method, path, json=json, params=params)
        duration_ms = (time.time() - start_time) * 1000
        logger.debug(
            "[%s] %s %s → %d in %.0fms", request_id, method, path, response.status_code, duration_ms
        )

        if response.status_code >= 500:
            raise _TransientSearchError(f"{response.status_code}: {response.text[:200]}")
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            body = response.json() if response.content else {}
            raise SearchServiceError(
                message="The search engine rejected the request",
                context={
                    "status": response.status_code,
                    "code": body.get("code") if isinstance(body, dict) else None,
                },
            )
        if not response.content:
            return None
        return response.json()

    # ── Index management ──────────────────────────────────────────────────

    @property
    def _index_path(self) -> str:
        return f"/indexes/{self.index_name}"

    async def ensure_index(self) -> None:
        """Create the index (primary key `id`) and apply its settings once per process."""
        if self._index_ready:
            return
        existing = await self._request("GET", self._index_path)
        if existing is None:
            await self._request("POST", "/indexes", json={"uid": self.index_name, "primaryKey": "id"})
            logger.info("Created search index '%s'", self.index_name)
        await self._request("PATCH", f"{self._index_path}/settings", json=INDEX_SETTINGS)
        self._index_ready = True

    async def upsert_documents(self, records: List[Dict[str, Any]]) -> bool:
        """
        Add or replace records. Best-effort: failures are logged, never raised.
        """
        if not records:
            return True
        try:
            await self.ensure_index()
            await self._request(
                "POST",
                f"{self._index_path}/documents",
                json=records,
                params={"primaryKey": "id"},
            )
            return True
        except DocPortalError as e:
            logger.warning("Search index update skipped for %d record(s): %s", len(records), e.message)
            return False

    async def delete_document(self, document_id: str) -> bool:
        """Remove one record. Best-effort like upsert_documents."""
        try:
            await self._request("DELETE", f"{self._index_path}/documents/{document_id}")
            return True
        except DocPortalError as e:
            logger.warning("Search index delete skipped for %s: %s", document_id, e.message)
            return False

    async def reindex(self, records: Iterable[Dict[str, Any]]) -> int:
        """
        Replace the whole index content with `records`.

        Unlike the best-effort writes this raises, because a reindex is an
        explicit admin operation whose caller wants to know it failed.
        """
        batch = list(records)
        await self.ensure_index()
        await self._request("DELETE", f"{self._index_path}/documents")
        for start in range(0, len(batch), REINDEX_BATCH_SIZE):
            await self._request(
                "POST",
                f"{self._index_path}/documents",
                json=batch[start:start + REINDEX_BATCH_SIZE],
                params={"primaryKey": "id"},
            )
        logger.info("Reindexed %d document(s) into '%s'", len(batch), self.index_name)
        return len(batch)

    # ── Queries ───────────────────────────────────────────────────────────

    async def search(
        self,
        query: str,
        version_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[SearchResult]:
        """
        Full-text search with highlighted, cropped excerpts.

        Returns:
            [] for a blank query or a missing index.
        Raises:
            SearchServiceError / CircuitBreakerOpenError when the engine is down.
        """
        if not query or not query.strip():
            return []

        payload: Dict[str, Any] = {
            "q": query.strip(),
            "limit": limit,
            "attributesToHighlight": ["title", "content"],
            "highlightPreTag": HIGHLIGHT_PRE,
            "highlightPostTag": HIGHLIGHT_POST,
            "attributesToCrop": ["content"],
            "cropLength": EXCERPT_LENGTH,
            "showMatchesPosition": True,
        }
        if version_id:
            payload["filter"] = f'versionId = "{version_id}"'

        data = await self._request("POST", f"{self._index_path}/search", json=payload)
        if not data:
            return []

        results = []
        for hit in data.get("hits", []):
            formatted = hit.get("_formatted") or {}
            content = hit.get("content") or ""
            results.append(
                SearchResult(
                    id=str(hit.get("id")),
                    title=hit.get("title", ""),
                    excerpt=render_excerpt(formatted.get("content") or content[:EXCERPT_LENGTH]),
                    version_id=hit.get("versionId", ""),
                    version_name=hit.get("versionName", ""),
                    module_id=hit.get("moduleId", ""),
                    module_name=hit.get("moduleName", ""),
                    chapter_id=hit.get("chapterId", ""),
                    chapter_name=hit.get("chapterName", ""),
                    url=hit.get("url", ""),
                )
            )
        return results

    async def suggest(self, query: str, limit: int = 5) -> List[str]:
        """Title suggestions for type-ahead. Failures yield [] (the box just stays empty)."""
        if not query or not query.strip():
            return []
        try:
            data = await self._request(
                "POST",
                f"{self._index_path}/search",
                json={"q": query.strip(), "limit": limit, "attributesToRetrieve": ["title"]},
            )
        except DocPortalError as e:
            logger.warning("Search suggestions unavailable: %s", e.message)
            return []
        if not data:
            return []
        return [hit["title"] for hit in data.get("hits", []) if hit.get("title")]

    async def health_check(self) -> bool:
        try:
            data = await self._request("GET", "/health")
        except DocPortalError as e:
            logger.warning("Search health check failed: %s", e.message)
            return False
        return bool(data) and data.get("status") == "available"


# ── Singleton Instance ────────────────────────────────────────────────────
# Holds the circuit breaker state, which must be shared across requests
search_service = SearchService()
