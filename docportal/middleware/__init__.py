# Middleware package init
"""
DocPortal — Middleware Package
================================

Cross-cutting request handling shared by the JSON API and the pages.

Execution order (outermost first):
    Request → [Rate Limit] → [Request ID] → [Logging] → [Session] → [GZip] → [CORS] → route

    - Rate limit rejects before any work is done
    - Request ID is set before anything logs
    - Session decodes the signed cookie used by the auth dependencies
"""
