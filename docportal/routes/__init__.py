# Routes package init
"""
DocPortal — Routes Package
============================

What:  HTTP route handlers for the JSON API, media files and HTML pages.
How:   One module per resource; each exposes a `router` included by main.py.

Route Inventory:
    - auth.py:            /api/auth/login, /logout, /me
    - versions.py:        GET /api/versions, /api/versions/{name}
    - search.py:          GET /api/search, /api/search/suggestions
    - admin_tree.py:      /api/admin/versions, /modules, /chapters
    - admin_documents.py: /api/admin/documents, /api/admin/markdown/*
    - admin_media.py:     /api/admin/media, /upload, /delete
    - docs_sync.py:       POST /api/docs/sync, /api/docs/reindex
    - media.py:           GET /docs-media/{path}
    - health.py:          GET /health
    - pages.py:           /login, /docs/..., /search, /admin/...

Routes stay thin: read the request, call a service, shape the response.
Business rules live in docportal.services.
"""
