# Services package init
"""
DocPortal — Services Layer
============================

What:  Business logic between the routes and the three stores (database,
       DOCS_ROOT on disk, search index).
How:   Each service is a class with a module-level singleton used by the
       routes and the CLI; tests build their own instances around a
       temporary docs root and a search stub.

Service Inventory:
    - markdown_service: frontmatter, markdown → HTML, HTML → markdown, TOC
    - storage_service:  paths under DOCS_ROOT, markdown files, media library
    - search_service:   Meilisearch client with retries and a circuit breaker
    - auth_service:     bcrypt passwords, sign-in, account management
    - tree_service:     versions, modules and chapters (rows + directories)
    - document_service: document CRUD and the reader view
    - sync_service:     DOCS_ROOT → database import, full reindex
"""
