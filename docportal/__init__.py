"""
DocPortal — Application Package
=================================

Versioned documentation portal: signed-in users read a Version → Module →
Chapter → Document tree; administrators edit it, manage media and keep the
search index current.

    ┌─────────────────────────────────────┐
    │   Routes (JSON API + HTML pages)    │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services                          │  ← tree, documents, sync, search,
    │                                     │    storage, markdown, auth
    ├─────────────────────────────────────┤
    │   Models & Schemas                  │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │   Database  │  DOCS_ROOT  │ Search  │  ← three stores kept in step
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
