"""
DocPortal — Search Schemas
============================

What:  Shapes returned by the search endpoints.
How:   SearchService maps each engine hit to a SearchResult; `excerpt` holds
       the highlighted, cropped content: escaped text with matches wrapped in <mark>.
"""

from typing import List

from pydantic import BaseModel


class SearchResult(BaseModel):
    id: str
    title: str
    excerpt: str
    version_id: str
    version_name: str
    module_id: str
    module_name: str
    chapter_id: str
    chapter_name: str
    url: str


class SearchResponse(BaseModel):
    query: str
    results: List[SearchResult]
    count: int


class SuggestionsResponse(BaseModel):
    query: str
    suggestions: List[str]
