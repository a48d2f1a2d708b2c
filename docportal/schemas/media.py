"""
DocPortal — Media Library Schemas
===================================
"""

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class MediaFileResponse(BaseModel):
    name: str
    path: str = Field(description="Path relative to the docs root")
    type: str = Field(description="image, video, document or other")
    size: int
    last_modified: datetime
    url: str = Field(description="URL under /docs-media/")

    model_config = {"from_attributes": True}


class MediaListResponse(BaseModel):
    files: List[MediaFileResponse]
    total_size: int
    count: int


class MediaUploadResponse(BaseModel):
    success: bool = True
    file: MediaFileResponse
