"""
DocPortal — Authentication Schemas
====================================
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=1024)


class UserResponse(BaseModel):
    """The signed-in user as returned by /api/auth/login and /api/auth/me."""
    id: uuid.UUID
    email: str
    name: Optional[str] = None
    role: str
    created_at: datetime

    model_config = {"from_attributes": True}
