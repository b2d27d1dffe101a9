"""
CampusNotes Backend: User & Session Schemas
=============================================
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class GoogleIdentity(BaseModel):
    """A profile already verified by the identity provider."""
    google_id: str = Field(min_length=1)
    email: str = Field(min_length=3)
    full_name: str = Field(min_length=1)
    picture: Optional[str] = None


class UserResponse(BaseModel):
    id: uuid.UUID
    google_id: str
    email: str
    full_name: str
    picture: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class SessionResponse(BaseModel):
    """Returned by the identity exchange: a bearer token plus the user."""
    token: str
    token_type: str = "bearer"
    user: UserResponse
