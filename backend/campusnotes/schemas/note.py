"""
CampusNotes Backend: Note Request/Response Schemas
====================================================

What:  Pydantic models defining the API contract for notes.
How:   FastAPI uses these models to serialize responses and generate the
       OpenAPI documentation. Upload form fields are normalized into
       `NoteCreate` by NoteService before anything is stored.
"""

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Input Models
# ══════════════════════════════════════════════════════════════════════════


class UploadMetadata(BaseModel):
    """Raw multipart form fields, exactly as received."""
    course_name: Optional[str] = None
    course_code: Optional[str] = None
    description: Optional[str] = None
    professor_names: Optional[str] = None
    tags: Optional[str] = None
    year: Optional[str] = None
    semester: Optional[str] = None


class UploadedFile(BaseModel):
    """An already-received upload payload."""
    filename: Optional[str] = None
    content_type: Optional[str] = None
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


class NoteCreate(BaseModel):
    """Validated, normalized note metadata ready for insertion."""
    course_name: str = Field(min_length=1)
    course_code: str = Field(min_length=1)
    description: Optional[str] = None
    professor_names: Optional[List[str]] = None
    tags: List[str] = Field(default_factory=list)
    note_year: int
    note_semester: Literal["Autumn", "Spring"]

    model_config = {"frozen": True}


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class ResponseUser(BaseModel):
    """Public profile of a note's uploader."""
    id: uuid.UUID
    full_name: str
    picture: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class NoteResponse(BaseModel):
    """
    What:  Full representation of a note with its derived vote tallies.
    Who:   Returned by upload, list, search and detail endpoints.

    upvotes / downvotes / user_vote are computed per request and never
    stored. user_vote is the caller's vote (null when anonymous or when the
    caller has not voted).
    """
    id: uuid.UUID
    course_name: str
    course_code: str
    description: Optional[str] = None
    professor_names: Optional[List[str]] = None
    tags: List[str] = Field(default_factory=list)
    is_public: bool
    has_preview_image: bool
    preview_image_url: str = Field(description="Absolute URL of the JPEG preview")
    file_url: str = Field(description="Absolute URL of the PDF")
    uploader_user: ResponseUser
    created_at: datetime
    upvotes: int = 0
    downvotes: int = 0
    user_vote: Optional[bool] = None
    downloads: int = 0
    year: int
    semester: str


class DownloadResponse(BaseModel):
    """Returned by the download endpoint after the counter was incremented."""
    note_id: uuid.UUID
    downloads: int
    file_url: str


# ══════════════════════════════════════════════════════════════════════════
# Error / Health Models
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "validation_error",
            "message": "Only PDF files are supported",
            "details": {"field": "file"},
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str
    database: str = Field(description="connected, disconnected")
    preview_renderer: str = Field(description="available, unavailable, circuit_open")
    uptime_seconds: float
