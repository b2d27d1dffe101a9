"""
CampusNotes Backend: Notes Route Handlers
===========================================

What:  Upload, list, search, detail and download endpoints for notes.
How:   Extracts form/query parameters, resolves the caller, delegates to
       NoteService, returns JSON.

Auth:
    POST /api/notes/upload            required
    GET  /api/notes                   optional (drives user_vote)
    GET  /api/notes/search            optional
    GET  /api/notes/{id}              optional
    GET  /api/notes/{id}/download     public
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from campusnotes.database import get_db_session
from campusnotes.dependencies import get_current_user, get_note_service, get_optional_user
from campusnotes.models.user import User
from campusnotes.schemas.note import (
    DownloadResponse,
    ErrorResponse,
    NoteResponse,
    UploadedFile,
    UploadMetadata,
)
from campusnotes.services.note_service import NoteService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Notes"])


@router.post(
    "/notes/upload",
    status_code=201,
    response_model=NoteResponse,
    responses={
        400: {"description": "Invalid metadata or file", "model": ErrorResponse},
        401: {"description": "Not signed in", "model": ErrorResponse},
        500: {"description": "Upload could not be stored", "model": ErrorResponse},
    },
    summary="Upload a PDF note",
)
async def upload_note(
    course_name: Optional[str] = Form(None),
    course_code: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    professor_names: Optional[str] = Form(None, description="Comma separated"),
    tags: Optional[str] = Form(None, description="Comma separated"),
    year: Optional[str] = Form(None),
    semester: Optional[str] = Form(None, description="Autumn or Spring"),
    file: Optional[UploadFile] = File(None, description="The note as a PDF"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    service: NoteService = Depends(get_note_service),
) -> NoteResponse:
    """
    Form fields are validated by the service so every problem comes back
    as a 400 with a readable message instead of a schema error.
    """
    upload = None
    if file is not None:
        try:
            upload = UploadedFile(
                filename=file.filename,
                content_type=file.content_type,
                content=await file.read(),
            )
        finally:
            await file.close()
        logger.info(
            "Received upload: filename=%s, size=%d bytes",
            upload.filename or "unknown",
            upload.size,
        )

    metadata = UploadMetadata(
        course_name=course_name,
        course_code=course_code,
        description=description,
        professor_names=professor_names,
        tags=tags,
        year=year,
        semester=semester,
    )
    return await service.upload_note(db, metadata, upload, user)


@router.get(
    "/notes",
    response_model=List[NoteResponse],
    summary="Newest notes",
)
async def list_notes(
    num: int = Query(default=10, ge=1, le=100, description="Number of notes to return"),
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
    service: NoteService = Depends(get_note_service),
) -> List[NoteResponse]:
    return await service.list_notes(db, limit=num, caller_id=user.id if user else None)


@router.get(
    "/notes/search",
    response_model=List[NoteResponse],
    responses={400: {"description": "Empty query", "model": ErrorResponse}},
    summary="Search notes by course name or code",
)
async def search_notes(
    query: str = Query(default=""),
    limit: Optional[int] = Query(default=None, ge=1),
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
    service: NoteService = Depends(get_note_service),
) -> List[NoteResponse]:
    return await service.search_notes(
        db, query, caller_id=user.id if user else None, limit=limit
    )


@router.get(
    "/notes/{note_id}",
    response_model=NoteResponse,
    responses={404: {"description": "Note not found", "model": ErrorResponse}},
    summary="Get a single note",
)
async def get_note(
    note_id: UUID,
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
    service: NoteService = Depends(get_note_service),
) -> NoteResponse:
    return await service.get_note(db, note_id, caller_id=user.id if user else None)


@router.get(
    "/notes/{note_id}/download",
    response_model=DownloadResponse,
    responses={404: {"description": "Note not found", "model": ErrorResponse}},
    summary="Count a download and return the file URL",
)
async def download_note(
    note_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    service: NoteService = Depends(get_note_service),
) -> DownloadResponse:
    return await service.increment_downloads(db, note_id)
