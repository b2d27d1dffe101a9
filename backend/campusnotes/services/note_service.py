"""
CampusNotes Backend: Note Service (Upload Orchestrator & Note Queries)
========================================================================

What:  Coordinates the upload workflow across the database, the object
       store and the preview renderer, and serves the note read paths.
How:   Composes ObjectStore and a PreviewRenderer with the request's
       AsyncSession. Every step of an upload runs inside one database
       transaction; files are compensated when that transaction fails.
Who:   Called by the notes route handlers.

Upload Flow (POST /api/notes/upload):
    ┌───────────┐   ┌──────────────┐   ┌───────────┐   ┌───────────┐   ┌────────┐
    │ Validate  │──▶│ INSERT note  │──▶│ Write PDF │──▶│ Render    │──▶│ COMMIT │
    │ metadata  │   │ (flush, tx   │   │ (atomic)  │   │ preview   │   │        │
    │ and file  │   │  stays open) │   │           │   │ (optional)│   │        │
    └───────────┘   └──────────────┘   └───────────┘   └───────────┘   └────────┘

    On failure:
    - validation      → ValidationError, nothing touched
    - insert          → rollback, DatabaseError
    - PDF write       → rollback, UploadFailedError("Failed to save file")
    - preview render  → swallowed, note is stored without preview
    - flag / commit   → rollback, delete PDF and preview,
                        UploadFailedError("Failed to save note to database")
"""

import logging
import uuid
from pathlib import Path
from typing import List, Optional

from sqlalchemy import Boolean, func, literal, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from campusnotes.config import SEMESTERS, Settings, settings
from campusnotes.exceptions import (
    DatabaseError,
    FileStorageError,
    NotFoundError,
    PreviewRenderError,
    UploadFailedError,
    ValidationError,
)
from campusnotes.models.note import Note
from campusnotes.models.user import User
from campusnotes.models.vote import Vote
from campusnotes.schemas.note import (
    DownloadResponse,
    NoteCreate,
    NoteResponse,
    ResponseUser,
    UploadedFile,
    UploadMetadata,
)
from campusnotes.services.object_store import ObjectStore
from campusnotes.services.preview_base import PreviewRenderer
from campusnotes.services.preview_renderer import PdftoppmRenderer

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


def split_csv(raw: Optional[str]) -> List[str]:
    """Comma separated form value → trimmed items, empties dropped."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class NoteService:
    """
    Business logic layer for notes.

    Responsibilities:
        - upload_note(): the transactional upload workflow
        - list_notes() / search_notes() / get_note(): reads with derived
          vote tallies for the caller
        - increment_downloads(): atomic server-side counter
    """

    def __init__(
        self,
        object_store: ObjectStore,
        renderer: PreviewRenderer,
        config: Settings,
    ):
        self.object_store = object_store
        self.renderer = renderer
        self.config = config

    # ══════════════════════════════════════════════════════════════════════
    # Validation
    # ══════════════════════════════════════════════════════════════════════

    def validate_metadata(self, metadata: UploadMetadata) -> NoteCreate:
        """
        Normalize and validate the upload form fields.

        Raises:
            ValidationError with the message shown to the uploader.
        """
        course_name = (metadata.course_name or "").strip()
        if not course_name:
            raise ValidationError("Course name is required", field="course_name")

        course_code = (metadata.course_code or "").strip()
        if not course_code:
            raise ValidationError("Course code is required", field="course_code")

        semester = (metadata.semester or "").strip() or self.config.default_note_semester
        if semester not in SEMESTERS:
            raise ValidationError(
                "Semester is required and must be one of: " + ", ".join(SEMESTERS),
                field="semester",
            )

        raw_year = (metadata.year or "").strip()
        if raw_year:
            try:
                year = int(raw_year)
            except ValueError:
                raise ValidationError("Invalid year", field="year")
            if year <= 0:
                raise ValidationError("Invalid year", field="year")
        else:
            year = self.config.default_note_year

        description = (metadata.description or "").strip() or None

        return NoteCreate(
            course_name=course_name,
            course_code=course_code,
            description=description,
            professor_names=split_csv(metadata.professor_names) or None,
            tags=split_csv(metadata.tags),
            note_year=year,
            note_semester=semester,
        )

    def validate_file(self, upload: Optional[UploadedFile]) -> UploadedFile:
        """
        Check presence, content type and size of the uploaded PDF.

        The declared content type is trusted; the byte length is measured.
        """
        if upload is None:
            raise ValidationError("File not provided", field="file")

        if upload.content_type != PDF_CONTENT_TYPE:
            raise ValidationError(
                "Only PDF files are supported",
                field="file",
                context={"content_type": upload.content_type},
            )

        if upload.size == 0:
            raise ValidationError("File is empty", field="file")

        if upload.size > self.config.max_file_size:
            raise ValidationError(
                "File size too big. Only files up to "
                f"{self.config.file_size_limit_mb} MiB are allowed.",
                field="file",
                context={"size": upload.size, "limit": self.config.max_file_size},
            )

        return upload

    # ══════════════════════════════════════════════════════════════════════
    # Upload Workflow
    # ══════════════════════════════════════════════════════════════════════

    async def upload_note(
        self,
        db: AsyncSession,
        metadata: UploadMetadata,
        upload: Optional[UploadedFile],
        uploader: User,
    ) -> NoteResponse:
        """
        Store a note so that row, PDF and preview flag agree.

        Guarantees:
            - A committed note always has its PDF in the object store.
            - has_preview_image is true only if the preview file exists.
            - A failed upload leaves no row and (barring a crash between
              commit failure and cleanup) no files.

        Raises:
            ValidationError, DatabaseError, UploadFailedError
        """
        note_data = self.validate_metadata(metadata)
        upload = self.validate_file(upload)

        # ── Step 1: Insert row inside an open transaction ─────────────────
        note = Note(
            **note_data.model_dump(),
            uploader_user_id=uploader.id,
            has_preview_image=False,
        )
        try:
            db.add(note)
            await db.flush()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to insert note row: %s", str(e))
            raise DatabaseError(
                message="Failed to save note to database",
                context={"error_type": type(e).__name__},
            )

        note_id = note.id
        note_key = self.object_store.note_key(note_id)
        preview_key = self.object_store.preview_key(note_id)
        logger.info("Note row %s inserted for uploader %s", note_id, uploader.id)

        # ── Step 2: Durable PDF ───────────────────────────────────────────
        try:
            pdf_path = await self.object_store.write(note_key, upload.content)
        except FileStorageError as e:
            await db.rollback()
            raise UploadFailedError(message="Failed to save file", context=e.context)

        # ── Step 3: Best-effort preview ───────────────────────────────────
        has_preview = await self._render_preview(pdf_path, preview_key)

        # ── Step 4: Flag update + commit ──────────────────────────────────
        try:
            if has_preview:
                await db.execute(
                    update(Note)
                    .where(Note.id == note_id)
                    .values(has_preview_image=True)
                )
            await db.commit()
        except SQLAlchemyError as e:
            logger.error("Commit failed for note %s: %s", note_id, str(e))
            await db.rollback()
            await self._compensate(note_key, preview_key)
            raise UploadFailedError(
                message="Failed to save note to database",
                context={"note_id": str(note_id), "error_type": type(e).__name__},
            )

        note.has_preview_image = has_preview
        logger.info("Note %s committed (preview=%s)", note_id, has_preview)

        return self._build_response(note, uploader)

    async def _render_preview(self, pdf_path: Path, preview_key: str) -> bool:
        dest = self.object_store.local_path_for(preview_key).with_suffix("")
        try:
            await self.renderer.render(pdf_path, dest)
        except (PreviewRenderError, OSError) as e:
            logger.warning("Continuing without preview for %s: %s", pdf_path.name, e)
            return False
        return True

    async def _compensate(self, *keys: str) -> None:
        """Delete files written by an upload whose transaction failed."""
        for key in keys:
            try:
                await self.object_store.delete(key)
            except FileStorageError as e:
                # Left for the reconciliation sweep
                logger.error("Compensation failed for %s: %s", key, e.message)

    # ══════════════════════════════════════════════════════════════════════
    # Reads
    # ══════════════════════════════════════════════════════════════════════

    def _note_query(self, caller_id: Optional[uuid.UUID]) -> Select:
        """
        SELECT note, uploader, upvotes, downvotes, caller's vote.

        Tallies are correlated COUNT subqueries over votes; the caller's
        vote is NULL for anonymous callers.
        """
        upvotes = (
            select(func.count(Vote.id))
            .where(Vote.note_id == Note.id, Vote.is_upvote.is_(True))
            .correlate(Note)
            .scalar_subquery()
            .label("upvotes")
        )
        downvotes = (
            select(func.count(Vote.id))
            .where(Vote.note_id == Note.id, Vote.is_upvote.is_(False))
            .correlate(Note)
            .scalar_subquery()
            .label("downvotes")
        )
        if caller_id is None:
            user_vote = literal(None, Boolean).label("user_vote")
        else:
            user_vote = (
                select(Vote.is_upvote)
                .where(Vote.note_id == Note.id, Vote.user_id == caller_id)
                .correlate(Note)
                .scalar_subquery()
                .label("user_vote")
            )

        return (
            select(Note, User, upvotes, downvotes, user_vote)
            .join(User, User.id == Note.uploader_user_id)
        )

    async def list_notes(
        self,
        db: AsyncSession,
        limit: int = 10,
        caller_id: Optional[uuid.UUID] = None,
    ) -> List[NoteResponse]:
        """Newest notes first."""
        stmt = (
            self._note_query(caller_id)
            .order_by(Note.created_at.desc(), Note.id)
            .limit(limit)
        )
        return await self._fetch_many(db, stmt)

    async def search_notes(
        self,
        db: AsyncSession,
        query: str,
        caller_id: Optional[uuid.UUID] = None,
        limit: Optional[int] = None,
    ) -> List[NoteResponse]:
        """
        Case-insensitive substring match on course name or code, ordered by
        upvotes then newest. Unbounded unless a limit is given.
        """
        term = (query or "").strip()
        if not term:
            raise ValidationError("Query cannot be empty", field="query")

        pattern = f"%{escape_like(term)}%"
        base = self._note_query(caller_id)
        upvotes = base.selected_columns.upvotes
        stmt = (
            base.where(
                or_(
                    Note.course_name.ilike(pattern, escape="\\"),
                    Note.course_code.ilike(pattern, escape="\\"),
                )
            )
            .order_by(upvotes.desc(), Note.created_at.desc(), Note.id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return await self._fetch_many(db, stmt)

    async def get_note(
        self,
        db: AsyncSession,
        note_id: uuid.UUID,
        caller_id: Optional[uuid.UUID] = None,
    ) -> NoteResponse:
        stmt = self._note_query(caller_id).where(Note.id == note_id)
        try:
            row = (await db.execute(stmt)).first()
        except SQLAlchemyError as e:
            logger.error("Database error fetching note %s: %s", note_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the note. Please try again.",
                context={"note_id": str(note_id)},
            )
        if row is None:
            raise NotFoundError(resource="note", resource_id=str(note_id))
        return self._row_to_response(row)

    async def increment_downloads(
        self,
        db: AsyncSession,
        note_id: uuid.UUID,
    ) -> DownloadResponse:
        """`downloads = downloads + 1`, evaluated by the database."""
        stmt = (
            update(Note)
            .where(Note.id == note_id)
            .values(downloads=Note.downloads + 1)
            .returning(Note.downloads)
            .execution_options(synchronize_session=False)
        )
        try:
            downloads = (await db.execute(stmt)).scalar_one_or_none()
            if downloads is None:
                await db.rollback()
                raise NotFoundError(resource="note", resource_id=str(note_id))
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to increment downloads for %s: %s", note_id, str(e))
            raise DatabaseError(context={"note_id": str(note_id)})

        return DownloadResponse(
            note_id=note_id,
            downloads=downloads,
            file_url=self.object_store.url_for(self.object_store.note_key(note_id)),
        )

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _fetch_many(self, db: AsyncSession, stmt: Select) -> List[NoteResponse]:
        try:
            rows = (await db.execute(stmt)).all()
        except SQLAlchemyError as e:
            logger.error("Database error listing notes: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve notes. Please try again.",
                context={"error_type": type(e).__name__},
            )
        return [self._row_to_response(row) for row in rows]

    def _row_to_response(self, row) -> NoteResponse:
        note, uploader, upvotes, downvotes, user_vote = row
        return self._build_response(
            note,
            uploader,
            upvotes=upvotes or 0,
            downvotes=downvotes or 0,
            user_vote=user_vote,
        )

    def _build_response(
        self,
        note: Note,
        uploader: User,
        upvotes: int = 0,
        downvotes: int = 0,
        user_vote: Optional[bool] = None,
    ) -> NoteResponse:
        return NoteResponse(
            id=note.id,
            course_name=note.course_name,
            course_code=note.course_code,
            description=note.description,
            professor_names=note.professor_names,
            tags=note.tags or [],
            is_public=note.is_public,
            has_preview_image=note.has_preview_image,
            preview_image_url=self.object_store.url_for(self.object_store.preview_key(note.id)),
            file_url=self.object_store.url_for(self.object_store.note_key(note.id)),
            uploader_user=ResponseUser.model_validate(uploader),
            created_at=note.created_at,
            upvotes=upvotes,
            downvotes=downvotes,
            user_vote=user_vote,
            downloads=note.downloads or 0,
            year=note.note_year,
            semester=note.note_semester,
        )


# ── Singleton Instance ────────────────────────────────────────────────────
note_service = NoteService(
    object_store=ObjectStore(settings),
    renderer=PdftoppmRenderer(settings),
    config=settings,
)
