"""
CampusNotes Backend: Note SQLAlchemy Model
============================================

What:  ORM model representing the `notes` table.
How:   Inherits from the shared DeclarativeBase; Alembic reads this for
       migrations.
Who:   Used by NoteService for the upload workflow and note queries, by the
       leaderboard aggregation and by the reconciliation sweep.

Table notes:
    - id is generated in Python on insert so the object key of the PDF is
      known right after flush.
    - has_preview_image is the single source of truth for preview existence;
      it only flips to true inside the upload transaction after the renderer
      produced the file.
    - downloads is only ever changed by `downloads = downloads + 1` in SQL.
    - professor_names / tags are PostgreSQL arrays (JSON on SQLite).
    - Notes are never deleted in normal operation.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column

from campusnotes.database import Base

# Text list column: native ARRAY on PostgreSQL, JSON elsewhere
StringList = ARRAY(String).with_variant(JSON(none_as_null=True), "sqlite")


class Note(Base):
    """
    A shared PDF study note.

    Query Patterns:
        - Newest notes: ORDER BY created_at DESC LIMIT n (idx_notes_created_at)
        - Search: ILIKE on course_name / course_code
        - Leaderboard: GROUP BY uploader_user_id (idx_notes_uploader)
    """

    __tablename__ = "notes"

    # ── Primary Key ───────────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # ── Course Metadata ───────────────────────────────────────────────────
    course_name: Mapped[str] = mapped_column(String(255), nullable=False)
    course_code: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    professor_names: Mapped[Optional[List[str]]] = mapped_column(StringList, nullable=True)
    tags: Mapped[List[str]] = mapped_column(StringList, nullable=False, default=list)

    note_year: Mapped[int] = mapped_column(Integer, nullable=False)

    # "Autumn" | "Spring"
    note_semester: Mapped[str] = mapped_column(String(16), nullable=False)

    # ── Flags ─────────────────────────────────────────────────────────────
    is_public: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    has_preview_image: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )

    # ── Ownership & Counters ──────────────────────────────────────────────
    uploader_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
    )
    downloads: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    # ── Indexes ───────────────────────────────────────────────────────────
    __table_args__ = (
        Index("idx_notes_created_at", "created_at"),
        Index("idx_notes_uploader", "uploader_user_id"),
        CheckConstraint("note_semester IN ('Autumn', 'Spring')", name="ck_notes_semester"),
        CheckConstraint("downloads >= 0", name="ck_notes_downloads_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<Note(id={self.id}, course_code='{self.course_code}', "
            f"has_preview_image={self.has_preview_image})>"
        )
