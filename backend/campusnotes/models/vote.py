"""
CampusNotes Backend: Vote SQLAlchemy Model
============================================

What:  ORM model for the `votes` table.
How:   At most one row per (user, note); the unique constraint is the
       backstop for concurrent first votes. Absence of a row means "no vote".
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from campusnotes.database import Base


class Vote(Base):
    __tablename__ = "votes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    note_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("notes.id", ondelete="CASCADE"),
        nullable=False,
    )

    is_upvote: Mapped[bool] = mapped_column(Boolean, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        UniqueConstraint("user_id", "note_id", name="uq_votes_user_note"),
        # Per-note tallies scan by note_id
        Index("idx_votes_note_id", "note_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Vote(user_id={self.user_id}, note_id={self.note_id}, "
            f"is_upvote={self.is_upvote})>"
        )
