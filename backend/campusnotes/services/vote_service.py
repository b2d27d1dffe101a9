"""
CampusNotes Backend: Vote Service
===================================

What:  Applies a vote request to the (user, note) vote row.
How:   One transaction per request: lock the existing row (SELECT ... FOR
       UPDATE), branch on the transition table, write, commit. A concurrent
       first vote that trips the (user_id, note_id) unique constraint is
       retried once; the retry sees the committed row and updates it.
Who:   Called by POST /api/notes/{note_id}/vote.

Transitions:
    current   request   result
    ───────   ───────   ─────────────────────────────
    none      upvote    insert row (is_upvote = true)
    upvoted   upvote    row kept (is_upvote = true)
    upvoted   remove    row deleted → none
    none      remove    no-op → none
"""

import logging
import uuid
from enum import Enum
from typing import Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
)

from campusnotes.exceptions import (
    BadVoteError,
    ConflictError,
    DatabaseError,
    NotFoundError,
)
from campusnotes.models.note import Note
from campusnotes.models.vote import Vote

logger = logging.getLogger(__name__)


class VoteType(str, Enum):
    UPVOTE = "upvote"
    DOWNVOTE = "downvote"
    REMOVE = "remove"

    @classmethod
    def from_token(cls, token: str) -> "VoteType":
        """
        Parse a request token. Downvotes are representable but not
        accepted from clients.
        """
        if token == cls.UPVOTE.value:
            return cls.UPVOTE
        if token == cls.REMOVE.value:
            return cls.REMOVE
        raise BadVoteError(token)

    @property
    def is_upvote(self) -> Optional[bool]:
        if self is VoteType.UPVOTE:
            return True
        if self is VoteType.DOWNVOTE:
            return False
        return None


class VoteService:

    # One retry after a unique-constraint race
    MAX_ATTEMPTS = 2

    async def cast_vote(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        note_id: uuid.UUID,
        vote_type: VoteType,
    ) -> Optional[Vote]:
        """
        Returns:
            The vote row after the transition, or None when the user has no
            vote on the note afterwards.

        Raises:
            NotFoundError: the note does not exist
            ConflictError: the unique constraint still fails after the retry
            DatabaseError: any other storage failure
        """
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(IntegrityError),
                stop=stop_after_attempt(self.MAX_ATTEMPTS),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    return await self._apply(db, user_id, note_id, vote_type)
        except IntegrityError as e:
            logger.error("Vote by %s on %s kept conflicting: %s", user_id, note_id, str(e))
            raise ConflictError(
                message="Vote could not be recorded due to a concurrent update. Please retry.",
                context={"note_id": str(note_id)},
            )
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Database error while voting on %s: %s", note_id, str(e))
            raise DatabaseError(
                message="Failed to add vote",
                context={"note_id": str(note_id), "error_type": type(e).__name__},
            )

    async def _apply(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        note_id: uuid.UUID,
        vote_type: VoteType,
    ) -> Optional[Vote]:
        try:
            if await db.scalar(select(Note.id).where(Note.id == note_id)) is None:
                await db.rollback()
                raise NotFoundError(resource="note", resource_id=str(note_id))

            existing = (
                await db.execute(
                    select(Vote)
                    .where(Vote.user_id == user_id, Vote.note_id == note_id)
                    .with_for_update()
                )
            ).scalar_one_or_none()

            if vote_type is VoteType.REMOVE:
                if existing is not None:
                    await db.delete(existing)
                await db.commit()
                return None

            if existing is None:
                existing = Vote(
                    user_id=user_id,
                    note_id=note_id,
                    is_upvote=vote_type.is_upvote,
                )
                db.add(existing)
            else:
                existing.is_upvote = vote_type.is_upvote
            await db.commit()
            return existing
        except IntegrityError:
            await db.rollback()
            raise

    async def tally(self, db: AsyncSession, note_id: uuid.UUID) -> Tuple[int, int]:
        """(upvotes, downvotes) for a note."""
        stmt = select(
            func.count(Vote.id).filter(Vote.is_upvote.is_(True)),
            func.count(Vote.id).filter(Vote.is_upvote.is_(False)),
        ).where(Vote.note_id == note_id)
        upvotes, downvotes = (await db.execute(stmt)).one()
        return upvotes or 0, downvotes or 0


# ── Singleton Instance ────────────────────────────────────────────────────
vote_service = VoteService()
