"""
CampusNotes Backend: Leaderboard Service (Reputation Ranker)
==============================================================

What:  Ranks every user by reputation derived from their notes and the
       upvotes and downloads those notes collected.
How:   A single SQL statement aggregates per-user totals, computes the
       reputation and assigns DENSE_RANK over the whole population. Nothing
       is cached or stored; each call reflects the committed state.
Who:   Called by GET /api/leaderboard and GET /api/leaderboard/{user_id}.

Formula:
    reputation = (upvotes / notes) * (notes + upvotes + downloads)   notes > 0
               = 0                                                  otherwise

    rank = DENSE_RANK() OVER (ORDER BY reputation DESC, total_notes DESC)

    Rows sharing a rank are listed by ascending user id.
"""

import logging
import uuid
from typing import List

from sqlalchemy import Float, case, cast, func, literal, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from campusnotes.exceptions import DatabaseError, NotFoundError
from campusnotes.models.note import Note
from campusnotes.models.user import User
from campusnotes.models.vote import Vote
from campusnotes.schemas.leaderboard import LeaderboardEntry

logger = logging.getLogger(__name__)


class LeaderboardService:

    def _ranked(self):
        """Subquery with one ranked row per user, zero-note users included."""
        note_stats = (
            select(
                Note.uploader_user_id.label("user_id"),
                func.count(Note.id).label("total_notes"),
                func.coalesce(func.sum(Note.downloads), 0).label("total_downloads"),
            )
            .group_by(Note.uploader_user_id)
            .subquery("note_stats")
        )
        upvote_stats = (
            select(
                Note.uploader_user_id.label("user_id"),
                func.count(Vote.id).label("total_upvotes"),
            )
            .join(Vote, Vote.note_id == Note.id)
            .where(Vote.is_upvote.is_(True))
            .group_by(Note.uploader_user_id)
            .subquery("upvote_stats")
        )

        total_notes = func.coalesce(note_stats.c.total_notes, 0)
        total_upvotes = func.coalesce(upvote_stats.c.total_upvotes, 0)
        total_downloads = func.coalesce(note_stats.c.total_downloads, 0)
        reputation = case(
            (total_notes == 0, literal(0.0, Float)),
            else_=(cast(total_upvotes, Float) / cast(total_notes, Float))
            * cast(total_notes + total_upvotes + total_downloads, Float),
        )

        per_user = (
            select(
                User.id.label("user_id"),
                User.full_name.label("full_name"),
                User.picture.label("picture"),
                total_notes.label("total_notes"),
                total_upvotes.label("total_upvotes"),
                total_downloads.label("total_downloads"),
                reputation.label("reputation"),
            )
            .outerjoin(note_stats, note_stats.c.user_id == User.id)
            .outerjoin(upvote_stats, upvote_stats.c.user_id == User.id)
            .subquery("per_user")
        )

        rank = func.dense_rank().over(
            order_by=(per_user.c.reputation.desc(), per_user.c.total_notes.desc())
        )
        return select(per_user, rank.label("rank")).subquery("ranked")

    def _ordered(self, ranked) -> Select:
        return select(ranked).order_by(ranked.c.rank, ranked.c.user_id)

    async def rank(self, db: AsyncSession, limit: int = 20) -> List[LeaderboardEntry]:
        ranked = self._ranked()
        stmt = self._ordered(ranked).limit(limit)
        rows = await self._execute(db, stmt)
        return [self._to_entry(row) for row in rows]

    async def position_of(self, db: AsyncSession, user_id: uuid.UUID) -> LeaderboardEntry:
        """
        The user's row from the full ranking. The filter is applied after
        ranking, so the rank equals the one an unlimited rank() reports.
        """
        ranked = self._ranked()
        stmt = select(ranked).where(ranked.c.user_id == user_id)
        rows = await self._execute(db, stmt)
        if not rows:
            raise NotFoundError(resource="user", resource_id=str(user_id), message="User not found")
        return self._to_entry(rows[0])

    async def _execute(self, db: AsyncSession, stmt: Select):
        try:
            return (await db.execute(stmt)).all()
        except SQLAlchemyError as e:
            logger.error("Failed to compute leaderboard: %s", str(e))
            raise DatabaseError(
                message="Failed to fetch leaderboard",
                context={"error_type": type(e).__name__},
            )

    @staticmethod
    def _to_entry(row) -> LeaderboardEntry:
        return LeaderboardEntry(
            user_id=row.user_id,
            full_name=row.full_name,
            picture=row.picture,
            total_notes=int(row.total_notes),
            total_upvotes=int(row.total_upvotes),
            total_downloads=int(row.total_downloads),
            reputation=float(row.reputation),
            rank=int(row.rank),
        )


# ── Singleton Instance ────────────────────────────────────────────────────
leaderboard_service = LeaderboardService()
