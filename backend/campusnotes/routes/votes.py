"""
CampusNotes Backend: Vote Route Handler
=========================================

What:  POST /api/notes/{note_id}/vote?vote_type=upvote|remove
How:   The token is parsed before any database work; the transition runs in
       VoteService; the response carries the caller's resulting vote and
       the note's fresh tallies.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from campusnotes.database import get_db_session
from campusnotes.dependencies import get_current_user, get_vote_service
from campusnotes.models.user import User
from campusnotes.schemas.note import ErrorResponse
from campusnotes.schemas.vote import VoteResponse
from campusnotes.services.vote_service import VoteService, VoteType

router = APIRouter(prefix="/api", tags=["Votes"])


@router.post(
    "/notes/{note_id}/vote",
    response_model=VoteResponse,
    responses={
        400: {"description": "Unknown vote type", "model": ErrorResponse},
        401: {"description": "Not signed in", "model": ErrorResponse},
        404: {"description": "Note not found", "model": ErrorResponse},
        409: {"description": "Concurrent vote conflict", "model": ErrorResponse},
    },
    summary="Upvote a note or remove your vote",
)
async def vote_on_note(
    note_id: UUID,
    vote_type: str = Query(..., description="upvote or remove"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    service: VoteService = Depends(get_vote_service),
) -> VoteResponse:
    requested = VoteType.from_token(vote_type)
    vote = await service.cast_vote(db, user.id, note_id, requested)
    upvotes, downvotes = await service.tally(db, note_id)
    return VoteResponse(
        note_id=note_id,
        user_vote=vote.is_upvote if vote is not None else None,
        upvotes=upvotes,
        downvotes=downvotes,
    )
