"""
CampusNotes Backend: Leaderboard Route Handlers
=================================================
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from campusnotes.database import get_db_session
from campusnotes.dependencies import get_leaderboard_service
from campusnotes.schemas.leaderboard import LeaderboardEntry
from campusnotes.schemas.note import ErrorResponse
from campusnotes.services.leaderboard_service import LeaderboardService

router = APIRouter(prefix="/api", tags=["Leaderboard"])


@router.get(
    "/leaderboard",
    response_model=List[LeaderboardEntry],
    summary="Top users by reputation",
)
async def get_leaderboard(
    limit: int = Query(default=20, ge=1, le=1000),
    db: AsyncSession = Depends(get_db_session),
    service: LeaderboardService = Depends(get_leaderboard_service),
) -> List[LeaderboardEntry]:
    return await service.rank(db, limit=limit)


@router.get(
    "/leaderboard/{user_id}",
    response_model=LeaderboardEntry,
    responses={404: {"description": "User not found", "model": ErrorResponse}},
    summary="A user's leaderboard position",
)
async def get_user_position(
    user_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    service: LeaderboardService = Depends(get_leaderboard_service),
) -> LeaderboardEntry:
    return await service.position_of(db, user_id)
