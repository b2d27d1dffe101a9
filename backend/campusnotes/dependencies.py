"""
CampusNotes Backend: Shared FastAPI Dependencies
==================================================

What:  Resolves the caller ("user U or anonymous") and hands services to
       route handlers.
How:   Bearer session token → google_id → users row. Optional routes treat
       every token problem as anonymous; required routes answer 401.
       Service providers exist so tests can swap implementations through
       `app.dependency_overrides`.
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from campusnotes.database import get_db_session
from campusnotes.exceptions import AuthenticationError
from campusnotes.models.user import User
from campusnotes.security import decode_session_token
from campusnotes.services.leaderboard_service import LeaderboardService, leaderboard_service
from campusnotes.services.note_service import NoteService, note_service
from campusnotes.services.user_service import user_service
from campusnotes.services.vote_service import VoteService, vote_service

bearer_scheme = HTTPBearer(auto_error=False)


# ── Services ──────────────────────────────────────────────────────────────

def get_note_service() -> NoteService:
    return note_service


def get_vote_service() -> VoteService:
    return vote_service


def get_leaderboard_service() -> LeaderboardService:
    return leaderboard_service


# ── Caller Identity ───────────────────────────────────────────────────────

async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> Optional[User]:
    if credentials is None:
        return None
    try:
        google_id = decode_session_token(credentials.credentials)
    except AuthenticationError:
        return None
    return await user_service.get_by_google_id(db, google_id)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> User:
    if credentials is None:
        raise AuthenticationError("Missing bearer token")
    google_id = decode_session_token(credentials.credentials)
    user = await user_service.get_by_google_id(db, google_id)
    if user is None:
        raise AuthenticationError("Unknown user")
    return user
