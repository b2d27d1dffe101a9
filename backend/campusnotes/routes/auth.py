"""
CampusNotes Backend: Auth Route Handlers
==========================================

What:  The identity exchange and the "who am I" endpoint.
How:   The identity gateway verifies the Google sign-in and posts the
       verified profile here together with the shared exchange secret. The
       backend creates or refreshes the user and answers with its own
       session token, which clients then send as `Authorization: Bearer`.
"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from campusnotes.config import settings
from campusnotes.database import get_db_session
from campusnotes.dependencies import get_current_user
from campusnotes.exceptions import AuthenticationError
from campusnotes.models.user import User
from campusnotes.schemas.note import ErrorResponse
from campusnotes.schemas.user import GoogleIdentity, SessionResponse, UserResponse
from campusnotes.security import create_session_token
from campusnotes.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/google",
    response_model=SessionResponse,
    responses={
        401: {"description": "Bad exchange secret", "model": ErrorResponse},
        409: {"description": "Concurrent first login", "model": ErrorResponse},
    },
    summary="Exchange a verified Google profile for a session token",
)
async def exchange_identity(
    identity: GoogleIdentity,
    x_identity_secret: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db_session),
) -> SessionResponse:
    expected = settings.identity_exchange_secret
    if not expected or not x_identity_secret or not hmac.compare_digest(
        x_identity_secret.encode(), expected.encode()
    ):
        raise AuthenticationError("Identity exchange rejected")

    user = await user_service.find_or_create_user(db, identity)
    logger.info("Issued session for user %s", user.id)
    return SessionResponse(
        token=create_session_token(user.google_id),
        user=UserResponse.model_validate(user),
    )


@router.get(
    "/me",
    response_model=UserResponse,
    responses={401: {"description": "Not signed in", "model": ErrorResponse}},
    summary="The signed-in user",
)
async def get_me(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(user)
