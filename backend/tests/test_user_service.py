"""
CampusNotes Backend: User Service & Session Token Tests
=========================================================
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from jose import jwt
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from campusnotes.config import Settings
from campusnotes.exceptions import AuthenticationError, ConflictError
from campusnotes.models.user import User
from campusnotes.schemas.user import GoogleIdentity
from campusnotes.security import ALGORITHM, create_session_token, decode_session_token
from campusnotes.services.user_service import UserService


def identity(**overrides) -> GoogleIdentity:
    data = {
        "google_id": "google-alice",
        "email": "alice@campus.example.edu",
        "full_name": "Alice",
        "picture": "https://lh3.example/alice.png",
    }
    data.update(overrides)
    return GoogleIdentity(**data)


class TestUserService:

    def setup_method(self):
        self.service = UserService()

    @pytest.mark.asyncio
    async def test_creates_user_on_first_login(self, db_session):
        user = await self.service.find_or_create_user(db_session, identity())

        assert user.id is not None
        assert user.email == "alice@campus.example.edu"
        assert await self.service.get_by_google_id(db_session, "google-alice") is user

    @pytest.mark.asyncio
    async def test_refreshes_profile_on_later_login(self, db_session):
        first = await self.service.find_or_create_user(db_session, identity())
        second = await self.service.find_or_create_user(
            db_session, identity(full_name="Alice B.", picture=None)
        )

        assert second.id == first.id
        assert second.full_name == "Alice B."
        assert second.picture is None
        assert await db_session.scalar(select(func.count(User.id))) == 1

    @pytest.mark.asyncio
    async def test_unknown_google_id(self, db_session):
        assert await self.service.get_by_google_id(db_session, "nobody") is None

    @pytest.mark.asyncio
    async def test_concurrent_signup_conflict(self, db_session):
        duplicate = IntegrityError("INSERT INTO users", {}, Exception("duplicate key"))
        with patch.object(db_session, "commit", AsyncMock(side_effect=duplicate)):
            with pytest.raises(ConflictError, match="User already exists"):
                await self.service.find_or_create_user(db_session, identity())


class TestSessionTokens:

    def test_round_trip(self):
        token = create_session_token("google-alice")
        assert decode_session_token(token) == "google-alice"

    def test_forged_token_rejected(self):
        other = Settings(signing_secret="a-completely-different-secret")
        token = create_session_token("google-alice", config=other)
        with pytest.raises(AuthenticationError):
            decode_session_token(token)

    def test_expired_token_rejected(self, test_settings):
        expired = jwt.encode(
            {"google_id": "google-alice", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
            test_settings.signing_secret,
            algorithm=ALGORITHM,
        )
        with pytest.raises(AuthenticationError, match="Invalid or expired session token"):
            decode_session_token(expired, config=test_settings)

    def test_token_without_subject_rejected(self, test_settings):
        token = jwt.encode(
            {"exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            test_settings.signing_secret,
            algorithm=ALGORITHM,
        )
        with pytest.raises(AuthenticationError):
            decode_session_token(token, config=test_settings)

    def test_garbage_rejected(self):
        with pytest.raises(AuthenticationError):
            decode_session_token("not-a-jwt")
