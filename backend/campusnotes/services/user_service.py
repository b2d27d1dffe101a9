"""
CampusNotes Backend: User Service
===================================

What:  Maps verified identities to local user rows.
How:   Looks the user up by google_id; creates the row on first login and
       refreshes email / full_name / picture on every later one.
Who:   Called by the identity exchange route and the auth dependencies.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from campusnotes.exceptions import ConflictError, DatabaseError
from campusnotes.models.user import User
from campusnotes.schemas.user import GoogleIdentity

logger = logging.getLogger(__name__)


class UserService:

    async def get_by_google_id(self, db: AsyncSession, google_id: str) -> Optional[User]:
        try:
            return await db.scalar(select(User).where(User.google_id == google_id))
        except SQLAlchemyError as e:
            logger.error("Failed to look up user: %s", str(e))
            raise DatabaseError(context={"error_type": type(e).__name__})

    async def find_or_create_user(self, db: AsyncSession, identity: GoogleIdentity) -> User:
        """
        Returns:
            The user row for `identity`, created or refreshed and committed.

        Raises:
            ConflictError: a concurrent first login inserted the same
                google_id between our lookup and our insert.
            DatabaseError: any other storage failure.
        """
        try:
            user = await db.scalar(select(User).where(User.google_id == identity.google_id))
            if user is None:
                user = User(
                    google_id=identity.google_id,
                    email=identity.email,
                    full_name=identity.full_name,
                    picture=identity.picture,
                )
                db.add(user)
                logger.info("Creating user for google_id=%s", identity.google_id)
            else:
                user.email = identity.email
                user.full_name = identity.full_name
                user.picture = identity.picture
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.warning("Concurrent signup for google_id=%s: %s", identity.google_id, str(e))
            raise ConflictError(
                message="User already exists",
                context={"google_id": identity.google_id},
            )
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to save user: %s", str(e))
            raise DatabaseError(context={"error_type": type(e).__name__})
        return user


# ── Singleton Instance ────────────────────────────────────────────────────
user_service = UserService()
