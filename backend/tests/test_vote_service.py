"""
CampusNotes Backend: Vote Service Tests
=========================================

What we test:
    ✅ Token parsing: upvote and remove only
    ✅ Transition table: none/upvoted × upvote/remove
    ✅ At most one row per (user, note)
    ✅ Unknown note → NotFoundError
    ✅ Unique-constraint race is retried once as an update, then surfaces as ConflictError
"""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from campusnotes.exceptions import BadVoteError, ConflictError, NotFoundError
from campusnotes.models.vote import Vote
from campusnotes.services.vote_service import VoteService, VoteType


async def vote_rows(db, user_id, note_id) -> int:
    return await db.scalar(
        select(func.count(Vote.id)).where(Vote.user_id == user_id, Vote.note_id == note_id)
    )


class TestVoteType:

    @pytest.mark.parametrize("token, expected", [("upvote", VoteType.UPVOTE), ("remove", VoteType.REMOVE)])
    def test_accepted_tokens(self, token, expected):
        assert VoteType.from_token(token) is expected

    @pytest.mark.parametrize("token", ["downvote", "UPVOTE", "", "like"])
    def test_rejected_tokens(self, token):
        with pytest.raises(BadVoteError) as exc_info:
            VoteType.from_token(token)
        assert exc_info.value.message == (
            f"Incorrect vote type: {token}. Available options are: upvote and remove"
        )

    def test_is_upvote(self):
        assert VoteType.UPVOTE.is_upvote is True
        assert VoteType.DOWNVOTE.is_upvote is False
        assert VoteType.REMOVE.is_upvote is None


class TestCastVote:

    def setup_method(self):
        self.service = VoteService()

    @pytest.mark.asyncio
    async def test_remove_without_vote_is_noop(self, db_session, make_user, make_note):
        alice, bob = await make_user("alice"), await make_user("bob")
        note = await make_note(alice)

        result = await self.service.cast_vote(db_session, bob.id, note.id, VoteType.REMOVE)

        assert result is None
        assert await self.service.tally(db_session, note.id) == (0, 0)

    @pytest.mark.asyncio
    async def test_upvote_creates_single_row(self, db_session, make_user, make_note):
        alice, bob = await make_user("alice"), await make_user("bob")
        note = await make_note(alice)

        first = await self.service.cast_vote(db_session, bob.id, note.id, VoteType.UPVOTE)
        second = await self.service.cast_vote(db_session, bob.id, note.id, VoteType.UPVOTE)

        assert first.is_upvote is True
        assert second.id == first.id
        assert await vote_rows(db_session, bob.id, note.id) == 1
        assert await self.service.tally(db_session, note.id) == (1, 0)

    @pytest.mark.asyncio
    async def test_remove_deletes_row(self, db_session, make_user, make_note):
        alice, bob = await make_user("alice"), await make_user("bob")
        note = await make_note(alice)
        await self.service.cast_vote(db_session, bob.id, note.id, VoteType.UPVOTE)

        result = await self.service.cast_vote(db_session, bob.id, note.id, VoteType.REMOVE)

        assert result is None
        assert await vote_rows(db_session, bob.id, note.id) == 0
        assert await self.service.tally(db_session, note.id) == (0, 0)

    @pytest.mark.asyncio
    async def test_votes_are_per_user(self, db_session, make_user, make_note):
        alice, bob, carol = await make_user("alice"), await make_user("bob"), await make_user("carol")
        note = await make_note(alice)

        await self.service.cast_vote(db_session, bob.id, note.id, VoteType.UPVOTE)
        await self.service.cast_vote(db_session, carol.id, note.id, VoteType.UPVOTE)
        await self.service.cast_vote(db_session, bob.id, note.id, VoteType.REMOVE)

        assert await self.service.tally(db_session, note.id) == (1, 0)
        assert await vote_rows(db_session, carol.id, note.id) == 1

    @pytest.mark.asyncio
    async def test_self_vote_allowed(self, db_session, make_user, make_note):
        alice = await make_user("alice")
        note = await make_note(alice)

        vote = await self.service.cast_vote(db_session, alice.id, note.id, VoteType.UPVOTE)

        assert vote is not None
        assert await self.service.tally(db_session, note.id) == (1, 0)

    @pytest.mark.asyncio
    async def test_unknown_note(self, db_session, make_user):
        bob = await make_user("bob")

        with pytest.raises(NotFoundError):
            await self.service.cast_vote(db_session, bob.id, uuid4(), VoteType.UPVOTE)

    @pytest.mark.asyncio
    async def test_concurrent_insert_retried_as_update(
        self, db_session, session_factory, make_user, make_note,
    ):
        alice, bob = await make_user("alice"), await make_user("bob")
        note = await make_note(alice)
        bob_id, note_id = bob.id, note.id
        execute = db_session.execute
        competing_commits = 0

        async def execute_then_insert_elsewhere(statement, *args, **kwargs):
            # Another request commits the same vote right after our locked read
            nonlocal competing_commits
            result = await execute(statement, *args, **kwargs)
            if competing_commits == 0 and getattr(statement, "_for_update_arg", None) is not None:
                competing_commits += 1
                async with session_factory() as other:
                    other.add(Vote(user_id=bob_id, note_id=note_id, is_upvote=True))
                    await other.commit()
            return result

        with patch.object(db_session, "execute", execute_then_insert_elsewhere):
            vote = await self.service.cast_vote(db_session, bob_id, note_id, VoteType.UPVOTE)

        assert competing_commits == 1
        assert vote is not None
        assert vote.is_upvote is True
        async with session_factory() as session:
            assert await vote_rows(session, bob_id, note_id) == 1

    @pytest.mark.asyncio
    async def test_persistent_conflict(self, db_session, make_user, make_note):
        alice = await make_user("alice")
        note = await make_note(alice)
        race = IntegrityError("INSERT INTO votes", {}, Exception("UNIQUE constraint failed"))

        with patch.object(self.service, "_apply", AsyncMock(side_effect=race)) as apply:
            with pytest.raises(ConflictError):
                await self.service.cast_vote(db_session, alice.id, note.id, VoteType.UPVOTE)

        assert apply.await_count == VoteService.MAX_ATTEMPTS
