"""
CampusNotes Backend: Vote Schemas
===================================
"""

import uuid
from typing import Optional

from pydantic import BaseModel, Field


class VoteResponse(BaseModel):
    """
    Result of a vote request.

    user_vote is the caller's vote after the transition: true for an
    upvote, null after a removal (or a removal of nothing).
    """
    note_id: uuid.UUID
    user_vote: Optional[bool] = None
    upvotes: int = Field(ge=0)
    downvotes: int = Field(ge=0)
