"""
CampusNotes Backend: Leaderboard Schemas
==========================================
"""

import uuid
from typing import Optional

from pydantic import BaseModel


class LeaderboardEntry(BaseModel):
    """
    One ranked user.

    reputation = (total_upvotes / total_notes) * (total_notes + total_upvotes
    + total_downloads), or 0 for users without notes. rank is a dense rank
    over (reputation desc, total_notes desc).
    """
    user_id: uuid.UUID
    full_name: str
    picture: Optional[str] = None
    total_notes: int
    total_upvotes: int
    total_downloads: int
    reputation: float
    rank: int

    model_config = {"from_attributes": True}
