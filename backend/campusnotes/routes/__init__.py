# Routes package init
"""
CampusNotes Backend: API Routes
=================================

    notes.py        upload, list, search, detail, download
    votes.py        upvote / remove
    leaderboard.py  reputation ranking
    auth.py         identity exchange, current user
    health.py       liveness probe
"""
