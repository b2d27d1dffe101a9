# Services package init
"""
CampusNotes Backend: Services Layer
=====================================

Service Inventory:
    - ObjectStore: key → file on local disk, public URL per key
    - PreviewRenderer (abstract): PDF first page → JPEG
    - PdftoppmRenderer: poppler implementation with retry + circuit breaker
    - NoteService: upload workflow, listing, search, downloads
    - VoteService: per-(user, note) vote transitions and tallies
    - LeaderboardService: reputation and dense ranking
    - UserService: find-or-create users from verified identities
"""
