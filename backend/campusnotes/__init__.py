"""
CampusNotes Backend: Application Package
==========================================

Campus note sharing: students upload course notes as PDFs, browse and
search them, upvote the useful ones and compete on a reputation
leaderboard.

Layers:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← validation, orchestration
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │   Database │ Object Store │ Renderer│  ← Postgres, disk, pdftoppm
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
