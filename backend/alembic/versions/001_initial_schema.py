"""Create users, notes and votes tables

Revision ID: 001
Revises: None
Create Date: 2025-08-01 00:00:00.000000+00:00

What:  Initial schema: users, notes (with preview flag and download counter)
       and votes (one row per user and note).
How:   PostgreSQL types: UUID keys, TEXT[] for professor names and tags,
       TIMESTAMP WITH TIME ZONE.

Rollback: downgrade() drops all three tables (destructive).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("google_id", sa.String(255), nullable=False,
                  comment="Stable subject identifier from Google sign-in"),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("picture", sa.Text(), nullable=True, comment="Avatar URL"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("google_id", name="users_google_id_key"),
    )

    op.create_table(
        "notes",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("course_name", sa.String(255), nullable=False),
        sa.Column("course_code", sa.String(64), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("professor_names", postgresql.ARRAY(sa.String()), nullable=True),
        sa.Column("tags", postgresql.ARRAY(sa.String()), nullable=False,
                  server_default=sa.text("'{}'::varchar[]")),
        sa.Column("note_year", sa.Integer(), nullable=False),
        sa.Column("note_semester", sa.String(16), nullable=False,
                  comment="Autumn or Spring"),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("has_preview_image", sa.Boolean(), nullable=False,
                  server_default=sa.text("false"),
                  comment="True only when the preview JPEG exists in the object store"),
        sa.Column("uploader_user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("downloads", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["uploader_user_id"], ["users.id"]),
        sa.CheckConstraint("note_semester IN ('Autumn', 'Spring')", name="ck_notes_semester"),
        sa.CheckConstraint("downloads >= 0", name="ck_notes_downloads_non_negative"),
    )
    # "Newest notes" is the landing page query
    op.create_index("idx_notes_created_at", "notes", [sa.text("created_at DESC")])
    op.create_index("idx_notes_uploader", "notes", ["uploader_user_id"])

    op.create_table(
        "votes",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("note_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("is_upvote", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["note_id"], ["notes.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "note_id", name="uq_votes_user_note"),
    )
    op.create_index("idx_votes_note_id", "votes", ["note_id"])


def downgrade() -> None:
    op.drop_index("idx_votes_note_id", table_name="votes")
    op.drop_table("votes")
    op.drop_index("idx_notes_uploader", table_name="notes")
    op.drop_index("idx_notes_created_at", table_name="notes")
    op.drop_table("notes")
    op.drop_table("users")
