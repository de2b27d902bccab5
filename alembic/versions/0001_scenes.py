"""Scenes table — one encrypted scene record per room.

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates:
  - scenes (room_id PK, scene_version, iv, ciphertext, timestamps)

The backend never sees plaintext: ``iv`` and ``ciphertext`` are produced
client-side with the room key.  ``scene_version`` is BigInteger because
versions use the full 53-bit JSON-safe integer range.
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "scenes",
        sa.Column("room_id", sa.String(64), nullable=False),
        sa.Column("scene_version", sa.BigInteger(), nullable=False),
        sa.Column("iv", sa.LargeBinary(), nullable=False),
        sa.Column("ciphertext", sa.LargeBinary(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("room_id"),
    )


def downgrade() -> None:
    op.drop_table("scenes")
