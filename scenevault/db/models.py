"""
SQLAlchemy ORM models for SceneVault.

Tables:
- scenes: One encrypted scene record per collaboration room
"""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column

from scenevault.config import SCENES_TABLE
from scenevault.db.database import Base


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


class StoredSceneRow(Base):
    """
    Encrypted scene for a single room.

    The backend only ever sees ``iv`` and ``ciphertext``; the room key never
    leaves the clients.  ``scene_version`` is derived from the plaintext
    element list at write time and is always rewritten together with the
    payload it describes.
    """
    __tablename__ = SCENES_TABLE

    room_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    scene_version: Mapped[int] = mapped_column(BigInteger, nullable=False)
    iv: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    ciphertext: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<StoredSceneRow(room_id={self.room_id}, scene_version={self.scene_version})>"
