"""
TCG Tracker — Update Progress Model

Persisted resumable positions, one row per purpose tag. This is the only
state carried between job invocations.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, func
from sqlalchemy.orm import Mapped, mapped_column

from tcgtracker.models.base import Base, UTCDateTime


class UpdateProgress(Base):
    """
    Cursor record keyed by purpose ('cardUpdate', 'newCardFetch', ...).

    A NULL cursor means "start from the beginning".
    """

    __tablename__ = "update_progress"

    purpose: Mapped[str] = mapped_column(String(64), primary_key=True)
    cursor: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Opaque cursor; page cursors are stringified ints"
    )
    last_updated: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<UpdateProgress purpose={self.purpose!r} cursor={self.cursor!r}>"
