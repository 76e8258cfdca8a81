"""
TCG Tracker — Maintenance Mode Model

Singleton row read by the presentation layer to decide whether to show a
maintenance notice.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BOOLEAN, INTEGER, String
from sqlalchemy.orm import Mapped, mapped_column

from tcgtracker.models.base import Base, UTCDateTime


class MaintenanceMode(Base):
    __tablename__ = "maintenance_mode"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    is_active: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, default=False)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    message: Mapped[str] = mapped_column(String, nullable=False, default="")

    def __repr__(self) -> str:
        return f"<MaintenanceMode active={self.is_active} start={self.start_time} end={self.end_time}>"
