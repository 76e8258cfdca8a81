"""
Models package — export all SQLAlchemy models.
"""

from tcgtracker.models.base import Base, UTCDateTime
from tcgtracker.models.daily_snapshot import DailySnapshot
from tcgtracker.models.item import Item
from tcgtracker.models.maintenance_mode import MaintenanceMode
from tcgtracker.models.price_history import PriceHistoryEntry
from tcgtracker.models.top_mover import TopMover
from tcgtracker.models.update_progress import UpdateProgress

__all__ = [
    "Base",
    "DailySnapshot",
    "Item",
    "MaintenanceMode",
    "PriceHistoryEntry",
    "TopMover",
    "UTCDateTime",
    "UpdateProgress",
]
