"""TCG Tracker — collectible price ingestion, cursoring and retention pipeline."""

__version__ = "0.1.0"
