"""
TCG Tracker — Job Result Types

Every scheduled job returns one of these models instead of raising for
per-item failures. Errors are accumulated in a bounded ErrorCollector so a bad
batch cannot grow the payload without limit.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from tcgtracker.config import settings


class ErrorCollector:
    """
    Fixed-capacity error list. Messages beyond the cap are counted, not kept.

    Usage:
        errors = ErrorCollector()
        errors.add(f"Failed to process {name}: {exc}")
        result = CrawlResult(..., errors=errors.items)
    """

    def __init__(self, capacity: int | None = None):
        self.capacity = capacity if capacity is not None else settings.JOB_ERROR_CAP
        self._items: list[str] = []
        self.dropped = 0

    def add(self, message: str) -> None:
        if len(self._items) < self.capacity:
            self._items.append(message)
        else:
            self.dropped += 1

    @property
    def items(self) -> list[str]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items) + self.dropped

    def __bool__(self) -> bool:
        return len(self) > 0


class CrawlResult(BaseModel):
    """Outcome of one bounded incremental crawl step."""
    success: bool
    updated: int = 0
    total: int = 0                      # Records seen across fetched pages
    pages_fetched: int = 0
    start_page: int = 1
    next_page: int | None = None        # None → cursor resets to the beginning
    is_complete: bool = False
    page_error: str | None = None       # External-API failure that stopped the crawl
    item_ids: list[int] = Field(default_factory=list)   # Items written at a real price this step
    errors: list[str] = Field(default_factory=list)


class LiveUpdateResult(BaseModel):
    """Outcome of one live-update simulator batch."""
    success: bool = True
    updated: int = 0
    batch_size: int = 0
    skipped: int = 0                    # Written by the crawler in the same refresh
    wrapped: bool = False               # Population exhausted, cursor reset to start
    next_cursor: str | None = None
    errors: list[str] = Field(default_factory=list)


class RefreshResult(BaseModel):
    """Combined price refresh job: crawler step plus simulator batch."""
    success: bool
    crawl: CrawlResult | None = None
    live: LiveUpdateResult


class CompactionStep(BaseModel):
    """One bounded compaction page: (cursor) -> (cursor', done, stats)."""
    items_processed: int = 0
    entries_deleted: int = 0
    is_done: bool = False
    next_cursor: str | None = None


class CompactionRunResult(BaseModel):
    """Driver loop over compaction steps."""
    success: bool = True
    items_processed: int = 0
    entries_deleted: int = 0
    steps: int = 0
    is_complete: bool = False


class SnapshotResult(BaseModel):
    success: bool = True
    snapshot_date: str
    created: int = 0
    skipped: int = 0
    items_seen: int = 0
    errors: list[str] = Field(default_factory=list)


class RetentionResult(BaseModel):
    deleted: int = 0
    cutoff: str


class MoversRefreshResult(BaseModel):
    period_start: str
    ranked: int = 0
    stale_deleted: int = 0


class MaintenanceResult(BaseModel):
    success: bool
    history_retention: RetentionResult | None = None
    compaction: CompactionRunResult | None = None
    snapshot_retention: RetentionResult | None = None
    errors: list[str] = Field(default_factory=list)
