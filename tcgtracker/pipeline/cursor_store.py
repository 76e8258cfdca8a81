"""
TCG Tracker — Cursor Store

Named resumable positions persisted in update_progress. Jobs read their cursor
at the start of an invocation and write it back at the end; nothing is held in
process memory between runs.

Cursor format:
    - opaque string (item id for batch cursors)
    - stringified integer page number for page cursors
    - None → start of sequence
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tcgtracker.config import CursorPurpose
from tcgtracker.models.update_progress import UpdateProgress

logger = structlog.get_logger(__name__)


def _key(purpose: CursorPurpose | str) -> str:
    return purpose.value if isinstance(purpose, CursorPurpose) else purpose


class CursorStore:
    """
    Persisted cursor access for one session.

    Usage:
        store = CursorStore(session)
        page = await store.get_page(CursorPurpose.NEW_CARD_FETCH)
        await store.set(CursorPurpose.NEW_CARD_FETCH, str(page + 5))
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _load(self, purpose: CursorPurpose | str) -> UpdateProgress | None:
        result = await self.session.execute(
            select(UpdateProgress).where(UpdateProgress.purpose == _key(purpose))
        )
        return result.scalar_one_or_none()

    async def get(self, purpose: CursorPurpose | str) -> str | None:
        """Return the stored cursor, or None when absent or empty."""
        progress = await self._load(purpose)
        if progress is None or not progress.cursor:
            return None
        return progress.cursor

    async def get_page(self, purpose: CursorPurpose | str, default: int = 1) -> int:
        """
        Return the stored cursor as a page number.

        Unparseable or non-positive values fall back to `default` so a corrupt
        cursor restarts the sequence instead of wedging the job.
        """
        raw = await self.get(purpose)
        if raw is None:
            return default
        try:
            page = int(raw)
        except ValueError:
            logger.warning("cursor_store_invalid_page", purpose=_key(purpose), raw=raw)
            return default
        return page if page >= 1 else default

    async def set(self, purpose: CursorPurpose | str, cursor: str | None) -> None:
        """Create or patch the cursor row and commit."""
        key = _key(purpose)
        now = datetime.now(timezone.utc)

        progress = await self._load(key)
        if progress is None:
            self.session.add(UpdateProgress(purpose=key, cursor=cursor, last_updated=now))
        else:
            progress.cursor = cursor
            progress.last_updated = now

        await self.session.commit()
        logger.debug("cursor_store_set", purpose=key, cursor=cursor)

    async def reset(self, purpose: CursorPurpose | str) -> None:
        await self.set(purpose, None)
