"""
Per-document write serialization within one process.

Ingestions for the same document queue behind one asyncio.Lock; different
documents get different locks and never contend. Entries are reference
counted and dropped as soon as nobody holds or waits on them, so the
registry does not grow with the number of documents ever touched.

One registry is created per application (see the lifespan in ``main``).
Across processes the row lock taken by the ingestion transaction provides
the same guarantee.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class DocumentLockRegistry:
    def __init__(self) -> None:
        self._entries: Dict[int, _Entry] = {}

    @asynccontextmanager
    async def hold(self, doc_id: int) -> AsyncIterator[None]:
        """Hold the lock for ``doc_id`` for the duration of the block."""
        entry = self._entries.get(doc_id)
        if entry is None:
            entry = self._entries[doc_id] = _Entry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._entries.pop(doc_id, None)

    def is_locked(self, doc_id: int) -> bool:
        entry = self._entries.get(doc_id)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)
