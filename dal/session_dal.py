"""Async Data Access Layer for the SESSION_ENTRY table.

Provides SessionDAL, which loads and saves the flat key/value session
mapping through `utils.database_init.AsyncDatabaseInitializer`.
"""

from __future__ import annotations

import time
from typing import Dict, Mapping

from utils.database_init import AsyncDatabaseInitializer


class SessionDAL:
    """Data access layer for persisted session entries.

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection`).
    """

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def load_entries(self) -> Dict[str, str]:
        """Return every stored entry as a plain dict."""
        async with self._db.connection() as conn:
            cur = await conn.execute("SELECT key, value FROM SESSION_ENTRY")
            rows = await cur.fetchall()
            return {row[0]: row[1] for row in rows}

    async def replace_entries(self, entries: Mapping[str, str]) -> None:
        """Overwrite the stored session with `entries` in one transaction.

        Args:
            entries: Complete key/value snapshot; keys missing here are deleted.
        """
        updated_at = int(time.time())
        async with self._db.connection() as conn:
            await conn.execute("DELETE FROM SESSION_ENTRY")
            await conn.executemany(
                "INSERT INTO SESSION_ENTRY (key, value, updated_at) VALUES (?, ?, ?)",
                [(key, value, updated_at) for key, value in entries.items()],
            )
            await conn.commit()
