import os
import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite


class AsyncDatabaseInitializer:
    """
    Manage the async SQLite database that persists the client session.

    - The database file is located at: <DATABASE_DIR>/session.db
    - DATABASE_DIR is required. A RuntimeError is raised if it is missing
      or invalid (not a directory and cannot be created).
    - `ensure_database()` creates the SESSION_ENTRY table if needed. Existing
      rows are kept so a signed-in session survives a restart.
    - Subsequent calls to `ensure_database()` on the same instance are no-ops,
      so it is safe for `connection()` to call it.
    """

    def __init__(self) -> None:
        env_dir = os.getenv("DATABASE_DIR")

        if env_dir is None or not env_dir.strip():
            raise RuntimeError(
                "DATABASE_DIR environment variable must be set to a writable "
                "directory path where the SQLite session file will be stored."
            )

        db_dir = Path(env_dir).expanduser()

        if db_dir.exists() and not db_dir.is_dir():
            raise RuntimeError(
                f"DATABASE_DIR={env_dir!r} points to a file, not a directory "
                f"({db_dir}). Please set DATABASE_DIR to a directory path."
            )

        try:
            db_dir.mkdir(parents=True, exist_ok=True)
        except Exception as exc:
            raise RuntimeError(
                f"Failed to create or access database directory at {db_dir}"
            ) from exc

        self.db_dir = db_dir
        self.db_path = self.db_dir / "session.db"

        self._initialized = False

    async def ensure_database(self) -> None:
        """
        Ensure the SQLite database at `self.db_path` has the session schema.

        Subsequent calls on the same instance are no-ops.
        """
        if self._initialized:
            return

        max_attempts = 3
        for attempt in range(1, max_attempts + 1):
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    await db.execute(
                        """
                        CREATE TABLE IF NOT EXISTS SESSION_ENTRY (
                            key TEXT PRIMARY KEY,
                            value TEXT NOT NULL,
                            updated_at INTEGER
                        )
                        """
                    )
                    await db.commit()
                break
            except FileNotFoundError:
                # Transient missing-file errors happen on some platforms; retry a few times.
                if attempt >= max_attempts:
                    raise
                await asyncio.sleep(0.1 * attempt)

        self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Async context manager yielding an `aiosqlite.Connection`.

        The schema is created on first use via `ensure_database()`.
        """
        await self.ensure_database()
        conn = await aiosqlite.connect(self.db_path)
        try:
            yield conn
        finally:
            await conn.close()
