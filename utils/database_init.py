import os
import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite

MAX_IMAGES_PER_USER = 60


class AsyncDatabaseInitializer:
    """
    Manage the async SQLite record store using the DATABASE_DIR environment variable.

    - The database file is located at: <DATABASE_DIR>/app.db
    - DATABASE_DIR is required unless `db_dir` is passed explicitly. A
      RuntimeError is raised if it is missing or invalid (not a directory
      and cannot be created).
    - On the first call to `ensure_database()` for a given instance the
      `user_images` table, its indexes, and the per-user quota trigger are
      created if missing. Existing rows are kept.
    - Subsequent calls to `ensure_database()` on the same instance are no-ops,
      so it is safe for `connection()` to call it.
    """

    def __init__(self, db_dir: Optional[Path | str] = None, max_images: int = MAX_IMAGES_PER_USER) -> None:
        env_dir = str(db_dir) if db_dir is not None else os.getenv("DATABASE_DIR")

        if env_dir is None or not env_dir.strip():
            raise RuntimeError(
                "DATABASE_DIR environment variable must be set to a writable "
                "directory path where the SQLite database file will be stored."
            )

        path = Path(env_dir).expanduser()

        # If the path exists but is not a directory, that's a configuration error.
        if path.exists() and not path.is_dir():
            raise RuntimeError(
                f"DATABASE_DIR={env_dir!r} points to a file, not a directory "
                f"({path}). Please set DATABASE_DIR to a directory path."
            )

        try:
            path.mkdir(parents=True, exist_ok=True)
        except Exception as exc:
            raise RuntimeError(
                f"Failed to create or access database directory at {path}"
            ) from exc

        self.db_dir = path
        self.db_path = self.db_dir / "app.db"
        self.max_images = max_images

        self._initialized = False

    async def ensure_database(self) -> None:
        """
        Ensure the SQLite schema exists at `self.db_path`.

        On first call this will create the `user_images` table, the gallery
        ordering index, and a BEFORE INSERT trigger that aborts any insert
        which would give a user more than `max_images` rows.

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
                        CREATE TABLE IF NOT EXISTS user_images (
                            id INTEGER PRIMARY KEY AUTOINCREMENT,
                            user_id TEXT NOT NULL,
                            storage_path TEXT NOT NULL UNIQUE,
                            image_url TEXT NOT NULL,
                            file_name TEXT,
                            display_order INTEGER,
                            created_at INTEGER NOT NULL,
                            bristol_score INTEGER CHECK (bristol_score BETWEEN 1 AND 7),
                            size_score TEXT,
                            health_indicators TEXT,
                            warnings TEXT,
                            analysis_notes TEXT,
                            is_analyzed INTEGER NOT NULL DEFAULT 0
                        )
                        """
                    )
                    await db.execute(
                        "CREATE INDEX IF NOT EXISTS idx_user_images_user ON user_images(user_id, display_order, created_at)"
                    )
                    # The limit is baked into the trigger body at creation time.
                    await db.execute(
                        f"""
                        CREATE TRIGGER IF NOT EXISTS user_images_quota
                        BEFORE INSERT ON user_images
                        WHEN (SELECT COUNT(*) FROM user_images WHERE user_id = NEW.user_id) >= {int(self.max_images)}
                        BEGIN
                            SELECT RAISE(ABORT, 'image quota exceeded');
                        END
                        """
                    )
                    await db.commit()
                break
            except FileNotFoundError:
                # On some platforms a transient missing file error may occur; retry a few times.
                if attempt >= max_attempts:
                    raise
                await asyncio.sleep(0.1 * attempt)

        self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Async context manager yielding an `aiosqlite.Connection`.

        The schema is created on the first use via `ensure_database()`.
        """
        await self.ensure_database()
        conn = await aiosqlite.connect(self.db_path)
        try:
            yield conn
        finally:
            await conn.close()
