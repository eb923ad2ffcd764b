"""Async Data Access Layer for the user_images table.

Provides ImageDAL class with async CRUD operations compatible with
`utils.database_init.AsyncDatabaseInitializer`. Every read and mutation
is scoped by owner so callers only ever see rows they own.
"""

from __future__ import annotations

import json
import time
from typing import Any, List, Optional, Sequence

from models.image_record import ImageRecord
from utils.database_init import AsyncDatabaseInitializer


class ImageDAL:
    """Data access layer for ImageRecord rows.

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection`).
    """

    _COLUMNS = (
        "id",
        "user_id",
        "storage_path",
        "image_url",
        "file_name",
        "display_order",
        "created_at",
        "bristol_score",
        "size_score",
        "health_indicators",
        "warnings",
        "analysis_notes",
        "is_analyzed",
    )
    _COLUMN_LIST, _INSERT_COLUMNS = ", ".join(_COLUMNS), ", ".join(_COLUMNS[1:])
    _UPDATABLE = frozenset(_COLUMNS[4:])
    # Absent display_order sorts last, newest first within equal order.
    _ORDER_BY = "display_order IS NULL, display_order ASC, created_at DESC, id DESC"

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def insert(self, record: ImageRecord) -> ImageRecord:
        """Insert a new row and return the record with its id and timestamp.

        Raises:
            sqlite3.IntegrityError: If the key already exists or the owner's
                quota trigger rejects the row.
        """
        created_at = record.created_at or int(time.time() * 1000)

        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"INSERT INTO user_images ({self._INSERT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.user_id,
                    record.storage_path,
                    record.image_url,
                    record.file_name,
                    record.display_order,
                    created_at,
                    record.bristol_score,
                    record.size_score,
                    self._dump(record.health_indicators),
                    self._dump(record.warnings),
                    record.analysis_notes,
                    int(record.is_analyzed),
                ),
            )
            await conn.commit()
            record.id = cur.lastrowid
            record.created_at = created_at
            return record

    async def get_for_user(self, image_id: int, user_id: str) -> Optional[ImageRecord]:
        """Return the owner's record for `image_id`, or None if not found."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM user_images WHERE id = ? AND user_id = ?",
                (image_id, user_id),
            )
            row = await cur.fetchone()
            return self._row_to_record(row) if row else None

    async def list_for_user(self, user_id: str) -> List[ImageRecord]:
        """List a user's rows in gallery order."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM user_images WHERE user_id = ? ORDER BY {self._ORDER_BY}",
                (user_id,),
            )
            rows = await cur.fetchall()
            return [self._row_to_record(r) for r in rows]

    async def count_for_user(self, user_id: str) -> int:
        async with self._db.connection() as conn:
            cur = await conn.execute("SELECT COUNT(*) FROM user_images WHERE user_id = ?", (user_id,))
            row = await cur.fetchone()
            return int(row[0]) if row else 0

    async def update(self, image_id: int, user_id: str, **fields: Any) -> bool:
        """Update the given columns of the owner's row. Returns True if a row was changed.

        Raises:
            ValueError: If a field is not an updatable column.
        """
        unknown = set(fields) - self._UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update columns: {', '.join(sorted(unknown))}")
        if not fields:
            return False

        params: List[Any] = []
        for col, val in fields.items():
            if col in ("health_indicators", "warnings"):
                val = self._dump(val)
            elif col == "is_analyzed":
                val = int(bool(val))
            params.append(val)
        params.extend((image_id, user_id))
        assignments = ", ".join(f"{col} = ?" for col in fields)

        async with self._db.connection() as conn:
            await conn.execute(f"UPDATE user_images SET {assignments} WHERE id = ? AND user_id = ?", tuple(params))
            await conn.commit()
            cur = await conn.execute("SELECT changes()")
            changed = await cur.fetchone()
            return bool(changed and changed[0] > 0)

    async def delete(self, image_id: int, user_id: str) -> bool:
        """Delete the owner's row by id. Returns True if a row was deleted."""
        async with self._db.connection() as conn:
            await conn.execute("DELETE FROM user_images WHERE id = ? AND user_id = ?", (image_id, user_id))
            await conn.commit()
            cur = await conn.execute("SELECT changes()")
            changed = await cur.fetchone()
            return bool(changed and changed[0] > 0)

    @staticmethod
    def _dump(value: Any) -> Optional[str]:
        return json.dumps(value) if value is not None else None

    @staticmethod
    def _load(value: Optional[str]) -> Any:
        if not value:
            return None
        try:
            return json.loads(value)
        except ValueError:
            return None

    @classmethod
    def _row_to_record(cls, row: Sequence[object]) -> ImageRecord:
        """Convert a DB row tuple into an ImageRecord."""
        return ImageRecord(
            id=row[0],
            user_id=row[1],
            storage_path=row[2],
            image_url=row[3],
            file_name=row[4],
            display_order=row[5],
            created_at=row[6],
            bristol_score=row[7],
            size_score=row[8],
            health_indicators=cls._load(row[9]),
            warnings=cls._load(row[10]) or [],
            analysis_notes=row[11],
            is_analyzed=bool(row[12]),
        )
