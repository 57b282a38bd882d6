"""
Backup store for the simulator configuration.

The simulator keeps exactly one configuration blob: the JSON-serialised
model repository. ``SAVE`` replaces it, ``LOAD`` reads it back and start-up
uses it to restore the previous session.

SQLite + aiosqlite keeps the write atomic and the API async/await friendly.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any

import aiosqlite

from openhlx.core import HlxIOError, SystemNotInitializedError

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS backup (
    id INTEGER PRIMARY KEY,
    saved_at REAL NOT NULL,
    blob TEXT NOT NULL
);
"""

# Single-row table; the blob always lives under this id
_BACKUP_ID = 1


class BackupStore:
    """
    Async access to the configuration backup.

    Usage:
        store = BackupStore("hlx-backup.db")
        await store.open()
        await store.save(repository.to_dict())
        data = await store.load()
        await store.close()
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        self._conn: aiosqlite.Connection | None = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def path(self) -> str:
        return self._db_path

    async def open(self) -> None:
        if self._conn is not None:
            return
        try:
            self._conn = await aiosqlite.connect(self._db_path)
            await self._conn.execute("PRAGMA journal_mode = WAL;")
            await self._conn.executescript(_SCHEMA)
            await self._conn.commit()
        except (aiosqlite.Error, OSError) as e:
            raise HlxIOError(f"Cannot open backup store {self._db_path}: {e}") from e
        logger.debug("Opened backup store %s", self._db_path)

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise SystemNotInitializedError("BackupStore is not open. Call await store.open() first.")
        return self._conn

    async def save(self, data: dict[str, Any]) -> None:
        """Replace the stored blob."""
        conn = self._require_conn()
        blob = json.dumps(data, separators=(",", ":"))
        try:
            await conn.execute(
                "INSERT OR REPLACE INTO backup (id, saved_at, blob) VALUES (?, ?, ?)",
                (_BACKUP_ID, time.time(), blob),
            )
            await conn.commit()
        except aiosqlite.Error as e:
            raise HlxIOError(f"Cannot write backup: {e}") from e
        logger.info("Saved configuration backup (%d bytes)", len(blob))

    async def load(self) -> dict[str, Any] | None:
        """Return the stored blob, or None when nothing was ever saved."""
        conn = self._require_conn()
        try:
            async with conn.execute(
                "SELECT blob FROM backup WHERE id = ?", (_BACKUP_ID,)
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise HlxIOError(f"Cannot read backup: {e}") from e

        if row is None:
            return None
        try:
            data = json.loads(row[0])
        except json.JSONDecodeError as e:
            raise HlxIOError(f"Corrupt backup blob: {e}") from e
        logger.info("Loaded configuration backup")
        return data
