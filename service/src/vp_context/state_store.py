"""SQLite key-value store for durable panel state."""

import aiosqlite
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger(__name__)

CHATS_KEY = "chats"
ACTIVE_ID_KEY = "activeId"
LAST_CAPTURED_CONTEXT_KEY = "lastCapturedContext"
DISCOVERED_BASE_URL_KEY = "discoveredBaseUrl"


class StateStore:
    """
    Durable key-value store holding JSON values.

    Layout:
        chats                ChatSession[]
        activeId             str | null
        lastCapturedContext  str | null
        discoveredBaseUrl    str

    Every write commits before returning so state survives the panel
    being closed and reopened.
    """

    def __init__(self, data_dir: str):
        self.db_path = Path(data_dir) / ".vp-context" / "state.db"
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialized = False
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize database schema (idempotent)."""
        if self._initialized:
            return

        async with self._lock:
            if self._initialized:
                return

            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS state (
                        key TEXT PRIMARY KEY,
                        value TEXT
                    )
                """)
                await db.commit()

            logger.info(f"StateStore initialized at {self.db_path}")
            self._initialized = True

    async def get(self, key: str, default: Any = None) -> Any:
        """Read one JSON value, returning default when absent."""
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT value FROM state WHERE key = ?", (key,)
            ) as cursor:
                row = await cursor.fetchone()

        if row is None or row[0] is None:
            return default
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning(f"Discarding corrupt value for key {key}")
            return default

    async def set(self, values: Dict[str, Any]) -> None:
        """Write several keys in one transaction."""
        await self.initialize()

        rows = [(key, json.dumps(value)) for key, value in values.items()]

        # Writes commit in call order so an older snapshot never lands last
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                await db.executemany(
                    """
                    INSERT INTO state (key, value) VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                    """,
                    rows,
                )
                await db.commit()

        logger.debug(f"Persisted keys: {', '.join(values)}")

    async def remove(self, keys: Iterable[str]) -> None:
        """Delete keys if present."""
        await self.initialize()

        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                await db.executemany(
                    "DELETE FROM state WHERE key = ?", [(key,) for key in keys]
                )
                await db.commit()

    async def pop(self, key: str) -> Optional[Any]:
        """Read and delete a key."""
        value = await self.get(key)
        if value is not None:
            await self.remove([key])
        return value
