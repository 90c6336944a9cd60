"""
SQLite key/value storage for FlowMe app settings.
Holds single JSON records under fixed keys (e.g. the AI configuration).
"""

import aiosqlite
import json
import logging
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)


async def init_db(db_path: str) -> None:
    """Initialize database tables if they don't exist."""
    async with aiosqlite.connect(db_path) as db:
        await db.execute("""
            CREATE TABLE IF NOT EXISTS app_storage (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP
            )
        """)
        await db.commit()
        logger.info(f"Database initialized at {db_path}")


async def get_value(db_path: str, key: str) -> Any | None:
    """Get the stored JSON value for a key. Returns None if not set."""
    async with aiosqlite.connect(db_path) as db:
        cursor = await db.execute(
            "SELECT value FROM app_storage WHERE key = ?",
            (key,)
        )
        row = await cursor.fetchone()
        return json.loads(row[0]) if row else None


async def set_value(db_path: str, key: str, value: Any) -> None:
    """Store a JSON value under a key, replacing any previous value."""
    now = datetime.utcnow().isoformat()
    async with aiosqlite.connect(db_path) as db:
        await db.execute("""
            INSERT INTO app_storage (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
        """, (key, json.dumps(value), now))
        await db.commit()
        logger.info(f"Stored value for key {key}")
