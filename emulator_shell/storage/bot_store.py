"""
Bot store: SQLite-backed recent-bots list and app settings.

Bots table: (id, path, display_name, updated_at)
Settings table: (key, value) with value stored as JSON text.
One connection per operation; DB_PATH from env (default ./data/emulator.db).
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, List, Optional

from emulator_shell.models import BotInfo
from emulator_shell.storage.db import connect, ensure_db_dir

logger = logging.getLogger("emulator-shell")

def init_db() -> None:
    """
    Create tables and set PRAGMAs. Idempotent.
    Call at app startup (lifespan or HostApp construction).
    """
    ensure_db_dir()
    with connect() as conn:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA busy_timeout=3000")
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS bots (
                id TEXT PRIMARY KEY,
                path TEXT NOT NULL,
                display_name TEXT NOT NULL DEFAULT '',
                updated_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )

def _now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())

def list_bots() -> List[BotInfo]:
    """Return the recent-bots list, most recently updated first."""
    init_db()
    with connect() as conn:
        rows = conn.execute(
            "SELECT id, path, display_name FROM bots ORDER BY updated_at DESC, rowid DESC"
        ).fetchall()
    return [BotInfo(id=r["id"], path=r["path"], display_name=r["display_name"]) for r in rows]


def replace_bots(bots: List[BotInfo]) -> int:
    """
    Replace the stored list with `bots` (the host state is authoritative).
    Returns the number of rows written.
    """
    init_db()
    updated_at = _now()
    with connect() as conn:
        conn.execute("DELETE FROM bots")
        for info in bots:
            conn.execute(
                "INSERT OR REPLACE INTO bots (id, path, display_name, updated_at) VALUES (?, ?, ?, ?)",
                (info.id, info.path, info.display_name, updated_at),
            )
    return len(bots)

def get_setting(key: str) -> Optional[Any]:
    """Return the decoded setting or None when unset. Do not raise on bad JSON."""
    init_db()
    with connect() as conn:
        row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
    if row is None:
        return None
    try:
        return json.loads(row["value"])
    except (json.JSONDecodeError, TypeError):
        logger.warning("Ignoring unreadable setting %s", key)
        return None

def set_setting(key: str, value: Any) -> None:
    init_db()
    with connect() as conn:
        conn.execute(
            "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
            (key, json.dumps(value)),
        )
