"""
Database helpers for the host's SQLite state database.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from emulator_shell.config import get_settings


@dataclass(frozen=True)
class DbInfo:
    dialect: str  # always "sqlite" for the desktop shell
    db_path: str


def get_db_info() -> DbInfo:
    return DbInfo(dialect="sqlite", db_path=get_settings().db_path)


def ensure_db_dir() -> None:
    Path(get_db_info().db_path).parent.mkdir(parents=True, exist_ok=True)


@contextmanager
def connect() -> Iterator[sqlite3.Connection]:
    """One connection per operation; commits on success and always closes."""
    conn = sqlite3.connect(get_db_info().db_path)
    conn.row_factory = sqlite3.Row
    try:
        with conn:
            yield conn
    finally:
        conn.close()
