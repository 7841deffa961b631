from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from pnodewatch.core.config import DB_PATH

logger = logging.getLogger(__name__)


def get_connection(db_path: Path = DB_PATH) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path), timeout=10)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: Path = DB_PATH) -> None:
    with get_connection(db_path) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS json_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                version INTEGER NOT NULL DEFAULT 1,
                updated_ts_utc TEXT NULL
            )
            """
        )

        existing_cols = {
            row["name"]
            for row in conn.execute("PRAGMA table_info(json_store)").fetchall()
        }
        if "updated_ts_utc" not in existing_cols:
            conn.execute("ALTER TABLE json_store ADD COLUMN updated_ts_utc TEXT NULL")
        conn.commit()

    logger.info("SQLite initialized at %s", db_path)
