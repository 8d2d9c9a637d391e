"""Connection and schema helpers shared by the alert and settings stores."""

import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from ..config import config

SCHEMA_PATH = Path(__file__).parent / "schema.sql"


def prepare_database(db_path: str | None = None) -> str:
    """Expand the path, create its directory and apply the schema.

    Returns:
        The expanded database path
    """
    db_path = os.path.expanduser(db_path or config.ALERT_DB_PATH)

    # Ensure directory exists
    db_dir = os.path.dirname(db_path)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)

    with open(SCHEMA_PATH) as f:
        schema = f.read()

    with connect(db_path) as conn:
        conn.executescript(schema)

    return db_path


@contextmanager
def connect(db_path: str) -> Iterator[sqlite3.Connection]:
    """Open a connection with row factory; commit on success, always close."""
    conn = sqlite3.connect(db_path, timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
