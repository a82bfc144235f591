"""Database connection manager for SQLite."""

import os
import sqlite3
from pathlib import Path

from dotenv import load_dotenv

from .schema import SCHEMA

load_dotenv(override=True)

DB_PATH = Path(os.getenv("CLINIC_DB_PATH") or Path(__file__).parent.parent / "clinic_ops.db")


def get_connection() -> sqlite3.Connection:
    """Get a database connection with row factory enabled."""
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_database() -> None:
    """Initialize the database with schema."""
    conn = get_connection()
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()


class RecordNotFoundError(Exception):
    """Raised when an update or action targets a record that does not exist."""
    pass
