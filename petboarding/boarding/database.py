"""Database utilities for the pet boarding booking backend."""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .errors import StoreError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2


def dict_factory(cursor: sqlite3.Cursor, row: sqlite3.Row) -> dict:
    """Return rows as dictionaries rather than tuples."""

    return {description[0]: row[idx] for idx, description in enumerate(cursor.description)}


def get_connection(path: str | Path) -> sqlite3.Connection:
    """Return a SQLite connection with sensible defaults.

    The connection runs in autocommit mode; multi-statement writes go through
    :func:`transaction` so the capacity recount and the insert share one lock.
    """

    conn = sqlite3.connect(path, isolation_level=None)
    conn.row_factory = dict_factory
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA busy_timeout = 5000")
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the enclosed statements in one ``BEGIN IMMEDIATE`` transaction.

    The write lock is taken up front, so whatever is read inside the block
    cannot be changed by another writer before the block commits.  Any
    exception rolls everything back; SQLite failures surface as
    :class:`StoreError`.
    """

    try:
        conn.execute("BEGIN IMMEDIATE")
    except sqlite3.Error as exc:
        raise StoreError(f"Could not start transaction: {exc}") from exc
    try:
        yield conn
        conn.execute("COMMIT")
    except sqlite3.Error as exc:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        logger.error("Transaction rolled back: %s", exc)
        raise StoreError(str(exc)) from exc
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise


def initialize_database(conn: sqlite3.Connection) -> None:
    """Create the database schema if it does not yet exist."""

    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS metadata (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS services (
            service_id INTEGER PRIMARY KEY AUTOINCREMENT,
            service_name TEXT NOT NULL,
            service_type TEXT NOT NULL,
            room_type TEXT,
            description TEXT,
            max_slots INTEGER NOT NULL DEFAULT 0,
            allows_cats INTEGER NOT NULL DEFAULT 1,
            is_active INTEGER DEFAULT 1,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS bookings (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            reference_number TEXT NOT NULL UNIQUE,
            owner_first_name TEXT NOT NULL,
            owner_last_name TEXT,
            owner_email TEXT NOT NULL,
            owner_phone TEXT NOT NULL,
            owner_address TEXT,
            pet_name TEXT NOT NULL,
            pet_type TEXT NOT NULL,
            breed TEXT,
            gender TEXT,
            date_of_birth TEXT,
            weight_category TEXT,
            service_id INTEGER,
            service_type TEXT NOT NULL,
            room_type TEXT,
            start_date TEXT NOT NULL,
            end_date TEXT,
            start_time TEXT,
            end_time TEXT,
            total_amount REAL NOT NULL DEFAULT 0,
            special_requests TEXT,
            grooming_type TEXT,
            status TEXT NOT NULL DEFAULT 'pending',
            confirmed_by INTEGER,
            confirmed_at TEXT,
            cancelled_by INTEGER,
            cancelled_at TEXT,
            cancellation_reason TEXT,
            completed_at TEXT,
            admin_notes TEXT,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(service_id) REFERENCES services(service_id)
        );

        CREATE INDEX IF NOT EXISTS idx_bookings_occupancy
            ON bookings(service_type, status, start_date, end_date);

        CREATE INDEX IF NOT EXISTS idx_bookings_owner_email
            ON bookings(owner_email);

        CREATE TABLE IF NOT EXISTS calendar_availability (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            date TEXT NOT NULL,
            service_type TEXT NOT NULL DEFAULT 'all',
            room_type TEXT NOT NULL DEFAULT 'all',
            is_available INTEGER NOT NULL DEFAULT 1,
            reason TEXT,
            notes TEXT,
            updated_by INTEGER,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(date, service_type, room_type)
        );

        CREATE TABLE IF NOT EXISTS notifications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            booking_id INTEGER,
            channel TEXT NOT NULL,
            template_code TEXT,
            recipient TEXT,
            content TEXT NOT NULL,
            status TEXT DEFAULT 'queued',
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(booking_id) REFERENCES bookings(id)
        );
        """
    )

    columns = {row["name"] for row in conn.execute("PRAGMA table_info(services)")}
    if "allows_cats" not in columns:
        conn.execute("ALTER TABLE services ADD COLUMN allows_cats INTEGER NOT NULL DEFAULT 1")
    set_metadata(conn, "schema_version", SCHEMA_VERSION)


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Fail fast when a database opened without initialisation is unusable."""

    try:
        version = get_metadata(conn, "schema_version")
    except sqlite3.Error as exc:
        raise StoreError(f"Database is not initialized: {exc}") from exc
    if version != str(SCHEMA_VERSION):
        raise StoreError(
            f"Database schema version {version} does not match expected version {SCHEMA_VERSION}"
        )


def set_metadata(conn: sqlite3.Connection, key: str, value: int | str | dict | list) -> None:
    if isinstance(value, (dict, list)):
        value = json.dumps(value)
    conn.execute(
        "INSERT INTO metadata(key, value) VALUES (?, ?)\n         ON CONFLICT(key) DO UPDATE SET value = excluded.value",
        (key, str(value)),
    )


def get_metadata(conn: sqlite3.Connection, key: str, default: str | None = None) -> str | None:
    row = conn.execute("SELECT value FROM metadata WHERE key = ?", (key,)).fetchone()
    return row["value"] if row else default
