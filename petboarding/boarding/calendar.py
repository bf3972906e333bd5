"""Calendar blackout dates, optionally scoped to a service or room type."""

from __future__ import annotations

import datetime as dt
import logging
import sqlite3

from .capacity import DAYCARE, canonical_type, normalize_room_type, normalize_service_type
from .dates import parse_date, parse_range
from .errors import ValidationError

logger = logging.getLogger(__name__)

WILDCARD = "all"


def _is_wildcard(value: str | None) -> bool:
    return value is None or not str(value).strip() or str(value).strip().lower() == WILDCARD


def block_scope(service_type: str | None = None, room_type: str | None = None) -> tuple[str, str]:
    """Validate and canonicalise the scope an admin is blocking or unblocking."""

    if _is_wildcard(service_type):
        if not _is_wildcard(room_type):
            raise ValidationError("A room type scope requires a service type")
        return WILDCARD, WILDCARD
    service = normalize_service_type(service_type)
    if service is None:
        raise ValidationError(f"Invalid service type: {service_type}")
    if service == DAYCARE or _is_wildcard(room_type):
        return service, WILDCARD
    room = normalize_room_type(room_type, service)
    if room is None:
        raise ValidationError(f"Invalid room type '{room_type}' for {service} service")
    return service, room


class CalendarBlockStore:
    """CRUD over the ``calendar_availability`` table."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def is_blocked(
        self, *, date: str | dt.date, service_type: str, room_type: str | None = None
    ) -> bool:
        """True when the date is blocked for this exact scope, its service, or everything."""

        day = parse_date(date).isoformat()
        service, room = canonical_type(service_type, room_type)
        row = self.conn.execute(
            """
            SELECT 1 AS blocked FROM calendar_availability
            WHERE date = ?
              AND is_available = 0
              AND (
                    (service_type = 'all' AND room_type = 'all')
                    OR (service_type = ? AND room_type = 'all')
                    OR (service_type = ? AND room_type = ?)
              )
            LIMIT 1
            """,
            (day, service, service, room or WILDCARD),
        ).fetchone()
        return row is not None

    def set_unavailable(
        self,
        *,
        date: str | dt.date,
        reason: str | None = None,
        notes: str | None = None,
        service_type: str | None = None,
        room_type: str | None = None,
        updated_by: int | None = None,
    ) -> dict:
        day = parse_date(date).isoformat()
        service, room = block_scope(service_type, room_type)
        self.conn.execute(
            """
            INSERT INTO calendar_availability(date, service_type, room_type, is_available, reason, notes, updated_by)
            VALUES (?, ?, ?, 0, ?, ?, ?)
            ON CONFLICT(date, service_type, room_type) DO UPDATE SET
                is_available = 0,
                reason = excluded.reason,
                notes = excluded.notes,
                updated_by = excluded.updated_by,
                updated_at = CURRENT_TIMESTAMP
            """,
            (day, service, room, reason, notes, updated_by),
        )
        logger.info("Blocked %s for %s/%s", day, service, room)
        return self.get(date=day, service_type=service, room_type=room)

    def set_available(
        self,
        *,
        date: str | dt.date,
        service_type: str | None = None,
        room_type: str | None = None,
        updated_by: int | None = None,
    ) -> dict | None:
        day = parse_date(date).isoformat()
        service, room = block_scope(service_type, room_type)
        self.conn.execute(
            """
            UPDATE calendar_availability
            SET is_available = 1, reason = NULL, notes = NULL,
                updated_by = ?, updated_at = CURRENT_TIMESTAMP
            WHERE date = ? AND service_type = ? AND room_type = ?
            """,
            (updated_by, day, service, room),
        )
        logger.info("Unblocked %s for %s/%s", day, service, room)
        return self.get(date=day, service_type=service, room_type=room)

    def get(self, *, date: str, service_type: str, room_type: str) -> dict | None:
        return self.conn.execute(
            """
            SELECT * FROM calendar_availability
            WHERE date = ? AND service_type = ? AND room_type = ?
            """,
            (date, service_type, room_type),
        ).fetchone()

    def list_range(self, start_date: str | dt.date, end_date: str | dt.date) -> list[dict]:
        start, end = parse_range(start_date, end_date)
        return self.conn.execute(
            """
            SELECT date, service_type, room_type, is_available, reason, notes
            FROM calendar_availability
            WHERE date BETWEEN ? AND ?
            ORDER BY date, service_type, room_type
            """,
            (start.isoformat(), end.isoformat()),
        ).fetchall()

    def blocked_dates(self, start_date: str | dt.date, end_date: str | dt.date) -> list[dict]:
        """Rows currently blocking a date in range, any scope."""

        start, end = parse_range(start_date, end_date)
        return self.conn.execute(
            """
            SELECT date, service_type, room_type, reason, notes, updated_by
            FROM calendar_availability
            WHERE date BETWEEN ? AND ? AND is_available = 0
            ORDER BY date, service_type, room_type
            """,
            (start.isoformat(), end.isoformat()),
        ).fetchall()
