"""Booking persistence and the overlap-counting query behind availability."""

from __future__ import annotations

import datetime as dt
import logging
import secrets
import sqlite3
from typing import Any, Mapping

from .capacity import DAYCARE, canonical_type
from .dates import parse_date
from .errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

BOOKING_STATUSES = ("pending", "confirmed", "completed", "cancelled", "no-show")
ACTIVE_STATUSES = ("pending", "confirmed")
REFERENCE_ATTEMPTS = 5

BOOKING_COLUMNS = (
    "owner_first_name",
    "owner_last_name",
    "owner_email",
    "owner_phone",
    "owner_address",
    "pet_name",
    "pet_type",
    "breed",
    "gender",
    "date_of_birth",
    "weight_category",
    "service_id",
    "service_type",
    "room_type",
    "start_date",
    "end_date",
    "start_time",
    "end_time",
    "total_amount",
    "special_requests",
    "grooming_type",
)


def generate_reference_number(now: dt.datetime | None = None) -> str:
    """Return ``BPB`` + UTC ``YYMMDDHHMMSS`` + a random three digit suffix."""

    now = now or dt.datetime.now(dt.timezone.utc)
    return f"BPB{now:%y%m%d%H%M%S}{secrets.randbelow(900) + 100}"


def normalize_status(status: str | None) -> str:
    value = str(status or "").strip().lower()
    if value not in BOOKING_STATUSES:
        raise ValidationError("Invalid status value")
    return value


class BookingStore:
    """Query layer over the ``bookings`` table."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    # ------------------------------------------------------------------
    # Capacity accounting
    # ------------------------------------------------------------------
    def count_active(
        self,
        *,
        date: str | dt.date,
        service_type: str,
        room_type: str | None = None,
    ) -> int:
        """Count pending/confirmed bookings whose inclusive range covers ``date``.

        A booking without an end date only occupies its start date.  Daycare
        is one undifferentiated pool, so its room type is ignored.
        """

        day = parse_date(date).isoformat()
        service, room = canonical_type(service_type, room_type)
        sql = """
            SELECT COUNT(*) AS total
            FROM bookings
            WHERE service_type = ?
              AND status IN (?, ?)
              AND start_date <= ?
              AND COALESCE(end_date, start_date) >= ?
        """
        params: list[Any] = [service, *ACTIVE_STATUSES, day, day]
        if service != DAYCARE:
            sql += " AND room_type IS ?"
            params.append(room)
        row = self.conn.execute(sql, params).fetchone()
        return row["total"] if row else 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def insert(self, data: Mapping[str, Any]) -> dict:
        """Insert a pending booking; call inside the creation transaction.

        A reference number that collides with an existing one is regenerated
        a few times; SQLite only aborts the failed statement, so the
        surrounding transaction stays usable between attempts.
        """

        columns = [column for column in BOOKING_COLUMNS if column in data]
        placeholders = ", ".join("?" for _ in range(len(columns) + 2))
        sql = f"INSERT INTO bookings(reference_number, status, {', '.join(columns)}) VALUES ({placeholders})"
        values = tuple(data[column] for column in columns)
        attempts = 0
        while True:
            try:
                cur = self.conn.execute(sql, (generate_reference_number(), "pending", *values))
                break
            except sqlite3.IntegrityError as exc:
                attempts += 1
                if attempts >= REFERENCE_ATTEMPTS or "reference_number" not in str(exc):
                    raise
                logger.warning("Reference number collision, retrying")
        return self.get(cur.lastrowid)

    def update_status(
        self,
        booking_id: int,
        status: str,
        *,
        notes: str | None = None,
        reason: str | None = None,
        admin_id: int | None = None,
        today: dt.date | None = None,
    ) -> dict:
        status = normalize_status(status)
        if status == "confirmed":
            sql = """
                UPDATE bookings
                SET status = 'confirmed', confirmed_by = ?, confirmed_at = CURRENT_TIMESTAMP,
                    admin_notes = COALESCE(?, admin_notes), updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
            """
            params: tuple = (admin_id, notes, booking_id)
        elif status == "cancelled":
            sql = """
                UPDATE bookings
                SET status = 'cancelled', cancelled_by = ?, cancelled_at = CURRENT_TIMESTAMP,
                    cancellation_reason = ?, admin_notes = COALESCE(?, admin_notes),
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
            """
            params = (admin_id, reason, notes, booking_id)
        elif status == "completed":
            # Trim stays that end in the future so the remaining nights free up,
            # never before the first night.
            day = (today or dt.date.today()).isoformat()
            sql = """
                UPDATE bookings
                SET status = 'completed', completed_at = CURRENT_TIMESTAMP,
                    end_date = CASE WHEN end_date > ? THEN MAX(start_date, ?) ELSE end_date END,
                    admin_notes = COALESCE(?, admin_notes), updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
            """
            params = (day, day, notes, booking_id)
        elif status == "no-show":
            sql = """
                UPDATE bookings
                SET status = 'no-show', cancelled_at = CURRENT_TIMESTAMP,
                    admin_notes = COALESCE(?, admin_notes), updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
            """
            params = (notes, booking_id)
        else:
            sql = """
                UPDATE bookings
                SET status = ?, admin_notes = COALESCE(?, admin_notes), updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
            """
            params = (status, notes, booking_id)
        cur = self.conn.execute(sql, params)
        if cur.rowcount == 0:
            raise NotFoundError("Booking not found")
        logger.info("Booking %s moved to %s", booking_id, status)
        return self.get(booking_id)

    def extend(self, booking_id: int, new_end_date: dt.date, *, notes: str | None = None) -> dict:
        cur = self.conn.execute(
            """
            UPDATE bookings
            SET end_date = ?, admin_notes = COALESCE(?, admin_notes), updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            (new_end_date.isoformat(), notes, booking_id),
        )
        if cur.rowcount == 0:
            raise NotFoundError("Booking not found")
        return self.get(booking_id)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def get(self, booking_id: int) -> dict:
        row = self.conn.execute("SELECT * FROM bookings WHERE id = ?", (booking_id,)).fetchone()
        if not row:
            raise NotFoundError("Booking not found")
        return row

    def find_by_reference(self, reference_number: str) -> dict:
        reference = str(reference_number).strip().lstrip("#").upper()
        row = self.conn.execute(
            "SELECT * FROM bookings WHERE reference_number = ?", (reference,)
        ).fetchone()
        if not row:
            raise NotFoundError(f"No booking found with reference number {reference_number}")
        return row

    def list_by_email(self, email: str) -> list[dict]:
        rows = self.conn.execute(
            "SELECT * FROM bookings WHERE lower(owner_email) = ? ORDER BY created_at DESC, id DESC",
            (email.strip().lower(),),
        ).fetchall()
        if not rows:
            raise NotFoundError(f"No bookings found for email {email}")
        return rows

    def list_bookings(
        self,
        *,
        status: str | None = None,
        service_type: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        conditions: list[str] = []
        params: list[Any] = []
        if status:
            conditions.append("status = ?")
            params.append(normalize_status(status))
        if service_type:
            conditions.append("service_type = ?")
            params.append(canonical_type(service_type, None)[0])
        if start_date:
            conditions.append("start_date >= ?")
            params.append(parse_date(start_date, field="startDate").isoformat())
        if end_date:
            conditions.append("start_date <= ?")
            params.append(parse_date(end_date, field="endDate").isoformat())
        where_clause = ""
        if conditions:
            where_clause = " WHERE " + " AND ".join(conditions)
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        total = self.conn.execute(
            "SELECT COUNT(*) AS total FROM bookings" + where_clause, params
        ).fetchone()["total"]
        rows = self.conn.execute(
            "SELECT * FROM bookings" + where_clause + " ORDER BY start_date DESC, id DESC LIMIT ? OFFSET ?",
            [*params, limit, (page - 1) * limit],
        ).fetchall()
        return {
            "bookings": rows,
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "pages": -(-total // limit),
            },
        }

    def list_pending(self) -> list[dict]:
        return self.conn.execute(
            "SELECT * FROM bookings WHERE status = 'pending' ORDER BY created_at ASC, id ASC"
        ).fetchall()

    def summary(self, date: str | dt.date) -> list[dict]:
        """Per-service counts by status for bookings starting on ``date``."""

        day = parse_date(date).isoformat()
        return self.conn.execute(
            """
            SELECT bookings.start_date,
                   bookings.service_type,
                   bookings.room_type,
                   services.service_name,
                   COUNT(*) AS total_bookings,
                   SUM(CASE WHEN bookings.status = 'pending' THEN 1 ELSE 0 END) AS pending_count,
                   SUM(CASE WHEN bookings.status = 'confirmed' THEN 1 ELSE 0 END) AS confirmed_count,
                   SUM(CASE WHEN bookings.status = 'completed' THEN 1 ELSE 0 END) AS completed_count,
                   SUM(CASE WHEN bookings.status = 'cancelled' THEN 1 ELSE 0 END) AS cancelled_count,
                   SUM(bookings.total_amount) AS total_revenue
            FROM bookings
            LEFT JOIN services ON services.service_id = bookings.service_id
            WHERE bookings.start_date = ?
            GROUP BY bookings.service_type, bookings.room_type
            ORDER BY bookings.service_type, bookings.room_type
            """,
            (day,),
        ).fetchall()
