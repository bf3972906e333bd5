"""Outbox of customer notifications recorded after booking writes."""

from __future__ import annotations

import sqlite3


class NotificationOutbox:
    """Queues messages for the mailer; delivery itself lives elsewhere."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def record(
        self,
        *,
        booking_id: int | None,
        channel: str,
        content: str,
        recipient: str | None = None,
        template_code: str | None = None,
    ) -> dict:
        cur = self.conn.execute(
            """
            INSERT INTO notifications(booking_id, channel, template_code, recipient, content)
            VALUES (?, ?, ?, ?, ?)
            """,
            (booking_id, channel, template_code, recipient, content),
        )
        return self.conn.execute(
            "SELECT * FROM notifications WHERE id = ?", (cur.lastrowid,)
        ).fetchone()

    def booking_created(self, booking: dict) -> dict:
        return self.record(
            booking_id=booking["id"],
            channel="email",
            template_code="booking_confirmation",
            recipient=booking["owner_email"],
            content=(
                f"Hi {booking['owner_first_name']}, we received booking {booking['reference_number']} "
                f"for {booking['pet_name']} from {booking['start_date']} to {booking['end_date']}."
            ),
        )

    def status_changed(self, booking: dict) -> dict:
        return self.record(
            booking_id=booking["id"],
            channel="email",
            template_code=f"booking_{booking['status'].replace('-', '_')}",
            recipient=booking["owner_email"],
            content=f"Booking {booking['reference_number']} is now {booking['status']}.",
        )

    def list_for_booking(self, booking_id: int) -> list[dict]:
        return self.conn.execute(
            "SELECT * FROM notifications WHERE booking_id = ? ORDER BY id",
            (booking_id,),
        ).fetchall()
