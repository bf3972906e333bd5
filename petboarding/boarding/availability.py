"""Availability engine: free slots from capacity, active bookings and blocks."""

from __future__ import annotations

import datetime as dt
import logging
import secrets
from typing import Any, Callable, Iterable, Sequence

from .bookings import BookingStore
from .calendar import CalendarBlockStore
from .capacity import CapacityTable, canonical_type
from .dates import daterange, parse_date, parse_range

logger = logging.getLogger(__name__)

MANUALLY_BLOCKED = "Manually blocked"
NO_SLOTS = "No available slots"


class AvailabilityCache:
    """Read-through cache for the informational availability views.

    ``backend`` is any cache with the cachelib interface (``get``/``set``):
    a ``flask_caching.Cache`` bound to the app, or a cachelib backend
    directly.  Values are stored under the date's current
    generation token; :meth:`invalidate` replaces that token, so every
    process sharing the backend stops seeing older values at once, and a
    value computed across an invalidation lands under a token nobody reads
    again.  Tokens expire with the values, so an idle date costs nothing.
    Capacity decisions never read from here.
    """

    prefix = "petboarding:availability"

    def __init__(self, backend: Any = None, *, ttl: int = 30) -> None:
        self.backend = backend
        self.ttl = ttl

    @property
    def enabled(self) -> bool:
        return self.backend is not None and self.ttl > 0

    def _generation_key(self, day: str) -> str:
        return f"{self.prefix}:generation:{day}"

    def _generation(self, day: str) -> str:
        key = self._generation_key(day)
        token = self.backend.get(key)
        if token is None:
            # Two readers racing here only cost each other a miss.
            token = secrets.token_hex(8)
            self.backend.set(key, token, timeout=self.ttl)
        return token

    def get_or_compute(self, view: str, date: dt.date, compute: Callable[[], Any]) -> Any:
        if not self.enabled:
            return compute()
        day = date.isoformat()
        key = f"{self.prefix}:{view}:{day}:{self._generation(day)}"
        cached = self.backend.get(key)
        if cached is not None:
            return cached
        value = compute()
        self.backend.set(key, value, timeout=self.ttl)
        return value

    def invalidate(self, dates: Iterable[dt.date]) -> None:
        if not self.enabled:
            return
        for day in dates:
            self.backend.set(self._generation_key(day.isoformat()), secrets.token_hex(8), timeout=self.ttl)
        logger.debug("Availability cache invalidated")


class AvailabilityEngine:
    """Combines the capacity table, booking store and calendar block store."""

    def __init__(
        self,
        *,
        capacity: CapacityTable,
        bookings: BookingStore,
        calendar: CalendarBlockStore,
        cache: AvailabilityCache | None = None,
    ) -> None:
        self.capacity = capacity
        self.bookings = bookings
        self.calendar = calendar
        self.cache = cache or AvailabilityCache()

    def get_availability(
        self, date: str | dt.date, service_type: str, room_type: str | None = None
    ) -> dict:
        day = parse_date(date)
        service, room = canonical_type(service_type, room_type)
        total = self.capacity.capacity(service, room)
        if self.calendar.is_blocked(date=day, service_type=service, room_type=room):
            return {"available": 0, "total": total, "is_blocked": True}
        booked = self.bookings.count_active(date=day, service_type=service, room_type=room)
        return {"available": max(0, total - booked), "total": total, "is_blocked": False}

    def get_all_availability(self, date: str | dt.date) -> dict[tuple[str, str | None], dict]:
        day = parse_date(date)
        return {
            (service, room): self.get_availability(day, service, room)
            for (service, room), _ in self.capacity.items()
        }

    def is_available(self, date: str | dt.date, service_type: str, room_type: str | None = None) -> bool:
        return self.get_availability(date, service_type, room_type)["available"] > 0

    def list_unavailable_dates(
        self,
        service_type: str,
        room_type: str | None,
        start_date: str | dt.date,
        end_date: str | dt.date,
    ) -> list[dict]:
        """Dates in range that cannot take a booking, with the reason.

        A manual block is reported even when the date is also full.
        """

        start, end = parse_range(start_date, end_date)
        unavailable = []
        for day in daterange(start, end):
            snapshot = self.get_availability(day, service_type, room_type)
            if snapshot["is_blocked"]:
                unavailable.append({"date": day.isoformat(), "reason": MANUALLY_BLOCKED})
            elif snapshot["available"] <= 0:
                unavailable.append({"date": day.isoformat(), "reason": NO_SLOTS})
        return unavailable

    # ------------------------------------------------------------------
    # Read models for the calendar and dashboard views
    # ------------------------------------------------------------------
    def room_availability(self, date: str | dt.date) -> dict:
        day = parse_date(date)

        def compute() -> dict:
            availability: dict[str, Any] = {}
            for rule in self.capacity.rules():
                snapshot = self.get_availability(day, rule.service_type, rule.room_type)
                leaf = {"total": snapshot["total"], "available": snapshot["available"]}
                if rule.key is None:
                    availability[rule.service_type] = leaf
                else:
                    availability.setdefault(rule.service_type, {})[rule.key] = leaf
            return {"date": day.isoformat(), "availability": availability}

        return self.cache.get_or_compute("rooms", day, compute)

    def service_availability(self, date: str | dt.date, services: Sequence[dict]) -> list[dict]:
        day = parse_date(date)

        def compute() -> list[dict]:
            rows = []
            for service in services:
                snapshot = self.get_availability(day, service["service_type"], service["room_type"])
                rows.append(
                    {
                        "service_id": service["service_id"],
                        "service_name": service["service_name"],
                        "total_slots": snapshot["total"],
                        "available_slots": snapshot["available"],
                    }
                )
            return rows

        return self.cache.get_or_compute("services", day, compute)
