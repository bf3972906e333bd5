"""Core orchestration logic for the pet boarding booking backend."""

from __future__ import annotations

import datetime as dt
import logging
import re
from typing import Any, Callable, Mapping

from .availability import AvailabilityCache, AvailabilityEngine
from .bookings import ACTIVE_STATUSES, BookingStore, normalize_status
from .calendar import CalendarBlockStore
from .capacity import (
    DAYCARE,
    GROOMING,
    CapacityTable,
    normalize_room_type,
    normalize_service_type,
)
from .database import ensure_schema, get_connection, initialize_database, transaction
from .dates import daterange, parse_date
from .errors import CapacityExceededError, NotFoundError, StoreError, ValidationError
from .notifications import NotificationOutbox

logger = logging.getLogger(__name__)

PET_TYPES = ("Dog", "Cat")
WEIGHT_CATEGORIES = ("Small", "Medium", "Large", "X-Large", "Cat")

# Where each booking field may arrive in a request body, most specific first.
# Clients send flat snake_case, flat camelCase, or nested guest_user/guest_pet
# objects; the first non-empty value wins.
FIELD_SOURCES: dict[str, tuple[str, ...]] = {
    "owner_first_name": (
        "owner_first_name",
        "ownerFirstName",
        "guest_user.first_name",
        "guest_user.firstName",
        "guest_user.owner_first_name",
    ),
    "owner_last_name": (
        "owner_last_name",
        "ownerLastName",
        "guest_user.last_name",
        "guest_user.lastName",
        "guest_user.owner_last_name",
    ),
    "owner_email": ("owner_email", "ownerEmail", "guest_user.email", "guest_user.owner_email", "email"),
    "owner_phone": ("owner_phone", "ownerPhone", "guest_user.phone", "guest_user.owner_phone", "phone"),
    "owner_address": (
        "owner_address",
        "ownerAddress",
        "guest_user.address",
        "guest_user.addressLine",
        "guest_user.owner_address",
    ),
    "pet_name": ("pet_name", "petName", "guest_pet.pet_name", "guest_pet.name"),
    "pet_type": ("pet_type", "petType", "guest_pet.pet_type", "guest_pet.type"),
    "breed": ("breed", "guest_pet.breed"),
    "gender": ("gender", "sex", "guest_pet.gender", "guest_pet.sex"),
    "date_of_birth": ("date_of_birth", "dateOfBirth", "guest_pet.date_of_birth", "guest_pet.dateOfBirth"),
    "weight_category": (
        "weight_category",
        "weightCategory",
        "guest_pet.weight_category",
        "guest_pet.weightCategory",
    ),
    "service_id": ("service_id", "serviceId"),
    "service_type": ("service_type", "serviceType"),
    "room_type": ("room_type", "roomType"),
    "start_date": ("start_date", "startDate", "booking_date"),
    "end_date": ("end_date", "endDate"),
    "start_time": ("start_time", "startTime"),
    "end_time": ("end_time", "endTime"),
    "total_amount": ("total_amount", "totalAmount"),
    "special_requests": ("special_requests", "specialRequests"),
    "grooming_type": ("grooming_type", "groomingType"),
}

# Last resort for the owner's name: a single "First Last" string.
FULL_NAME_SOURCES = ("ownerName", "owner_name", "guest_user.name")

TIME_24H = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$")
TIME_12H = re.compile(r"^(\d{1,2})(?::([0-5]\d))?\s*([AaPp][Mm])$")


def _lookup(data: Mapping[str, Any], path: str) -> Any:
    value: Any = data
    for part in path.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def _first(data: Mapping[str, Any], paths: tuple[str, ...], *, field: str) -> Any:
    for path in paths:
        value = _lookup(data, path)
        if isinstance(value, str):
            value = value.strip()
        if value in (None, ""):
            continue
        # bool is an int subclass but never a meaningful column value.
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            raise ValidationError(f"Invalid value for {field}")
        return value
    return None


def normalize_booking_payload(data: Mapping[str, Any]) -> dict:
    """Collapse every accepted request shape into flat booking columns."""

    booking = {field: _first(data, sources, field=field) for field, sources in FIELD_SOURCES.items()}
    if not booking["owner_first_name"]:
        full_name = _first(data, FULL_NAME_SOURCES, field="owner_name")
        if full_name:
            first, _, rest = str(full_name).partition(" ")
            booking["owner_first_name"] = first
            booking["owner_last_name"] = booking["owner_last_name"] or rest.strip() or None
    return booking


def to_24_hour(value: str | None, *, field: str) -> str | None:
    """Normalise ``HH:MM[:SS]`` or ``H[:MM] AM/PM`` to ``HH:MM:SS``."""

    if not value:
        return None
    text = str(value).strip()
    match = TIME_24H.match(text)
    if match:
        hours, minutes, seconds = match.groups()
        return f"{int(hours):02d}:{minutes}:{seconds or '00'}"
    match = TIME_12H.match(text)
    if match:
        hours = int(match.group(1))
        if 1 <= hours <= 12:
            minutes = match.group(2) or "00"
            is_pm = match.group(3).upper() == "PM"
            if is_pm and hours < 12:
                hours += 12
            elif not is_pm and hours == 12:
                hours = 0
            return f"{hours:02d}:{minutes}:00"
    raise ValidationError(
        f"Invalid {field} format. Use either 24-hour (HH:mm) or 12-hour (HH:mm AM/PM) format"
    )


class BoardingSystem:
    """High level façade that exposes the booking and availability behaviours."""

    def __init__(
        self,
        db_path: str = ":memory:",
        *,
        capacity: CapacityTable | None = None,
        cache: AvailabilityCache | None = None,
        initialize: bool = True,
    ) -> None:
        self.conn = get_connection(db_path)
        self.capacity = capacity or CapacityTable()
        self.bookings = BookingStore(self.conn)
        self.calendar = CalendarBlockStore(self.conn)
        self.notifications = NotificationOutbox(self.conn)
        self.availability = AvailabilityEngine(
            capacity=self.capacity,
            bookings=self.bookings,
            calendar=self.calendar,
            cache=cache,
        )
        if initialize:
            initialize_database(self.conn)
            self._seed_services()
        else:
            try:
                ensure_schema(self.conn)
            except StoreError:
                self.conn.close()
                raise

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _seed_services(self) -> None:
        with transaction(self.conn):
            row = self.conn.execute("SELECT COUNT(*) AS total FROM services").fetchone()
            if row["total"]:
                return
            self.conn.executemany(
                """
                INSERT INTO services(service_name, service_type, room_type, max_slots)
                VALUES (?, ?, ?, ?)
                """,
                [
                    (rule.service_name, rule.service_type, rule.room_type, rule.capacity)
                    for rule in self.capacity.rules()
                ],
            )

    def _notify(self, send: Callable[[dict], Any], booking: dict) -> None:
        # The booking is already committed; a failed notification must not undo it.
        try:
            send(booking)
        except Exception:
            logger.exception("Failed to queue notification for booking %s", booking["id"])

    def _check_capacity(
        self, service_type: str, room_type: str | None, start: dt.date, end: dt.date
    ) -> None:
        """Reject unless every night in ``[start, end]`` has a free slot.

        Must run inside :func:`transaction` so the recount and the write that
        follows cannot interleave with another writer.
        """

        total = self.capacity.capacity(service_type, room_type)
        label = room_type or service_type
        for day in daterange(start, end):
            if self.calendar.is_blocked(date=day, service_type=service_type, room_type=room_type):
                logger.warning("Rejected %s on %s: date blocked", label, day)
                raise CapacityExceededError(
                    f"No availability for {label} on {day.isoformat()}: the date is unavailable",
                    date=day.isoformat(),
                )
            booked = self.bookings.count_active(date=day, service_type=service_type, room_type=room_type)
            if booked >= total:
                logger.warning("Rejected %s on %s: %s of %s slots booked", label, day, booked, total)
                raise CapacityExceededError(
                    f"No availability for {label} on {day.isoformat()}: all {total} slots are booked",
                    date=day.isoformat(),
                )

    @staticmethod
    def _stay(booking: Mapping[str, Any]) -> tuple[dt.date, dt.date]:
        start = parse_date(booking["start_date"])
        end = parse_date(booking["end_date"]) if booking["end_date"] else start
        return start, end

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------
    def list_services(self) -> list[dict]:
        return self.conn.execute(
            "SELECT * FROM services WHERE is_active = 1 ORDER BY service_name"
        ).fetchall()

    def get_service(self, service_id: int) -> dict:
        row = self.conn.execute(
            "SELECT * FROM services WHERE service_id = ?", (service_id,)
        ).fetchone()
        if not row:
            raise NotFoundError("Service not found")
        return row

    def find_service(self, service_type: str, room_type: str | None) -> dict | None:
        return self.conn.execute(
            "SELECT * FROM services WHERE service_type = ? AND room_type IS ? AND is_active = 1",
            (service_type, room_type),
        ).fetchone()

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------
    def get_availability(self, date: str, service_type: str, room_type: str | None = None) -> dict:
        return self.availability.get_availability(date, service_type, room_type)

    def get_all_availability(self, date: str) -> dict:
        return self.availability.get_all_availability(date)

    def is_available(self, date: str, service_type: str, room_type: str | None = None) -> bool:
        return self.availability.is_available(date, service_type, room_type)

    def list_unavailable_dates(
        self, service_type: str, room_type: str | None, start_date: str, end_date: str
    ) -> list[dict]:
        return self.availability.list_unavailable_dates(service_type, room_type, start_date, end_date)

    def room_availability(self, date: str) -> dict:
        return self.availability.room_availability(date)

    def service_availability(self, date: str) -> list[dict]:
        return self.availability.service_availability(date, self.list_services())

    def count_bookings(self, date: str, service_type: str, room_type: str | None = None) -> int:
        return self.bookings.count_active(date=date, service_type=service_type, room_type=room_type)

    # ------------------------------------------------------------------
    # Calendar blocks
    # ------------------------------------------------------------------
    def block_date(
        self,
        *,
        date: str,
        reason: str | None = None,
        notes: str | None = None,
        service_type: str | None = None,
        room_type: str | None = None,
        updated_by: int | None = None,
    ) -> dict:
        block = self.calendar.set_unavailable(
            date=date,
            reason=reason,
            notes=notes,
            service_type=service_type,
            room_type=room_type,
            updated_by=updated_by,
        )
        self.availability.cache.invalidate([parse_date(date)])
        return block

    def unblock_date(
        self,
        *,
        date: str,
        service_type: str | None = None,
        room_type: str | None = None,
        updated_by: int | None = None,
    ) -> dict | None:
        block = self.calendar.set_available(
            date=date, service_type=service_type, room_type=room_type, updated_by=updated_by
        )
        self.availability.cache.invalidate([parse_date(date)])
        return block

    def list_calendar(self, start_date: str, end_date: str) -> list[dict]:
        return self.calendar.list_range(start_date, end_date)

    def list_blocked_dates(self, start_date: str, end_date: str) -> list[dict]:
        return self.calendar.blocked_dates(start_date, end_date)

    # ------------------------------------------------------------------
    # Booking lifecycle
    # ------------------------------------------------------------------
    def _validate_booking(self, data: dict) -> dict:
        missing = []
        if not data["owner_first_name"]:
            missing.append("name")
        if not data["owner_email"]:
            missing.append("email")
        if not data["owner_phone"]:
            missing.append("phone number")
        if missing:
            raise ValidationError(
                f"Please fill in the Owner Details section. Missing: {', '.join(missing)}."
            )

        if not (data["service_id"] or data["service_type"]) or not data["start_date"] or not data["pet_type"]:
            raise ValidationError(
                "Missing required booking information (service type, booking date, or pet type)"
            )
        if not data["pet_name"]:
            raise ValidationError("Pet name is required")

        pet_type = str(data["pet_type"]).capitalize()
        if pet_type not in PET_TYPES:
            raise ValidationError("Invalid pet type. Must be either Dog or Cat")
        data["pet_type"] = pet_type

        if data["service_id"]:
            try:
                service = self.get_service(int(data["service_id"]))
            except (TypeError, ValueError) as exc:
                raise ValidationError("Invalid service id") from exc
            service_type, room_type = service["service_type"], service["room_type"]
            requested = data["room_type"]
            if requested and service_type != DAYCARE and normalize_room_type(requested, service_type) != room_type:
                raise ValidationError(f"Room type '{requested}' does not match {service['service_name']}")
        else:
            service_type = normalize_service_type(data["service_type"])
            if service_type is None:
                raise ValidationError(f"Invalid service type: {data['service_type']}")
            room_type = None
            if service_type != DAYCARE:
                if not data["room_type"]:
                    raise ValidationError(f"Room type is required for {service_type} bookings")
                room_type = normalize_room_type(data["room_type"], service_type)
                if room_type is None:
                    raise ValidationError(f"Invalid room type '{data['room_type']}' for {service_type} service")
            service = self.find_service(service_type, room_type)
        if pet_type == "Cat" and service and not service["allows_cats"]:
            raise ValidationError("This service does not accept cats")
        data["service_id"] = service["service_id"] if service else None
        data["service_type"] = service_type
        data["room_type"] = room_type

        # Cats share overnight and daycare capacity with dogs and are weighed the same way.
        if pet_type == "Dog" or service_type != GROOMING:
            weight = str(data["weight_category"] or "").strip()
            matches = [category for category in WEIGHT_CATEGORIES if category.lower() == weight.lower()]
            if not matches:
                raise ValidationError(
                    "Valid weight category is required for dogs and cats in overnight/daycare services"
                )
            data["weight_category"] = matches[0]

        start = parse_date(data["start_date"], field="start_date")
        end = parse_date(data["end_date"], field="end_date") if data["end_date"] else start
        if end < start:
            raise ValidationError("End date must not be before start date")
        data["start_date"] = start.isoformat()
        data["end_date"] = end.isoformat()
        if data["date_of_birth"]:
            data["date_of_birth"] = parse_date(data["date_of_birth"], field="date_of_birth").isoformat()

        data["start_time"] = to_24_hour(data["start_time"], field="start time")
        data["end_time"] = to_24_hour(data["end_time"], field="end time")
        try:
            data["total_amount"] = float(data["total_amount"] or 0)
        except (TypeError, ValueError) as exc:
            raise ValidationError("Invalid total amount") from exc
        return data

    def create_booking(self, payload: Mapping[str, Any]) -> dict:
        """Validate, re-check capacity for every night, and insert atomically."""

        data = self._validate_booking(normalize_booking_payload(payload))
        start = parse_date(data["start_date"])
        end = parse_date(data["end_date"])
        with transaction(self.conn):
            self._check_capacity(data["service_type"], data["room_type"], start, end)
            booking = self.bookings.insert(data)
        logger.info(
            "Booking %s (%s) created for %s %s from %s to %s",
            booking["id"],
            booking["reference_number"],
            booking["service_type"],
            booking["room_type"] or "",
            booking["start_date"],
            booking["end_date"],
        )
        self.availability.cache.invalidate(daterange(start, end))
        self._notify(self.notifications.booking_created, booking)
        return booking

    def get_booking(self, booking_id: int) -> dict:
        return self.bookings.get(booking_id)

    def search_bookings(
        self, *, email: str | None = None, reference_number: str | None = None
    ) -> list[dict]:
        if reference_number:
            return [self.bookings.find_by_reference(reference_number)]
        if email:
            return self.bookings.list_by_email(email)
        raise ValidationError("Please provide either email or reference number")

    def list_bookings(self, **filters: Any) -> dict:
        return self.bookings.list_bookings(**filters)

    def list_pending_bookings(self) -> list[dict]:
        return self.bookings.list_pending()

    def booking_summary(self, date: str) -> list[dict]:
        return self.bookings.summary(date)

    def update_booking_status(
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
        with transaction(self.conn):
            current = self.bookings.get(booking_id)
            start, end = self._stay(current)
            if status in ACTIVE_STATUSES and current["status"] not in ACTIVE_STATUSES:
                # Re-activating a released booking has to win its nights back.
                self._check_capacity(current["service_type"], current["room_type"], start, end)
            booking = self.bookings.update_status(
                booking_id, status, notes=notes, reason=reason, admin_id=admin_id, today=today
            )
        self.availability.cache.invalidate(daterange(start, end))
        self._notify(self.notifications.status_changed, booking)
        return booking

    def extend_booking(self, booking_id: int, new_end_date: str, *, notes: str | None = None) -> dict:
        new_end = parse_date(new_end_date, field="newEndDate")
        with transaction(self.conn):
            current = self.bookings.get(booking_id)
            _, current_end = self._stay(current)
            if new_end <= current_end:
                raise ValidationError("New end date must be after current end date")
            added = current_end + dt.timedelta(days=1)
            if current["status"] in ACTIVE_STATUSES:
                self._check_capacity(current["service_type"], current["room_type"], added, new_end)
            booking = self.bookings.extend(booking_id, new_end, notes=notes)
        logger.info("Booking %s extended to %s", booking_id, new_end)
        self.availability.cache.invalidate(daterange(added, new_end))
        return booking

    def close(self) -> None:
        self.conn.close()
