"""Flask application exposing the pet boarding booking API."""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Mapping

from flask import Flask, current_app, g, jsonify, request
from flask_caching import Cache

from petboarding.boarding.availability import AvailabilityCache
from petboarding.boarding.capacity import CapacityTable
from petboarding.boarding.errors import (
    CapacityExceededError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from petboarding.boarding.system import BoardingSystem

__all__ = ["create_app"]


def _fail(message: str, status: int) -> Any:
    return jsonify({"success": False, "message": message}), status


def _ok(data: Any, status: int = 200, **extra: Any) -> Any:
    return jsonify({"success": True, "data": data, **extra}), status


def _require(args: Mapping[str, Any], *names: str) -> None:
    missing = [name for name in names if not args.get(name)]
    if missing:
        raise ValidationError(f"Missing required parameter(s): {', '.join(missing)}")


def create_app(database_path: str | None = None, config: Mapping[str, Any] | None = None) -> Flask:
    """Create and configure the Flask application."""

    app = Flask(__name__)
    app.config.from_mapping(
        DATABASE="petboarding.db",
        SECRET_KEY="petboarding-secret",
        DEVELOPMENT=False,
        LOG_LEVEL="INFO",
        DEFAULT_CAPACITY=10,
        CAPACITY_OVERRIDES={},
        AVAILABILITY_CACHE_TTL=30,
        CACHE_TYPE="SimpleCache",
        CACHE_THRESHOLD=500,
    )
    if config:
        app.config.from_mapping(config)
    if database_path:
        app.config["DATABASE"] = database_path
    app.config.from_prefixed_env()

    logging.basicConfig(level=app.config["LOG_LEVEL"])

    capacity = CapacityTable(
        app.config["CAPACITY_OVERRIDES"], default=int(app.config["DEFAULT_CAPACITY"])
    )
    # SimpleCache is per process; set CACHE_TYPE=RedisCache and CACHE_REDIS_URL
    # when several workers serve the same database.
    cache = AvailabilityCache(Cache(app), ttl=int(app.config["AVAILABILITY_CACHE_TTL"]))

    # Schema and seed data are created once; request-scoped systems skip it.
    BoardingSystem(app.config["DATABASE"], capacity=capacity, cache=cache).close()

    def get_system() -> BoardingSystem:
        if "system" not in g:
            g.system = BoardingSystem(
                current_app.config["DATABASE"], capacity=capacity, cache=cache, initialize=False
            )
        return g.system

    @app.teardown_appcontext
    def close_system(exc: BaseException | None) -> None:
        system = g.pop("system", None)
        if system is not None:
            system.close()

    @app.errorhandler(ValidationError)
    def handle_validation(exc: ValidationError) -> Any:
        return _fail(str(exc), 400)

    @app.errorhandler(NotFoundError)
    def handle_not_found(exc: NotFoundError) -> Any:
        return _fail(str(exc), 404)

    @app.errorhandler(CapacityExceededError)
    def handle_capacity(exc: CapacityExceededError) -> Any:
        return _fail(str(exc), 409)

    @app.errorhandler(StoreError)
    @app.errorhandler(sqlite3.Error)
    def handle_store(exc: Exception) -> Any:
        app.logger.error("Database error: %s", exc)
        message = str(exc) if app.config["DEVELOPMENT"] else "Internal server error"
        return _fail(message, 500)

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------
    @app.get("/availability")
    def availability() -> Any:
        _require(request.args, "date")
        return _ok(get_system().service_availability(request.args["date"]))

    @app.get("/room-availability")
    def room_availability() -> Any:
        _require(request.args, "date")
        return _ok(get_system().room_availability(request.args["date"]))

    @app.get("/service-availability")
    def service_availability() -> Any:
        args = request.args
        system = get_system()
        service_id = args.get("serviceId", type=int)
        service_type = args.get("serviceType")
        room_type = args.get("roomType") or None
        if service_id and not service_type:
            service = system.get_service(service_id)
            service_type, room_type = service["service_type"], service["room_type"]
        if not args.get("date") or not service_type:
            raise ValidationError("Missing required parameter(s): date, serviceType")
        snapshot = system.get_availability(args["date"], service_type, room_type)
        return _ok(
            {
                "date": args["date"],
                "serviceType": service_type,
                "roomType": room_type,
                "serviceId": service_id,
                "isAvailable": snapshot["available"] > 0,
                "availableSlots": snapshot["available"],
                "totalSlots": snapshot["total"],
                "isBlocked": snapshot["is_blocked"],
            }
        )

    @app.get("/unavailable-dates")
    def unavailable_dates() -> Any:
        args = request.args
        _require(args, "serviceType", "startDate", "endDate")
        room_type = args.get("roomType") or None
        dates = get_system().list_unavailable_dates(
            args["serviceType"], room_type, args["startDate"], args["endDate"]
        )
        return _ok(
            {
                "unavailableDates": dates,
                "serviceType": args["serviceType"],
                "roomType": room_type,
            }
        )

    @app.get("/count-bookings")
    def count_bookings() -> Any:
        args = request.args
        _require(args, "date", "serviceType")
        count = get_system().count_bookings(
            args["date"], args["serviceType"], args.get("roomType") or None
        )
        return _ok({"count": count})

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------
    @app.post("/bookings")
    def create_booking() -> Any:
        payload = request.get_json(silent=True) or {}
        booking = get_system().create_booking(payload)
        return _ok(booking, 201, message="Booking created successfully")

    @app.get("/bookings")
    def list_bookings() -> Any:
        args = request.args
        result = get_system().list_bookings(
            status=args.get("status") or None,
            service_type=args.get("serviceType") or None,
            start_date=args.get("startDate") or None,
            end_date=args.get("endDate") or None,
            page=args.get("page", 1, type=int),
            limit=args.get("limit", 20, type=int),
        )
        return _ok(result["bookings"], pagination=result["pagination"])

    @app.get("/bookings/pending")
    def pending_bookings() -> Any:
        return _ok(get_system().list_pending_bookings())

    @app.get("/bookings/search")
    def search_bookings() -> Any:
        bookings = get_system().search_bookings(
            email=request.args.get("email") or None,
            reference_number=request.args.get("reference_number") or None,
        )
        return _ok(bookings)

    @app.get("/bookings/summary/<date>")
    def booking_summary(date: str) -> Any:
        return _ok(get_system().booking_summary(date))

    @app.get("/bookings/<int:booking_id>")
    def get_booking(booking_id: int) -> Any:
        return _ok(get_system().get_booking(booking_id))

    @app.patch("/bookings/<int:booking_id>/status")
    def update_status(booking_id: int) -> Any:
        body = request.get_json(silent=True) or {}
        booking = get_system().update_booking_status(
            booking_id,
            body.get("status"),
            notes=body.get("notes"),
            reason=body.get("reason"),
            admin_id=body.get("adminId"),
        )
        return _ok({"id": booking["id"], "status": booking["status"]}, message="Booking status updated")

    @app.patch("/bookings/<int:booking_id>/extend")
    def extend_booking(booking_id: int) -> Any:
        body = request.get_json(silent=True) or {}
        booking = get_system().extend_booking(
            booking_id, body.get("newEndDate"), notes=body.get("notes")
        )
        return _ok({"id": booking["id"], "newEndDate": booking["end_date"]}, message="Booking extended")

    # ------------------------------------------------------------------
    # Calendar
    # ------------------------------------------------------------------
    @app.get("/calendar")
    def calendar() -> Any:
        _require(request.args, "startDate", "endDate")
        return _ok(get_system().list_calendar(request.args["startDate"], request.args["endDate"]))

    @app.get("/calendar/unavailable")
    def blocked_dates() -> Any:
        _require(request.args, "startDate", "endDate")
        return _ok(get_system().list_blocked_dates(request.args["startDate"], request.args["endDate"]))

    @app.post("/calendar/unavailable")
    def block_date() -> Any:
        body = request.get_json(silent=True) or {}
        block = get_system().block_date(
            date=body.get("date"),
            reason=body.get("reason"),
            notes=body.get("notes"),
            service_type=body.get("serviceType"),
            room_type=body.get("roomType"),
            updated_by=body.get("adminId"),
        )
        return _ok(block, 201, message="Date marked as unavailable")

    @app.post("/calendar/available")
    def unblock_date() -> Any:
        body = request.get_json(silent=True) or {}
        block = get_system().unblock_date(
            date=body.get("date"),
            service_type=body.get("serviceType"),
            room_type=body.get("roomType"),
            updated_by=body.get("adminId"),
        )
        return _ok(block, message="Date marked as available")

    return app
