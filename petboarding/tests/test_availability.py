import datetime as dt
import unittest

from cachelib import SimpleCache

from petboarding.boarding.availability import MANUALLY_BLOCKED, NO_SLOTS, AvailabilityCache
from petboarding.boarding.capacity import CapacityTable
from petboarding.boarding.errors import ValidationError
from petboarding.boarding.system import BoardingSystem


def executive_stay(start, end=None):
    return {
        "owner_first_name": "Jordan",
        "owner_email": "jordan@example.com",
        "owner_phone": "0400000000",
        "pet_name": "Rex",
        "pet_type": "Dog",
        "service_type": "overnight",
        "room_type": "Executive Room",
        "start_date": start,
        "end_date": end or start,
    }


class AvailabilityEngineTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.system = BoardingSystem()

    def tearDown(self) -> None:
        self.system.close()

    def test_free_slots_shrink_with_bookings(self) -> None:
        snapshot = self.system.get_availability("2025-06-10", "overnight", "executive")
        self.assertEqual(snapshot, {"available": 2, "total": 2, "is_blocked": False})
        self.system.bookings.insert(executive_stay("2025-06-10"))
        self.assertEqual(self.system.get_availability("2025-06-10", "overnight", "executive")["available"], 1)
        self.assertTrue(self.system.is_available("2025-06-10", "overnight", "Executive Room"))
        self.system.bookings.insert(executive_stay("2025-06-10"))
        self.assertFalse(self.system.is_available("2025-06-10", "overnight", "Executive Room"))

    def test_available_never_negative(self) -> None:
        for _ in range(3):
            self.system.bookings.insert(executive_stay("2025-06-10"))
        snapshot = self.system.get_availability("2025-06-10", "overnight", "executive")
        self.assertEqual(snapshot["available"], 0)
        self.assertEqual(snapshot["total"], 2)

    def test_block_overrides_free_capacity(self) -> None:
        self.system.block_date(date="2025-06-10", service_type="overnight", room_type="executive")
        snapshot = self.system.get_availability("2025-06-10", "overnight", "executive")
        self.assertEqual(snapshot, {"available": 0, "total": 2, "is_blocked": True})
        self.assertEqual(self.system.get_availability("2025-06-10", "overnight", "deluxe")["available"], 10)

    def test_get_all_availability(self) -> None:
        self.system.bookings.insert(executive_stay("2025-06-10"))
        result = self.system.get_all_availability("2025-06-10")
        self.assertEqual(len(result), 7)
        self.assertEqual(result[("overnight", "Executive Room")]["available"], 1)
        self.assertEqual(result[("daycare", None)]["total"], 10)
        for snapshot in result.values():
            self.assertGreaterEqual(snapshot["available"], 0)
            self.assertLessEqual(snapshot["available"], snapshot["total"])

    def test_unavailable_dates_report_reasons(self) -> None:
        self.system.bookings.insert(executive_stay("2025-06-11"))
        self.system.bookings.insert(executive_stay("2025-06-11", "2025-06-12"))
        self.system.block_date(date="2025-06-12", reason="Maintenance")
        self.system.block_date(date="2025-06-14", service_type="overnight")
        dates = self.system.list_unavailable_dates("overnight", "executive", "2025-06-10", "2025-06-15")
        self.assertEqual(
            dates,
            [
                {"date": "2025-06-11", "reason": NO_SLOTS},
                {"date": "2025-06-12", "reason": MANUALLY_BLOCKED},
                {"date": "2025-06-14", "reason": MANUALLY_BLOCKED},
            ],
        )

    def test_unavailable_dates_range_validation(self) -> None:
        with self.assertRaises(ValidationError):
            self.system.list_unavailable_dates("overnight", None, "2025-06-10", "2025-06-01")
        with self.assertRaises(ValidationError):
            self.system.list_unavailable_dates("overnight", None, "2025-01-01", "2026-06-01")

    def test_invalid_inputs(self) -> None:
        with self.assertRaises(ValidationError):
            self.system.get_availability("2025-6-10", "overnight", "deluxe")
        with self.assertRaises(ValidationError):
            self.system.get_availability("2025-06-10", "spa")

    def test_room_availability_view(self) -> None:
        self.system.bookings.insert(executive_stay("2025-06-10"))
        view = self.system.room_availability("2025-06-10")
        self.assertEqual(view["date"], "2025-06-10")
        availability = view["availability"]
        self.assertEqual(set(availability["overnight"]), {"deluxe", "premium", "executive"})
        self.assertEqual(set(availability["grooming"]), {"basic", "special", "premium"})
        self.assertEqual(availability["overnight"]["executive"], {"total": 2, "available": 1})
        self.assertEqual(availability["daycare"], {"total": 10, "available": 10})
        self.assertEqual(availability["grooming"]["premium"], {"total": 5, "available": 5})

    def test_service_availability_lists_seeded_services(self) -> None:
        rows = self.system.service_availability("2025-06-10")
        self.assertEqual(len(rows), 7)
        by_name = {row["service_name"]: row for row in rows}
        self.assertEqual(by_name["Executive Room"]["total_slots"], 2)
        self.assertEqual(by_name["Special Care Package"]["available_slots"], 5)

    def test_capacity_overrides_flow_through(self) -> None:
        system = BoardingSystem(capacity=CapacityTable({"overnight:Executive Room": 1}))
        try:
            system.bookings.insert(executive_stay("2025-06-10"))
            self.assertEqual(
                system.get_availability("2025-06-10", "overnight", "executive"),
                {"available": 0, "total": 1, "is_blocked": False},
            )
            executive = [row for row in system.list_services() if row["room_type"] == "Executive Room"]
            self.assertEqual(executive[0]["max_slots"], 1)
        finally:
            system.close()


class AvailabilityCacheTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.backend = SimpleCache()
        self.system = BoardingSystem(cache=AvailabilityCache(self.backend, ttl=300))
        self.day = dt.date(2025, 6, 10)

    def tearDown(self) -> None:
        self.system.close()

    def executive_free(self) -> int:
        return self.system.room_availability("2025-06-10")["availability"]["overnight"]["executive"]["available"]

    def test_cached_until_invalidated(self) -> None:
        self.assertEqual(self.executive_free(), 2)
        # Writes that bypass the façade do not invalidate.
        self.system.bookings.insert(executive_stay("2025-06-10"))
        self.assertEqual(self.executive_free(), 2)
        self.system.availability.cache.invalidate([self.day])
        self.assertEqual(self.executive_free(), 1)

    def test_block_invalidates(self) -> None:
        self.assertEqual(self.executive_free(), 2)
        self.system.block_date(date="2025-06-10", service_type="overnight")
        self.assertEqual(self.executive_free(), 0)
        self.system.unblock_date(date="2025-06-10", service_type="overnight")
        self.assertEqual(self.executive_free(), 2)

    def test_capacity_reads_bypass_cache(self) -> None:
        self.assertEqual(self.executive_free(), 2)
        self.system.bookings.insert(executive_stay("2025-06-10"))
        self.assertEqual(self.system.get_availability("2025-06-10", "overnight", "executive")["available"], 1)

    def test_invalidation_during_compute_is_not_overwritten(self) -> None:
        cache = AvailabilityCache(SimpleCache(), ttl=300)
        truth = {"free": 2}

        def racing_compute() -> int:
            seen = truth["free"]
            truth["free"] = 1
            cache.invalidate([self.day])
            return seen

        self.assertEqual(cache.get_or_compute("rooms", self.day, racing_compute), 2)
        self.assertEqual(cache.get_or_compute("rooms", self.day, lambda: truth["free"]), 1)

    def test_invalidation_is_shared_through_the_backend(self) -> None:
        first = AvailabilityCache(self.backend, ttl=300)
        second = AvailabilityCache(self.backend, ttl=300)
        self.assertEqual(first.get_or_compute("rooms", self.day, lambda: 2), 2)
        self.assertEqual(second.get_or_compute("rooms", self.day, lambda: 99), 2)
        second.invalidate([self.day])
        self.assertEqual(first.get_or_compute("rooms", self.day, lambda: 1), 1)

    def test_backend_bounds_stored_entries(self) -> None:
        backend = SimpleCache(threshold=20)
        cache = AvailabilityCache(backend, ttl=300)
        for offset in range(200):
            day = self.day + dt.timedelta(days=offset)
            self.assertEqual(cache.get_or_compute("rooms", day, lambda: offset), offset)
        self.assertLessEqual(len(backend._cache), 21)

    def test_disabled_cache_always_recomputes(self) -> None:
        for cache in (AvailabilityCache(), AvailabilityCache(SimpleCache(), ttl=0)):
            self.assertFalse(cache.enabled)
            calls = []
            cache.get_or_compute("rooms", self.day, lambda: calls.append(1) or len(calls))
            cache.get_or_compute("rooms", self.day, lambda: calls.append(1) or len(calls))
            cache.invalidate([self.day])
            self.assertEqual(len(calls), 2)



if __name__ == "__main__":
    unittest.main()
