import unittest

from petboarding.boarding.calendar import block_scope
from petboarding.boarding.errors import ValidationError
from petboarding.boarding.system import BoardingSystem


class CalendarBlockTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.system = BoardingSystem()
        self.calendar = self.system.calendar

    def tearDown(self) -> None:
        self.system.close()

    def blocked(self, service_type, room_type=None, date="2025-12-25") -> bool:
        return self.calendar.is_blocked(date=date, service_type=service_type, room_type=room_type)

    def test_whole_business_block(self) -> None:
        self.calendar.set_unavailable(date="2025-12-25", reason="Christmas")
        self.assertTrue(self.blocked("overnight", "Deluxe Room"))
        self.assertTrue(self.blocked("daycare"))
        self.assertTrue(self.blocked("grooming", "basic"))
        self.assertFalse(self.blocked("overnight", "Deluxe Room", date="2025-12-26"))

    def test_service_scoped_block(self) -> None:
        self.calendar.set_unavailable(date="2025-12-25", service_type="grooming")
        self.assertTrue(self.blocked("grooming", "Basic Grooming"))
        self.assertTrue(self.blocked("grooming", "premium"))
        self.assertFalse(self.blocked("overnight", "Premium Room"))
        self.assertFalse(self.blocked("daycare"))

    def test_room_scoped_block(self) -> None:
        self.calendar.set_unavailable(date="2025-12-25", service_type="overnight", room_type="deluxe_room")
        self.assertTrue(self.blocked("overnight", "Deluxe Room"))
        self.assertFalse(self.blocked("overnight", "Premium Room"))

    def test_blocking_twice_keeps_one_row(self) -> None:
        self.calendar.set_unavailable(date="2025-12-25", reason="Christmas")
        row = self.calendar.set_unavailable(date="2025-12-25", reason="Closed", notes="Staff party")
        self.assertEqual(row["reason"], "Closed")
        self.assertEqual(row["is_available"], 0)
        self.assertEqual(len(self.calendar.list_range("2025-12-01", "2025-12-31")), 1)

    def test_unblocking(self) -> None:
        self.calendar.set_unavailable(date="2025-12-25", reason="Christmas")
        row = self.calendar.set_available(date="2025-12-25", updated_by=3)
        self.assertEqual(row["is_available"], 1)
        self.assertIsNone(row["reason"])
        self.assertEqual(row["updated_by"], 3)
        self.assertFalse(self.blocked("daycare"))
        again = self.calendar.set_available(date="2025-12-25")
        self.assertEqual(again["is_available"], 1)

    def test_unblocking_a_date_that_was_never_blocked(self) -> None:
        self.assertIsNone(self.calendar.set_available(date="2025-12-24"))
        self.assertEqual(self.calendar.list_range("2025-12-01", "2025-12-31"), [])

    def test_blocked_dates_skip_released_rows(self) -> None:
        self.calendar.set_unavailable(date="2025-12-24", reason="Staff training")
        self.calendar.set_unavailable(date="2025-12-25", service_type="overnight", room_type="premium")
        self.calendar.set_unavailable(date="2025-12-26", reason="Boxing Day")
        self.calendar.set_available(date="2025-12-26")
        rows = self.calendar.blocked_dates("2025-12-01", "2025-12-31")
        self.assertEqual(
            [(row["date"], row["service_type"], row["room_type"]) for row in rows],
            [("2025-12-24", "all", "all"), ("2025-12-25", "overnight", "Premium Room")],
        )

    def test_block_scope_validation(self) -> None:
        self.assertEqual(block_scope(), ("all", "all"))
        self.assertEqual(block_scope("ALL", ""), ("all", "all"))
        self.assertEqual(block_scope("daycare", "deluxe"), ("daycare", "all"))
        self.assertEqual(block_scope("overnight", "executive"), ("overnight", "Executive Room"))
        with self.assertRaises(ValidationError):
            block_scope(None, "deluxe")
        with self.assertRaises(ValidationError):
            block_scope("spa")
        with self.assertRaises(ValidationError):
            block_scope("overnight", "penthouse")

    def test_date_validation(self) -> None:
        with self.assertRaises(ValidationError):
            self.calendar.set_unavailable(date="25/12/2025")
        with self.assertRaises(ValidationError):
            self.calendar.list_range("2025-12-31", "2025-12-01")


if __name__ == "__main__":
    unittest.main()
