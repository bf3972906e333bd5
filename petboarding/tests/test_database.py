import unittest

from petboarding.boarding.database import (
    SCHEMA_VERSION,
    ensure_schema,
    get_connection,
    get_metadata,
    initialize_database,
    set_metadata,
    transaction,
)
from petboarding.boarding.errors import StoreError


class DatabaseTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.conn = get_connection(":memory:")
        initialize_database(self.conn)

    def tearDown(self) -> None:
        self.conn.close()

    def block_count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) AS total FROM calendar_availability").fetchone()["total"]

    def test_schema_version_recorded(self) -> None:
        self.assertEqual(get_metadata(self.conn, "schema_version"), str(SCHEMA_VERSION))
        initialize_database(self.conn)
        self.assertEqual(get_metadata(self.conn, "schema_version"), str(SCHEMA_VERSION))

    def test_metadata_round_trip(self) -> None:
        set_metadata(self.conn, "capacity_overrides", {"overnight:Executive Room": 3})
        self.assertEqual(get_metadata(self.conn, "capacity_overrides"), '{"overnight:Executive Room": 3}')
        self.assertEqual(get_metadata(self.conn, "missing", "fallback"), "fallback")

    def test_transaction_commits(self) -> None:
        with transaction(self.conn):
            self.conn.execute("INSERT INTO calendar_availability(date, is_available) VALUES ('2025-12-25', 0)")
        self.assertFalse(self.conn.in_transaction)
        self.assertEqual(self.block_count(), 1)

    def test_transaction_rolls_back_on_error(self) -> None:
        with self.assertRaises(ValueError):
            with transaction(self.conn):
                self.conn.execute("INSERT INTO calendar_availability(date, is_available) VALUES ('2025-12-25', 0)")
                raise ValueError("abort")
        self.assertFalse(self.conn.in_transaction)
        self.assertEqual(self.block_count(), 0)

    def test_sqlite_errors_become_store_errors(self) -> None:
        with self.assertRaises(StoreError):
            with transaction(self.conn):
                self.conn.execute("INSERT INTO calendar_availability(date, is_available) VALUES ('2025-12-25', 0)")
                self.conn.execute("INSERT INTO calendar_availability(date, is_available) VALUES ('2025-12-25', 0)")
        self.assertFalse(self.conn.in_transaction)
        self.assertEqual(self.block_count(), 0)

    def test_rows_are_dictionaries(self) -> None:
        row = self.conn.execute("SELECT 1 AS one, 'two' AS two").fetchone()
        self.assertEqual(row, {"one": 1, "two": "two"})

    def test_ensure_schema(self) -> None:
        ensure_schema(self.conn)
        set_metadata(self.conn, "schema_version", SCHEMA_VERSION + 1)
        with self.assertRaises(StoreError):
            ensure_schema(self.conn)

    def test_ensure_schema_on_empty_database(self) -> None:
        conn = get_connection(":memory:")
        try:
            with self.assertRaises(StoreError):
                ensure_schema(conn)
        finally:
            conn.close()

    def test_services_gain_cat_flag_on_upgrade(self) -> None:
        conn = get_connection(":memory:")
        try:
            conn.execute(
                "CREATE TABLE services (service_id INTEGER PRIMARY KEY, service_name TEXT NOT NULL, "
                "service_type TEXT NOT NULL, room_type TEXT, max_slots INTEGER NOT NULL DEFAULT 0, "
                "is_active INTEGER DEFAULT 1)"
            )
            conn.execute("INSERT INTO services(service_name, service_type, max_slots) VALUES ('Pet Daycare', 'daycare', 10)")
            initialize_database(conn)
            self.assertEqual(conn.execute("SELECT allows_cats FROM services").fetchone(), {"allows_cats": 1})
            ensure_schema(conn)
        finally:
            conn.close()



if __name__ == "__main__":
    unittest.main()
