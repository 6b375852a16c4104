"""
Tests for the users store against a temporary SQLite database.
"""

import os
import shutil
import tempfile
import unittest

from database import USER_COLUMNS, DatabaseManager, QueryExecutionError
from fakes import SAMPLE_USERS


class DatabaseTestCase(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.db = DatabaseManager(f"sqlite:///{os.path.join(self.tmpdir, 'datawell.db')}")
        self.db.create_tables()

    def tearDown(self):
        self.db.engine.dispose()
        shutil.rmtree(self.tmpdir, ignore_errors=True)


class TestDatabaseManager(DatabaseTestCase):

    def test_requires_url_or_engine(self):
        with self.assertRaises(ValueError):
            DatabaseManager()

    def test_insert_generates_uuid_and_ignores_unknown_keys(self):
        user_id = self.db.insert_user({"age": 30, "smoking": "No", "favourite_color": "blue", "id": "x"})

        self.assertEqual(len(user_id), 36)
        rows = self.db.execute("SELECT * FROM users")
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["id"], user_id)
        self.assertEqual(rows[0]["age"], 30)
        self.assertIsNone(rows[0]["height"])

    def test_execute_returns_dicts(self):
        for user in SAMPLE_USERS:
            self.db.insert_user(user)
        rows = self.db.execute("SELECT COUNT(*) AS count FROM users WHERE smoking = 'Yes'")
        self.assertEqual(rows, [{"count": 2}])

    def test_execute_error_carries_backend_message(self):
        with self.assertRaises(QueryExecutionError) as ctx:
            self.db.execute("SELECT favourite_color FROM users")
        self.assertIn("favourite_color", str(ctx.exception))

    def test_count_users_with_bmi(self):
        for user in SAMPLE_USERS:
            self.db.insert_user(user)
        self.assertEqual(self.db.count_users_with_bmi(), 3)

    def test_count_users_with_bmi_skips_non_positive_measurements(self):
        for user in SAMPLE_USERS:
            self.db.insert_user(user)
        self.db.insert_user({"age": 40, "height": 0, "weight": 70})
        self.db.insert_user({"age": 41, "height": -170, "weight": 70})
        self.assertEqual(self.db.count_users_with_bmi(), 3)

    def test_recent_users_limit(self):
        for user in SAMPLE_USERS:
            self.db.insert_user(user)
        rows = self.db.recent_users(limit=2)
        self.assertEqual(len(rows), 2)
        self.assertGreaterEqual(rows[0]["id"], rows[1]["id"])

    def test_schema_text(self):
        text = self.db.get_schema_text()
        self.assertTrue(text.startswith("Table: users\nColumns:"))
        for column in USER_COLUMNS:
            self.assertIn(f"  - {column}:", text)

    def test_ping(self):
        self.assertTrue(self.db.ping())


if __name__ == "__main__":
    unittest.main()
