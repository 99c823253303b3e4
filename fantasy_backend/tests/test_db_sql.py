import os
import tempfile
import unittest

from fantasy_backend.sql_db import SqlDbClient
from fantasy_backend.tests.db_contract import ConcurrentWritesContract, DbClientContract


class SqlDbClientTests(DbClientContract, unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the SQL client logic.
    """

    def setUp(self):
        self.db = SqlDbClient("sqlite+pysqlite:///:memory:")

    def tearDown(self):
        self.db.engine.dispose()

    def test_ping(self):
        self.db.ping()

    def test_requires_url(self):
        with self.assertRaises(ValueError):
            SqlDbClient("")


class SqlDbClientConcurrencyTests(ConcurrentWritesContract, unittest.TestCase):
    """
    Threads get their own pooled connections, so these run against a SQLite file;
    every :memory: connection would be a separate database.
    """

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        path = os.path.join(self.tmpdir.name, "fantasy.db")
        self.db = SqlDbClient(f"sqlite+pysqlite:///{path}")

    def tearDown(self):
        self.db.engine.dispose()
        self.tmpdir.cleanup()


if __name__ == "__main__":
    unittest.main()
