import unittest

from fantasy_backend.db import InMemoryDbClient
from fantasy_backend.tests.db_contract import (
    ALICE,
    ConcurrentWritesContract,
    DbClientContract,
)


class InMemoryDbClientTests(
    DbClientContract, ConcurrentWritesContract, unittest.TestCase
):
    def setUp(self):
        self.db = InMemoryDbClient()

    def test_returned_records_are_copies(self):
        user = self.db.ensure_user(ALICE, 100)
        user.points = 0
        self.assertEqual(self.db.get_user(ALICE).points, 100)

    def test_reset_clears_everything(self):
        self.db.ensure_user(ALICE, 100)
        self.db.reset()
        self.assertIsNone(self.db.get_user(ALICE))


if __name__ == "__main__":
    unittest.main()
