import unittest

from deletion_worker.db import BacklogError, InMemoryBacklogStore, SqlBacklogStore


class SqlBacklogStoreTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the SQL backlog.
    """

    def setUp(self):
        self.store = SqlBacklogStore("sqlite+pysqlite:///:memory:")

    def tearDown(self):
        self.store.close()

    def test_fetch_pending_is_ordered_and_limited(self):
        for i in range(5):
            self.store.enqueue(f"file-{i}")

        page = self.store.fetch_pending(3)
        self.assertEqual([r.file_id for r in page], ["file-0", "file-1", "file-2"])
        self.assertEqual([r.id for r in page], sorted(r.id for r in page))

        # Pure read: asking again returns the same page.
        again = self.store.fetch_pending(3)
        self.assertEqual([r.id for r in again], [r.id for r in page])

    def test_fetch_pending_empty_backlog(self):
        self.assertEqual(self.store.fetch_pending(10), [])

    def test_fetch_pending_rejects_non_positive_limit(self):
        with self.assertRaises(ValueError):
            self.store.fetch_pending(0)

    def test_enqueue_keeps_file_id_unique(self):
        first = self.store.enqueue("abc")
        second = self.store.enqueue("abc")
        self.assertEqual(first.id, second.id)
        self.assertEqual(self.store.count_pending(), 1)

    def test_delete_by_ids_removes_only_given_records(self):
        records = [self.store.enqueue(f"file-{i}") for i in range(4)]
        removed = self.store.delete_by_ids([records[0].id, records[2].id])
        self.assertEqual(removed, 2)

        remaining = self.store.fetch_pending(10)
        self.assertEqual([r.file_id for r in remaining], ["file-1", "file-3"])

    def test_delete_by_ids_empty_is_noop(self):
        self.store.enqueue("file-0")
        self.assertEqual(self.store.delete_by_ids([]), 0)
        self.assertEqual(self.store.count_pending(), 1)

    def test_storage_errors_are_wrapped(self):
        # Disposing an in-memory SQLite engine drops the schema with the connection.
        self.store.engine.dispose()
        with self.assertRaises(BacklogError):
            self.store.fetch_pending(10)

    def test_requires_database_url(self):
        with self.assertRaises(ValueError):
            SqlBacklogStore("")


class InMemoryBacklogStoreTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryBacklogStore()

    def test_enqueue_fetch_and_delete(self):
        records = [self.store.enqueue(f"file-{i}") for i in range(3)]
        self.assertEqual(self.store.enqueue("file-1").id, records[1].id)

        page = self.store.fetch_pending(2)
        self.assertEqual([r.file_id for r in page], ["file-0", "file-1"])

        self.assertEqual(self.store.delete_by_ids([records[1].id]), 1)
        self.assertEqual(self.store.delete_calls, [[records[1].id]])
        self.assertEqual([r.file_id for r in self.store.fetch_pending(10)], ["file-0", "file-2"])

    def test_reset_and_close(self):
        self.store.enqueue("file-0")
        self.store.reset()
        self.assertEqual(self.store.count_pending(), 0)
        self.store.close()
        self.assertTrue(self.store.closed)


if __name__ == "__main__":
    unittest.main()
