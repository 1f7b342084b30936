"""
Unit tests for ExpenseClient.core.storage.

Run with:
    python -m unittest tests.test_storage
"""
import sqlite3
import threading
from unittest.mock import patch

from ExpenseClient.core import storage
from ExpenseClient.settings import lib
from ExpenseClient.status import status
from tests.base import BaseTestCase


class TestStorageAPI(BaseTestCase):

    def test_store_lives_in_the_config_directory(self):
        self.assertEqual(storage.storage.path, lib.settings.store_path)
        self.assertTrue(storage.storage.path.exists())

    def test_get_missing_key(self):
        self.assertIsNone(storage.storage.get('missing'))

    def test_set_get_remove(self):
        storage.storage.set('authToken', 'abc')
        self.assertEqual(storage.storage.get('authToken'), 'abc')

        storage.storage.set('authToken', 'xyz')
        self.assertEqual(storage.storage.get('authToken'), 'xyz')

        storage.storage.remove('authToken')
        self.assertIsNone(storage.storage.get('authToken'))

    def test_remove_missing_key_is_ignored(self):
        storage.storage.remove('missing')
        self.assertEqual(storage.storage.keys(), [])

    def test_set_rejects_non_strings(self):
        with self.assertRaises(TypeError):
            storage.storage.set('count', 1)
        with self.assertRaises(TypeError):
            storage.storage.set_many({'a': 'ok', 'b': None})
        # Nothing is written when one value is invalid
        self.assertEqual(storage.storage.keys(), [])

    def test_set_many_and_remove_many(self):
        storage.storage.set_many({'authToken': 'abc', 'user': '{}', 'other': 'x'})
        self.assertEqual(storage.storage.keys(), ['authToken', 'other', 'user'])

        storage.storage.remove_many(['authToken', 'user'])
        self.assertEqual(storage.storage.keys(), ['other'])

    def test_clear(self):
        storage.storage.set_many({'a': '1', 'b': '2'})
        storage.storage.clear()
        self.assertEqual(storage.storage.keys(), [])

    def test_values_persist_across_instances(self):
        storage.storage.set('authToken', 'abc')
        other = storage.StorageAPI()
        self.assertEqual(other.get('authToken'), 'abc')

    def test_unicode_values(self):
        storage.storage.set('user', '{"name": "Zoë ₹"}')
        self.assertEqual(storage.storage.get('user'), '{"name": "Zoë ₹"}')

    def test_corrupt_database_is_recreated(self):
        path = lib.settings.db_dir / 'corrupt.db'
        path.write_bytes(b'this is not a sqlite database' * 100)

        store = storage.StorageAPI(path=path)
        store.set('authToken', 'abc')
        self.assertEqual(store.get('authToken'), 'abc')

    def test_unrecoverable_database_raises(self):
        # A directory in place of the database file cannot be opened or unlinked
        path = lib.settings.db_dir / 'is_a_directory.db'
        path.mkdir()

        with self.assertRaises(status.StorageInvalidException):
            storage.StorageAPI(path=path)

    def test_sqlite_errors_are_wrapped(self):
        storage.storage.set('authToken', 'abc')
        locked = sqlite3.OperationalError('database is locked')
        with patch.object(storage.storage, 'connection', side_effect=locked):
            with self.assertRaises(status.StorageInvalidException):
                storage.storage.get('authToken')
            with self.assertRaises(status.StorageInvalidException):
                storage.storage.set('authToken', 'xyz')
            with self.assertRaises(status.StorageInvalidException):
                storage.storage.remove_many(['authToken', 'user'])

        self.assertEqual(storage.storage.get('authToken'), 'abc')

    def test_failed_write_is_rolled_back(self):
        storage.storage.set('authToken', 'abc')
        with self.assertRaises(status.StorageInvalidException):
            with storage.storage._connect(write=True) as conn:
                conn.execute('DELETE FROM keyvalue')
                conn.execute('INSERT INTO missing_table VALUES (1)')

        self.assertEqual(storage.storage.get('authToken'), 'abc')

    def test_concurrent_writes(self):
        def _write(i: int) -> None:
            storage.storage.set(f'key{i:02d}', str(i))

        threads = [threading.Thread(target=_write, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(storage.storage.keys()), 20)
