"""
Persistent key-value store for the session.

A small SQLite database in the application's config directory holds string values by
key, the way the session token and the JSON-encoded user are kept between runs. Every
operation opens its own connection, so the store can be used from worker threads.
"""

import contextlib
import logging
import sqlite3
import threading
from typing import Iterator, List, Optional

from ..settings import lib
from ..status import status

AUTH_TOKEN_KEY: str = 'authToken'
USER_KEY: str = 'user'

TABLE: str = 'keyvalue'


class StorageAPI:
    """String key-value store backed by a SQLite file."""

    def __init__(self, path=None) -> None:
        self.path = path or lib.settings.store_path
        self._lock = threading.Lock()
        self._initialize_schema_if_needed()

    def connection(self) -> sqlite3.Connection:
        """Return a new connection to the store database."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(str(self.path), timeout=2.0)

    def _initialize_schema_if_needed(self, _retry: bool = True) -> None:
        """Create the table if missing. A corrupt file is deleted and recreated once.

        Raises:
            status.StorageInvalidException: If the database cannot be created.
        """
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            conn.execute(
                f'CREATE TABLE IF NOT EXISTS {TABLE} (key TEXT PRIMARY KEY, value TEXT NOT NULL)'
            )
            conn.commit()
        except sqlite3.Error as e:
            if conn:
                conn.close()
                conn = None
            if not _retry:
                raise status.StorageInvalidException(f'Unrecoverable store error: {e}') from e

            logging.error(f'SQLite error during store initialization: {e}. Recreating {self.path}.')
            try:
                self.path.unlink(missing_ok=True)
            except OSError as ex:
                raise status.StorageInvalidException(f'Could not remove {self.path}: {ex}') from ex
            self._initialize_schema_if_needed(_retry=False)
        finally:
            if conn:
                conn.close()

    @contextlib.contextmanager
    def _connect(self, write: bool = False) -> Iterator[sqlite3.Connection]:
        """Yield a connection, committing on success when write is set.

        Raises:
            status.StorageInvalidException: Wraps any SQLite error, e.g. a locked database.
        """
        lock = self._lock if write else contextlib.nullcontext()
        with lock:
            conn: Optional[sqlite3.Connection] = None
            try:
                conn = self.connection()
                if write:
                    with conn:
                        yield conn
                else:
                    yield conn
            except sqlite3.Error as e:
                raise status.StorageInvalidException(f'Store operation failed on {self.path}: {e}') from e
            finally:
                if conn:
                    conn.close()

    def get(self, key: str) -> Optional[str]:
        """Return the value stored for key, or None."""
        with self._connect() as conn:
            row = conn.execute(f'SELECT value FROM {TABLE} WHERE key=?', (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        """Store a string value under key, replacing any previous value.

        Raises:
            TypeError: If value is not a string.
        """
        if not isinstance(value, str):
            raise TypeError(f'Store values must be strings, got {type(value)} for "{key}".')
        self.set_many({key: value})

    def set_many(self, items: dict) -> None:
        """Store several string values in one transaction."""
        for key, value in items.items():
            if not isinstance(value, str):
                raise TypeError(f'Store values must be strings, got {type(value)} for "{key}".')

        with self._connect(write=True) as conn:
            conn.executemany(
                f'INSERT OR REPLACE INTO {TABLE} (key, value) VALUES (?, ?)',
                list(items.items())
            )

    def remove(self, key: str) -> None:
        """Delete key. Missing keys are ignored."""
        self.remove_many([key])

    def remove_many(self, keys: List[str]) -> None:
        """Delete several keys in one transaction."""
        with self._connect(write=True) as conn:
            conn.executemany(f'DELETE FROM {TABLE} WHERE key=?', [(k,) for k in keys])

    def keys(self) -> List[str]:
        """Return all stored keys, sorted."""
        with self._connect() as conn:
            rows = conn.execute(f'SELECT key FROM {TABLE} ORDER BY key').fetchall()
        return [r[0] for r in rows]

    def clear(self) -> None:
        """Delete every stored key."""
        with self._connect(write=True) as conn:
            conn.execute(f'DELETE FROM {TABLE}')


storage: StorageAPI = StorageAPI()
